"""
Agency provisioning and management endpoints.
"""
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from agencyhub.core.deps import (
    ConnectionManager,
    CurrentPrincipal,
    DbSession,
    Principal,
    Provisioning,
    SessionFactory,
    SuperAdmin,
    require_permission,
)
from agencyhub.core.exceptions import (
    AgencyHubError,
    BadRequestError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    ServiceUnavailableError,
    UnknownModuleError,
    to_http_exception,
)
from agencyhub.core.identifiers import normalize_domain
from agencyhub.models.agency import Agency, ProvisioningStatus
from agencyhub.schemas.agency import (
    AgencyCreate,
    AgencyDetailResponse,
    AgencyModulesResponse,
    AgencyResponse,
    AssignmentResponse,
    DomainAvailabilityResponse,
    ModuleAssignmentCreate,
    ProvisioningResponse,
)
from agencyhub.schemas.common import PaginatedResponse
from agencyhub.schemas.module_request import ModuleRequestCreate, ModuleRequestResponse
from agencyhub.services.catalog_service import CatalogService
from agencyhub.services.module_request_service import ModuleRequestService
from agencyhub.services.selection import CENTS, resolve_cost
from agencyhub.services.tenant_registry import TenantRegistry

router = APIRouter(prefix="/agencies", tags=["Agencies"])


def _ensure_agency_access(principal: Principal, agency_id: UUID) -> None:
    if not principal.is_super_admin and principal.agency_id != agency_id:
        raise ForbiddenError("Not allowed to access this agency")


@router.get("/check-domain", response_model=DomainAvailabilityResponse)
async def check_domain(
    session_factory: SessionFactory,
    domain: str = Query(min_length=1, max_length=255),
):
    """Check whether a domain is free (public, used by onboarding)."""
    registry = TenantRegistry(session_factory)
    try:
        available = await registry.check_domain_availability(domain)
    except AgencyHubError as e:
        raise to_http_exception(e)

    return DomainAvailabilityResponse(domain=normalize_domain(domain), available=available)


@router.post("", response_model=ProvisioningResponse, status_code=status.HTTP_201_CREATED)
async def create_agency(
    data: AgencyCreate,
    engine: Provisioning,
):
    """Provision a new agency and wait until it is active or has failed."""
    try:
        result = await engine.provision(data)
    except AgencyHubError as e:
        raise to_http_exception(e)

    if result.succeeded:
        return ProvisioningResponse(
            status=result.status,
            agency_id=result.agency_id,
            domain=result.domain,
            step=result.step,
            message=result.message,
        )

    detail = {
        "code": result.failure_reason.value,
        "message": result.message,
        "agency_id": str(result.agency_id) if result.agency_id else None,
    }
    if result.failure_reason == ErrorCode.DOMAIN_TAKEN:
        raise ConflictError(detail)
    raise ServiceUnavailableError(detail)


@router.get("", response_model=PaginatedResponse[AgencyResponse])
async def list_agencies(
    _: SuperAdmin,
    session_factory: SessionFactory,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    status: ProvisioningStatus | None = None,
):
    """List all agencies (super admin only)."""
    registry = TenantRegistry(session_factory)
    agencies, total = await registry.list_agencies(page, per_page, status)

    return PaginatedResponse(
        items=[AgencyResponse.model_validate(a) for a in agencies],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{agency_id}", response_model=AgencyDetailResponse)
async def get_agency(
    agency_id: UUID,
    _: SuperAdmin,
    session_factory: SessionFactory,
):
    """Get an agency including failure detail (super admin only)."""
    agency = await TenantRegistry(session_factory).get_agency(agency_id)
    if not agency:
        raise NotFoundError("Agency")

    return AgencyDetailResponse.model_validate(agency)


@router.post("/{agency_id}/deactivate", response_model=AgencyResponse)
async def deactivate_agency(
    agency_id: UUID,
    _: SuperAdmin,
    session_factory: SessionFactory,
    connections: ConnectionManager,
):
    """Deactivate an agency and close its connection pool (super admin only)."""
    agency = await TenantRegistry(session_factory).deactivate_agency(agency_id)
    if not agency:
        raise NotFoundError("Agency")

    await connections.invalidate(agency_id)
    return AgencyResponse.model_validate(agency)


@router.delete("/{agency_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agency(
    agency_id: UUID,
    _: SuperAdmin,
    session_factory: SessionFactory,
    engine: Provisioning,
    connections: ConnectionManager,
):
    """Drop an agency's database, delete its records and free its domain (super admin only)."""
    registry = TenantRegistry(session_factory)
    agency = await registry.get_agency(agency_id)
    if not agency:
        raise NotFoundError("Agency")
    if agency.provisioning_status in (ProvisioningStatus.PENDING, ProvisioningStatus.PROVISIONING):
        raise ConflictError("Agency is still being provisioned")

    await registry.deactivate_agency(agency_id)
    await connections.invalidate(agency_id)

    if not await engine.decommission(agency):
        raise ServiceUnavailableError(
            "The agency database could not be dropped. The agency is deactivated; retry the deletion."
        )


def _modules_response(assignments) -> AgencyModulesResponse:
    modules = [
        AssignmentResponse(
            module_id=a.module_id,
            path=a.module.path,
            title=a.module.title,
            category=a.module.category.value,
            base_cost=a.module.base_cost,
            cost_override=a.cost_override,
            effective_cost=resolve_cost(a.module.base_cost, a.cost_override),
            assigned_by=a.assigned_by,
            assigned_at=a.assigned_at,
        )
        for a in assignments
    ]
    total = sum((m.effective_cost for m in modules), Decimal("0"))
    return AgencyModulesResponse(
        modules=modules,
        total_modules=len(modules),
        total_cost=total.quantize(CENTS),
    )


@router.get("/{agency_id}/modules", response_model=AgencyModulesResponse)
async def list_agency_modules(
    agency_id: UUID,
    principal: CurrentPrincipal,
    db: DbSession,
):
    """List the modules enabled for an agency and their monthly cost."""
    _ensure_agency_access(principal, agency_id)

    assignments = await ModuleRequestService(db).list_assignments(agency_id)
    return _modules_response(assignments)


@router.post(
    "/{agency_id}/modules",
    response_model=AgencyModulesResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_agency_modules(
    agency_id: UUID,
    data: ModuleAssignmentCreate,
    principal: SuperAdmin,
    session_factory: SessionFactory,
    db: DbSession,
):
    """Enable modules for an agency, optionally at agency-specific prices (super admin only)."""
    registry = TenantRegistry(session_factory)
    if not await registry.get_agency(agency_id):
        raise NotFoundError("Agency")

    stray = set(data.cost_overrides) - set(data.module_ids)
    if stray:
        raise BadRequestError("cost_overrides may only name modules being assigned")

    catalog = CatalogService(db)
    unknown = [m for m in data.module_ids if await catalog.get_module(m) is None]
    if unknown:
        raise to_http_exception(UnknownModuleError(unknown))

    await registry.assign_modules(
        agency_id,
        data.module_ids,
        assigned_by=principal.subject,
        cost_overrides=data.cost_overrides,
    )

    assignments = await ModuleRequestService(db).list_assignments(agency_id)
    return _modules_response(assignments)


@router.post(
    "/{agency_id}/module-requests",
    response_model=ModuleRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_module_request(
    agency_id: UUID,
    data: ModuleRequestCreate,
    principal: Annotated[Principal, Depends(require_permission("module_request:create"))],
    db: DbSession,
):
    """Request an additional module for an agency."""
    _ensure_agency_access(principal, agency_id)

    agency = await db.get(Agency, agency_id)
    if not agency:
        raise NotFoundError("Agency")

    try:
        request = await ModuleRequestService(db).submit(
            agency_id,
            data.module_id,
            reason=data.reason,
            requested_by=principal.subject,
        )
    except AgencyHubError as e:
        raise to_http_exception(e)

    return ModuleRequestResponse.model_validate(request)
