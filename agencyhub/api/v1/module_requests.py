"""
Module request review endpoints (super admin).
"""
from uuid import UUID

from fastapi import APIRouter, Query

from agencyhub.core.deps import DbSession, SuperAdmin
from agencyhub.core.exceptions import AgencyHubError, NotFoundError, to_http_exception
from agencyhub.models.assignment import ModuleRequestStatus
from agencyhub.schemas.common import PaginatedResponse
from agencyhub.schemas.module_request import (
    ModuleRequestApprove,
    ModuleRequestReject,
    ModuleRequestResponse,
)
from agencyhub.services.module_request_service import ModuleRequestService

router = APIRouter(prefix="/module-requests", tags=["Module Requests"])


@router.get("", response_model=PaginatedResponse[ModuleRequestResponse])
async def list_module_requests(
    _: SuperAdmin,
    db: DbSession,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    status: ModuleRequestStatus | None = None,
    agency_id: UUID | None = None,
):
    """List module requests, newest first."""
    requests, total = await ModuleRequestService(db).list_requests(
        page=page,
        per_page=per_page,
        status=status,
        agency_id=agency_id,
    )

    return PaginatedResponse(
        items=[ModuleRequestResponse.model_validate(r) for r in requests],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{request_id}", response_model=ModuleRequestResponse)
async def get_module_request(
    request_id: UUID,
    _: SuperAdmin,
    db: DbSession,
):
    request = await ModuleRequestService(db).get_by_id(request_id)
    if not request:
        raise NotFoundError("Module request")
    return ModuleRequestResponse.model_validate(request)


@router.post("/{request_id}/approve", response_model=ModuleRequestResponse)
async def approve_module_request(
    request_id: UUID,
    principal: SuperAdmin,
    db: DbSession,
    data: ModuleRequestApprove | None = None,
):
    """Approve a pending request and enable the module for its agency."""
    try:
        request = await ModuleRequestService(db).approve(
            request_id,
            reviewed_by=principal.subject,
            cost_override=data.cost_override if data else None,
        )
    except AgencyHubError as e:
        raise to_http_exception(e)

    return ModuleRequestResponse.model_validate(request)


@router.post("/{request_id}/reject", response_model=ModuleRequestResponse)
async def reject_module_request(
    request_id: UUID,
    principal: SuperAdmin,
    db: DbSession,
    data: ModuleRequestReject | None = None,
):
    """Reject a pending request."""
    try:
        request = await ModuleRequestService(db).reject(
            request_id,
            reviewed_by=principal.subject,
            reason=data.reason if data else None,
        )
    except AgencyHubError as e:
        raise to_http_exception(e)

    return ModuleRequestResponse.model_validate(request)
