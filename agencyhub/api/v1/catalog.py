"""
Module catalog administration endpoints.
"""
from uuid import UUID

from fastapi import APIRouter, status

from agencyhub.core.deps import DbSession, SuperAdmin
from agencyhub.core.exceptions import AgencyHubError, ConflictError, NotFoundError, to_http_exception
from agencyhub.models.catalog import ModuleCategory
from agencyhub.schemas.catalog import (
    ModuleCreate,
    ModuleResponse,
    ModuleUpdate,
    RuleCreate,
    RuleResponse,
)
from agencyhub.services.catalog_service import CatalogService

router = APIRouter(prefix="/catalog", tags=["Catalog"])


@router.get("", response_model=list[ModuleResponse])
async def list_modules(
    _: SuperAdmin,
    db: DbSession,
    include_inactive: bool = False,
    category: ModuleCategory | None = None,
):
    """List catalog modules in catalog order."""
    modules = await CatalogService(db).list_modules(include_inactive, category)
    return [ModuleResponse.model_validate(m) for m in modules]


@router.post("", response_model=ModuleResponse, status_code=status.HTTP_201_CREATED)
async def create_module(
    data: ModuleCreate,
    _: SuperAdmin,
    db: DbSession,
):
    """Add a module to the catalog."""
    service = CatalogService(db)
    if await service.get_module_by_path(data.path):
        raise ConflictError(f"Module path {data.path} already exists")

    module = await service.create_module(data)
    return ModuleResponse.model_validate(module)


@router.patch("/{module_id}", response_model=ModuleResponse)
async def update_module(
    module_id: UUID,
    data: ModuleUpdate,
    _: SuperAdmin,
    db: DbSession,
):
    """Update a catalog module.

    Once any agency has the module, only its cost and active flag may change.
    """
    try:
        module = await CatalogService(db).update_module(module_id, data)
    except AgencyHubError as e:
        raise to_http_exception(e)

    if not module:
        raise NotFoundError("Module")
    return ModuleResponse.model_validate(module)


@router.get("/{module_id}/rules", response_model=list[RuleResponse])
async def list_rules(
    module_id: UUID,
    _: SuperAdmin,
    db: DbSession,
):
    service = CatalogService(db)
    if not await service.get_module(module_id):
        raise NotFoundError("Module")

    rules = await service.list_rules(module_id)
    return [RuleResponse.model_validate(r) for r in rules]


@router.post("/{module_id}/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def add_rule(
    module_id: UUID,
    data: RuleCreate,
    _: SuperAdmin,
    db: DbSession,
):
    """Attach a recommendation rule to a module."""
    rule = await CatalogService(db).add_rule(module_id, data)
    if not rule:
        raise NotFoundError("Module")
    return RuleResponse.model_validate(rule)
