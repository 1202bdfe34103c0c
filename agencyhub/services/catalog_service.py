"""
Module catalog service.
"""
import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agencyhub.core.exceptions import CatalogEntryLockedError
from agencyhub.models.assignment import AgencyModuleAssignment
from agencyhub.models.catalog import ModuleCatalogEntry, ModuleCategory, RecommendationRule
from agencyhub.schemas.catalog import ModuleCreate, ModuleUpdate, RuleCreate
from agencyhub.services.recommendation_engine import CatalogModule, CatalogSnapshot, Rule

logger = logging.getLogger(__name__)

# Fields that stay editable after an agency has the module assigned
MUTABLE_WHEN_REFERENCED = {"base_cost", "is_active"}


class CatalogService:
    """Service for module catalog operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_module(self, module_id: UUID) -> ModuleCatalogEntry | None:
        result = await self.db.execute(
            select(ModuleCatalogEntry).where(ModuleCatalogEntry.id == module_id)
        )
        return result.scalar_one_or_none()

    async def get_module_by_path(self, path: str) -> ModuleCatalogEntry | None:
        result = await self.db.execute(
            select(ModuleCatalogEntry).where(ModuleCatalogEntry.path == path)
        )
        return result.scalar_one_or_none()

    async def list_modules(
        self,
        include_inactive: bool = False,
        category: ModuleCategory | None = None,
    ) -> list[ModuleCatalogEntry]:
        """List catalog modules in catalog order."""
        query = select(ModuleCatalogEntry)
        if not include_inactive:
            query = query.where(ModuleCatalogEntry.is_active.is_(True))
        if category:
            query = query.where(ModuleCatalogEntry.category == category)
        query = query.order_by(ModuleCatalogEntry.sort_order, ModuleCatalogEntry.path)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_module(self, data: ModuleCreate) -> ModuleCatalogEntry:
        """Append a module to the catalog."""
        max_order = await self.db.scalar(select(func.max(ModuleCatalogEntry.sort_order)))

        module = ModuleCatalogEntry(
            **data.model_dump(),
            sort_order=(max_order or 0) + 1,
        )
        self.db.add(module)
        await self.db.flush()
        await self.db.refresh(module)

        logger.info(f"Catalog module created: {module.path}")
        return module

    async def is_referenced(self, module_id: UUID) -> bool:
        return bool(await self.db.scalar(
            select(exists().where(AgencyModuleAssignment.module_id == module_id))
        ))

    async def update_module(self, module_id: UUID, data: ModuleUpdate) -> ModuleCatalogEntry | None:
        module = await self.get_module(module_id)
        if not module:
            return None

        update_data = data.model_dump(exclude_unset=True)
        changed = {
            name for name, value in update_data.items()
            if getattr(module, name) != value
        }
        locked = changed - MUTABLE_WHEN_REFERENCED
        if locked and await self.is_referenced(module_id):
            raise CatalogEntryLockedError(
                f"Module {module.path} is assigned to agencies; "
                f"only base_cost and is_active may change (got: {', '.join(sorted(locked))})"
            )

        for name, value in update_data.items():
            setattr(module, name, value)

        await self.db.flush()
        await self.db.refresh(module)
        return module

    async def list_rules(self, module_id: UUID | None = None) -> list[RecommendationRule]:
        query = select(RecommendationRule)
        if module_id:
            query = query.where(RecommendationRule.module_id == module_id)
        result = await self.db.execute(query.order_by(RecommendationRule.created_at))
        return list(result.scalars().all())

    async def add_rule(self, module_id: UUID, data: RuleCreate) -> RecommendationRule | None:
        module = await self.get_module(module_id)
        if not module:
            return None

        rule = RecommendationRule(module_id=module_id, **data.model_dump())
        self.db.add(rule)
        await self.db.flush()
        await self.db.refresh(rule)
        return rule

    async def load_snapshot(self) -> CatalogSnapshot:
        """Read an immutable snapshot of the active catalog and its rules."""
        modules = await self.list_modules()
        active_ids = {m.id for m in modules}
        rules = await self.list_rules()

        return CatalogSnapshot(
            modules=tuple(
                CatalogModule(
                    id=m.id,
                    path=m.path,
                    title=m.title,
                    category=m.category.value,
                    base_cost=Decimal(str(m.base_cost)),
                    description=m.description,
                    icon=m.icon,
                    requires_approval=m.requires_approval,
                    sort_order=m.sort_order,
                )
                for m in modules
            ),
            rules=tuple(
                Rule.build(
                    r.module_id,
                    r.weight,
                    industry=r.industry,
                    company_size=r.company_size,
                    primary_focus=r.primary_focus,
                    business_goals=r.business_goals,
                    priority=r.priority,
                    justification=r.justification,
                )
                for r in rules
                if r.module_id in active_ids
            ),
        )
