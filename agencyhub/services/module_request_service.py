"""
Module request service.

Agencies ask for modules outside their initial selection; a super admin
approves or rejects each request exactly once. Transitions are
conditional updates on ``status = 'pending'``, so of two concurrent
reviewers only one wins.
"""
import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agencyhub.core.exceptions import (
    ModuleRequestConflictError,
    ModuleRequestNotFoundError,
    UnknownModuleError,
)
from agencyhub.models.assignment import (
    AgencyModuleAssignment,
    AgencyModuleRequest,
    ModuleRequestStatus,
)
from agencyhub.models.base import utcnow
from agencyhub.models.catalog import ModuleCatalogEntry

logger = logging.getLogger(__name__)


class ModuleRequestService:
    """Service for module request operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, request_id: UUID) -> AgencyModuleRequest | None:
        result = await self.db.execute(
            select(AgencyModuleRequest).where(AgencyModuleRequest.id == request_id)
        )
        return result.scalar_one_or_none()

    async def list_requests(
        self,
        page: int = 1,
        per_page: int = 20,
        status: ModuleRequestStatus | None = None,
        agency_id: UUID | None = None,
    ) -> tuple[list[AgencyModuleRequest], int]:
        """List module requests with pagination."""
        filters = []
        if status:
            filters.append(AgencyModuleRequest.status == status)
        if agency_id:
            filters.append(AgencyModuleRequest.agency_id == agency_id)

        query = select(AgencyModuleRequest).where(*filters)
        count_query = select(func.count(AgencyModuleRequest.id)).where(*filters)

        total = await self.db.scalar(count_query)

        query = (
            query.order_by(AgencyModuleRequest.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total or 0

    async def submit(
        self,
        agency_id: UUID,
        module_id: UUID,
        reason: str | None = None,
        requested_by: str | None = None,
    ) -> AgencyModuleRequest:
        """Create a pending request.

        Fails if the module is unknown or inactive, already assigned, or
        already has a pending request from the same agency. A request that
        was rejected earlier does not block a new one.
        """
        module = await self.db.get(ModuleCatalogEntry, module_id)
        if module is None or not module.is_active:
            raise UnknownModuleError([module_id])

        assigned = await self.db.scalar(select(exists().where(and_(
            AgencyModuleAssignment.agency_id == agency_id,
            AgencyModuleAssignment.module_id == module_id,
        ))))
        if assigned:
            raise ModuleRequestConflictError(f"Module {module.path} is already enabled for this agency")

        pending = await self.db.scalar(select(exists().where(and_(
            AgencyModuleRequest.agency_id == agency_id,
            AgencyModuleRequest.module_id == module_id,
            AgencyModuleRequest.status == ModuleRequestStatus.PENDING,
        ))))
        if pending:
            raise ModuleRequestConflictError(f"A request for {module.path} is already pending")

        request = AgencyModuleRequest(
            agency_id=agency_id,
            module_id=module_id,
            status=ModuleRequestStatus.PENDING,
            reason=reason,
            requested_by=requested_by,
        )
        self.db.add(request)
        await self.db.flush()
        await self.db.refresh(request)

        logger.info(f"Module request {request.id} submitted: agency {agency_id} -> {module.path}")
        return request

    async def _transition(self, request_id: UUID, **values) -> AgencyModuleRequest:
        """Move a pending request to a terminal status, exactly once."""
        result = await self.db.execute(
            update(AgencyModuleRequest)
            .where(
                AgencyModuleRequest.id == request_id,
                AgencyModuleRequest.status == ModuleRequestStatus.PENDING,
            )
            .values(reviewed_at=utcnow(), updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            existing = await self.get_by_id(request_id)
            if existing is None:
                raise ModuleRequestNotFoundError(f"Module request {request_id} not found")
            await self.db.refresh(existing)
            raise ModuleRequestConflictError(
                f"Module request {request_id} was already {existing.status.value}"
            )

        request = await self.get_by_id(request_id)
        await self.db.refresh(request)
        return request

    async def approve(
        self,
        request_id: UUID,
        reviewed_by: str,
        cost_override: Decimal | None = None,
    ) -> AgencyModuleRequest:
        """Approve a pending request and enable the module for the agency."""
        request = await self._transition(
            request_id,
            status=ModuleRequestStatus.APPROVED,
            reviewed_by=reviewed_by,
            cost_override=cost_override,
        )

        assignment = await self.db.scalar(select(AgencyModuleAssignment).where(
            AgencyModuleAssignment.agency_id == request.agency_id,
            AgencyModuleAssignment.module_id == request.module_id,
        ))
        if assignment is None:
            self.db.add(AgencyModuleAssignment(
                agency_id=request.agency_id,
                module_id=request.module_id,
                cost_override=cost_override,
                assigned_by=reviewed_by,
            ))
        else:
            assignment.cost_override = cost_override
            assignment.assigned_by = reviewed_by
            assignment.assigned_at = utcnow()

        try:
            await self.db.flush()
        except IntegrityError:
            raise ModuleRequestConflictError(
                f"Module is already enabled for agency {request.agency_id}"
            ) from None

        logger.info(f"Module request {request_id} approved by {reviewed_by}")
        return request

    async def reject(
        self,
        request_id: UUID,
        reviewed_by: str,
        reason: str | None = None,
    ) -> AgencyModuleRequest:
        request = await self._transition(
            request_id,
            status=ModuleRequestStatus.REJECTED,
            reviewed_by=reviewed_by,
            review_note=reason,
        )
        logger.info(f"Module request {request_id} rejected by {reviewed_by}")
        return request

    async def list_assignments(self, agency_id: UUID) -> list[AgencyModuleAssignment]:
        """Modules enabled for an agency, in catalog order."""
        result = await self.db.execute(
            select(AgencyModuleAssignment)
            .join(ModuleCatalogEntry, ModuleCatalogEntry.id == AgencyModuleAssignment.module_id)
            .where(AgencyModuleAssignment.agency_id == agency_id)
            .order_by(ModuleCatalogEntry.sort_order)
        )
        return list(result.unique().scalars().all())
