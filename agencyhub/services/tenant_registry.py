"""
Tenant Registry

Source of truth for agencies, their domain reservations and their module
assignments. Every operation runs in its own committed transaction so the
provisioning state machine is durably observable after each step.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import delete, exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agencyhub.core.exceptions import DomainTakenError, ErrorCode
from agencyhub.core.identifiers import full_domain, normalize_domain
from agencyhub.models.agency import (
    Agency,
    DomainReservation,
    ProvisioningStatus,
    ProvisioningStep,
)
from agencyhub.models.assignment import AgencyModuleAssignment, AgencyModuleRequest
from agencyhub.models.base import utcnow
from agencyhub.schemas.agency import AgencyCreate
from agencyhub.services.selection import get_plan_terms

logger = logging.getLogger(__name__)


@dataclass
class Reservation:
    """A held subdomain and the agency id it is held for."""
    domain: str
    agency_id: UUID


class TenantRegistry:
    """Agency registry backed by the central database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Domains
    # ------------------------------------------------------------------

    async def check_domain_availability(self, candidate: str) -> bool:
        """Return True if the domain is not currently reserved."""
        domain = normalize_domain(candidate)
        async with self.session_factory() as session:
            taken = await session.scalar(
                select(exists().where(DomainReservation.domain == domain))
            )
        return not taken

    async def reserve_domain(self, candidate: str, agency_id: UUID | None = None) -> Reservation:
        """Reserve a domain, or raise DomainTakenError if someone holds it.

        The insert is conditional on the primary key, so of two concurrent
        reservations for the same domain exactly one commits.
        """
        domain = normalize_domain(candidate)
        agency_id = agency_id or uuid4()

        async with self.session_factory() as session:
            session.add(DomainReservation(domain=domain, agency_id=agency_id))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise DomainTakenError(domain) from None

        logger.info(f"Domain reserved: {domain} for agency {agency_id}")
        return Reservation(domain=domain, agency_id=agency_id)

    async def release_reservation(self, agency_id: UUID) -> int:
        """Release any domain held by an agency. Returns rows released."""
        async with self.session_factory() as session:
            result = await session.execute(
                delete(DomainReservation).where(DomainReservation.agency_id == agency_id)
            )
            await session.commit()

        if result.rowcount:
            logger.info(f"Domain reservation released for agency {agency_id}")
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Agency lifecycle
    # ------------------------------------------------------------------

    async def create_agency_record(self, request: AgencyCreate, reservation: Reservation) -> Agency:
        """Create the pending agency row for a reserved domain."""
        terms = get_plan_terms(request.subscription_plan)

        agency = Agency(
            id=reservation.agency_id,
            name=request.name,
            domain=full_domain(reservation.domain),
            subscription_plan=request.subscription_plan,
            max_users=terms.max_users,
            is_active=False,
            provisioning_status=ProvisioningStatus.PENDING,
            provisioning_step=ProvisioningStep.DOMAIN_RESERVED,
            cleanup_pending=False,
            industry=request.profile.industry,
            company_size=request.profile.company_size,
            primary_focus=request.profile.primary_focus,
            business_goals=list(request.profile.business_goals),
            admin_email=request.admin.email,
            status_changed_at=utcnow(),
        )

        async with self.session_factory() as session:
            session.add(agency)
            await session.commit()

        return agency

    async def _update(self, agency_id: UUID, **fields) -> Agency | None:
        async with self.session_factory() as session:
            agency = await session.get(Agency, agency_id)
            if agency is None:
                return None
            for name, value in fields.items():
                setattr(agency, name, value)
            await session.commit()
            await session.refresh(agency)
        return agency

    async def record_step(
        self,
        agency_id: UUID,
        step: ProvisioningStep,
        **fields,
    ) -> Agency | None:
        """Persist a completed provisioning step."""
        return await self._update(
            agency_id,
            provisioning_status=ProvisioningStatus.PROVISIONING,
            provisioning_step=step,
            status_changed_at=utcnow(),
            **fields,
        )

    async def finalize_agency(self, agency_id: UUID, owner_user_id: UUID | None = None) -> Agency | None:
        now = utcnow()
        return await self._update(
            agency_id,
            provisioning_status=ProvisioningStatus.ACTIVE,
            provisioning_step=ProvisioningStep.ACTIVE,
            is_active=True,
            owner_user_id=owner_user_id,
            failure_reason=None,
            failure_detail=None,
            activated_at=now,
            status_changed_at=now,
        )

    async def mark_failed(
        self,
        agency_id: UUID,
        reason: ErrorCode,
        detail: str | None = None,
        cleanup_pending: bool = False,
    ) -> Agency | None:
        return await self._update(
            agency_id,
            provisioning_status=ProvisioningStatus.FAILED,
            provisioning_step=ProvisioningStep.FAILED,
            is_active=False,
            failure_reason=reason.value,
            failure_detail=detail,
            cleanup_pending=cleanup_pending,
            status_changed_at=utcnow(),
        )

    async def deactivate_agency(self, agency_id: UUID) -> Agency | None:
        return await self._update(agency_id, is_active=False)

    async def clear_cleanup_pending(self, agency_id: UUID) -> Agency | None:
        return await self._update(agency_id, cleanup_pending=False)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_agency(self, agency_id: UUID) -> Agency | None:
        async with self.session_factory() as session:
            return await session.get(Agency, agency_id)

    async def list_agencies(
        self,
        page: int = 1,
        per_page: int = 20,
        status: ProvisioningStatus | None = None,
    ) -> tuple[list[Agency], int]:
        """List agencies with pagination."""
        query = select(Agency)
        count_query = select(func.count(Agency.id))

        if status:
            query = query.where(Agency.provisioning_status == status)
            count_query = count_query.where(Agency.provisioning_status == status)

        async with self.session_factory() as session:
            total = await session.scalar(count_query)
            query = query.order_by(Agency.created_at.desc()).offset((page - 1) * per_page).limit(per_page)
            result = await session.execute(query)
            agencies = result.scalars().all()

        return list(agencies), total or 0

    async def find_stale_provisioning(self, older_than: datetime) -> list[Agency]:
        """Agencies stuck in a non-terminal state since before ``older_than``."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Agency).where(
                    Agency.provisioning_status.in_(
                        [ProvisioningStatus.PENDING, ProvisioningStatus.PROVISIONING]
                    ),
                    Agency.status_changed_at < older_than,
                )
            )
            return list(result.scalars().all())

    async def find_pending_cleanup(self) -> list[Agency]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Agency).where(Agency.cleanup_pending.is_(True))
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Module assignments
    # ------------------------------------------------------------------

    async def assign_modules(
        self,
        agency_id: UUID,
        module_ids: list[UUID],
        assigned_by: str | None = None,
        cost_overrides: dict[UUID, Decimal] | None = None,
    ) -> int:
        """Enable modules for an agency.

        Modules that are already assigned get their cost override and
        assigner replaced.
        """
        cost_overrides = cost_overrides or {}
        module_ids = list(dict.fromkeys(module_ids))
        async with self.session_factory() as session:
            result = await session.execute(
                select(AgencyModuleAssignment).where(
                    AgencyModuleAssignment.agency_id == agency_id,
                    AgencyModuleAssignment.module_id.in_(module_ids),
                )
            )
            existing = {a.module_id: a for a in result.unique().scalars().all()}

            for module_id in module_ids:
                assignment = existing.get(module_id)
                if assignment is None:
                    session.add(AgencyModuleAssignment(
                        agency_id=agency_id,
                        module_id=module_id,
                        cost_override=cost_overrides.get(module_id),
                        assigned_by=assigned_by,
                    ))
                else:
                    assignment.cost_override = cost_overrides.get(module_id)
                    assignment.assigned_by = assigned_by
                    assignment.assigned_at = utcnow()
            await session.commit()
        return len(module_ids)

    async def remove_assignments(self, agency_id: UUID) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(AgencyModuleAssignment).where(AgencyModuleAssignment.agency_id == agency_id)
            )
            await session.commit()
        return result.rowcount or 0

    async def delete_agency(self, agency_id: UUID) -> bool:
        """Remove an agency's central records and release its domain.

        The tenant database must already be gone.
        """
        async with self.session_factory() as session:
            agency = await session.get(Agency, agency_id)
            if agency is None:
                return False
            domain = agency.domain
            await session.execute(
                delete(AgencyModuleRequest).where(AgencyModuleRequest.agency_id == agency_id)
            )
            await session.execute(
                delete(AgencyModuleAssignment).where(AgencyModuleAssignment.agency_id == agency_id)
            )
            await session.execute(
                delete(DomainReservation).where(DomainReservation.agency_id == agency_id)
            )
            await session.execute(delete(Agency).where(Agency.id == agency_id))
            await session.commit()

        logger.info(f"Deleted agency {agency_id} ({domain}); domain released")
        return True
