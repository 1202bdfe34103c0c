"""
Provisioning Engine

Turns an agency request into a live, isolated agency:

    requested -> domain_reserved -> database_created
              -> schema_materialized -> seeded -> active

Every completed step is persisted on the agency row before the next one
starts. Any step may fail into ``failed``; the failure path drops the
partially created database and releases the domain before returning.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from agencyhub.config import settings
from agencyhub.core.exceptions import (
    DomainTakenError,
    ErrorCode,
    InvalidProfileError,
    ProvisioningStepError,
)
from agencyhub.core.identifiers import generate_database_name, normalize_domain
from agencyhub.models.agency import Agency, ProvisioningStatus, ProvisioningStep
from agencyhub.schemas.agency import AgencyCreate
from agencyhub.services.catalog_service import CatalogService
from agencyhub.services.database_admin import DatabaseAdmin, get_database_admin
from agencyhub.services.domain_lock import DomainLock
from agencyhub.services.recommendation_engine import recommend
from agencyhub.services.selection import SelectedModules, apply_template
from agencyhub.services.tenant_registry import TenantRegistry
from agencyhub.tenant_schema.migrations import TENANT_MIGRATIONS, TenantMigration
from agencyhub.tenant_schema.runner import TenantSchemaRunner
from agencyhub.tenant_schema.seed import TenantSeed, seed_tenant

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = (
    "We could not finish setting up your agency. Please try again in a few minutes."
)

USER_MESSAGES = {
    ErrorCode.DOMAIN_TAKEN: "This domain is already taken. Please choose another one.",
    ErrorCode.DATABASE_CREATE_FAILED: GENERIC_FAILURE_MESSAGE,
    ErrorCode.SCHEMA_MIGRATION_FAILED: GENERIC_FAILURE_MESSAGE,
    ErrorCode.SEED_FAILED: GENERIC_FAILURE_MESSAGE,
}

# Reason recorded when a workflow stops after the given persisted step
STALLED_STEP_REASONS = {
    ProvisioningStep.REQUESTED: ErrorCode.DATABASE_CREATE_FAILED,
    ProvisioningStep.DOMAIN_RESERVED: ErrorCode.DATABASE_CREATE_FAILED,
    ProvisioningStep.DATABASE_CREATED: ErrorCode.SCHEMA_MIGRATION_FAILED,
    ProvisioningStep.SCHEMA_MATERIALIZED: ErrorCode.SEED_FAILED,
    ProvisioningStep.SEEDED: ErrorCode.SEED_FAILED,
}

Seeder = Callable[[AsyncEngine, TenantSeed], Awaitable[UUID]]


@dataclass
class ProvisioningResult:
    """Terminal outcome of one provisioning attempt."""
    status: ProvisioningStatus
    message: str
    agency_id: UUID | None = None
    domain: str | None = None
    step: ProvisioningStep | None = None
    failure_reason: ErrorCode | None = None
    database_name: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ProvisioningStatus.ACTIVE


class ProvisioningEngine:
    """Runs provisioning workflows.

    Workflows run as tasks owned by the engine. A caller that stops
    waiting (disconnect, timeout, cancellation) does not abort a workflow
    halfway; it always reaches ``active`` or ``failed``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        database_admin: DatabaseAdmin | None = None,
        max_concurrency: int | None = None,
        domain_lock: DomainLock | None = None,
        migrations: Sequence[TenantMigration] = TENANT_MIGRATIONS,
        seeder: Seeder = seed_tenant,
    ):
        self.session_factory = session_factory
        self.registry = TenantRegistry(session_factory)
        self.database_admin = database_admin or get_database_admin()
        self.domain_lock = domain_lock
        self.migrations = migrations
        self.seeder = seeder
        self._semaphore = asyncio.Semaphore(
            max_concurrency or settings.PROVISIONING_MAX_CONCURRENCY
        )
        self._inflight: set[asyncio.Task] = set()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def provision(self, request: AgencyCreate, requested_by: str | None = None) -> ProvisioningResult:
        """Provision an agency and wait for its terminal state."""
        task = asyncio.create_task(self._run(request, requested_by))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def wait_inflight(self) -> None:
        """Wait for every running workflow to finish (used on shutdown)."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    async def _resolve_selection(self, request: AgencyCreate) -> SelectedModules:
        async with self.session_factory() as session:
            snapshot = await CatalogService(session).load_snapshot()

        recommendation = recommend(request.profile.to_profile(), snapshot)
        if recommendation.insufficient_profile:
            raise InvalidProfileError(
                "Industry, company size and primary focus are required to provision an agency"
            )
        return apply_template(
            request.selection.template,
            recommendation,
            request.selection.module_ids,
        )

    async def _run(self, request: AgencyCreate, requested_by: str | None) -> ProvisioningResult:
        domain = normalize_domain(request.domain)
        selected = await self._resolve_selection(request)

        if self.domain_lock is None:
            return await self._reserve_and_materialize(domain, request, selected, requested_by)

        async with self.domain_lock.hold(domain) as acquired:
            if not acquired:
                logger.info(f"Provisioning already in progress for {domain}")
                return self._domain_taken(domain)
            return await self._reserve_and_materialize(domain, request, selected, requested_by)

    async def _reserve_and_materialize(
        self,
        domain: str,
        request: AgencyCreate,
        selected: SelectedModules,
        requested_by: str | None,
    ) -> ProvisioningResult:
        try:
            reservation = await self.registry.reserve_domain(domain)
        except DomainTakenError:
            return self._domain_taken(domain)

        try:
            agency = await self.registry.create_agency_record(request, reservation)
        except Exception:
            logger.error(f"Failed to create agency record for {domain}", exc_info=True)
            await self._release(reservation.agency_id)
            raise

        logger.info(f"Provisioning agency {agency.id} ({domain})")
        async with self._semaphore:
            return await self._materialize(agency, request, selected, requested_by)

    async def _materialize(
        self,
        agency: Agency,
        request: AgencyCreate,
        selected: SelectedModules,
        requested_by: str | None,
    ) -> ProvisioningResult:
        database_name = generate_database_name(normalize_domain(agency.domain))
        database_created = False
        tenant_engine: Optional[AsyncEngine] = None

        try:
            # Persist the name first so a crashed worker's database can be found
            await self.registry.record_step(
                agency.id,
                ProvisioningStep.DOMAIN_RESERVED,
                database_name=database_name,
            )

            try:
                await self.database_admin.create_database(database_name)
            except Exception as e:
                raise ProvisioningStepError(
                    ErrorCode.DATABASE_CREATE_FAILED,
                    f"CREATE DATABASE {database_name} failed: {e}",
                ) from e
            database_created = True
            await self.registry.record_step(agency.id, ProvisioningStep.DATABASE_CREATED)

            tenant_engine = create_async_engine(
                self.database_admin.tenant_url(database_name),
                poolclass=NullPool,
            )
            await TenantSchemaRunner(tenant_engine, self.migrations).apply()
            await self.registry.record_step(agency.id, ProvisioningStep.SCHEMA_MATERIALIZED)

            owner_id = await self._seed(agency, request, selected, tenant_engine, requested_by)
            await self.registry.record_step(agency.id, ProvisioningStep.SEEDED)

            activated = await self.registry.finalize_agency(agency.id, owner_user_id=owner_id)
        except ProvisioningStepError as e:
            return await self._fail(agency, database_name, database_created, e.code, e)
        except Exception as e:
            # A registry write failed between steps; charge it to the step in flight
            current = await self._current_step(agency.id)
            reason = STALLED_STEP_REASONS.get(current, ErrorCode.SEED_FAILED)
            return await self._fail(agency, database_name, database_created, reason, e)
        finally:
            if tenant_engine is not None:
                await tenant_engine.dispose()

        logger.info(f"Agency {agency.id} ({agency.domain}) is active on database {database_name}")
        return ProvisioningResult(
            status=ProvisioningStatus.ACTIVE,
            message="Agency created successfully",
            agency_id=agency.id,
            domain=activated.domain if activated else agency.domain,
            step=ProvisioningStep.ACTIVE,
            database_name=database_name,
        )

    async def _seed(
        self,
        agency: Agency,
        request: AgencyCreate,
        selected: SelectedModules,
        tenant_engine: AsyncEngine,
        requested_by: str | None,
    ) -> UUID:
        seed = TenantSeed(
            agency_id=agency.id,
            agency_name=agency.name,
            domain=agency.domain,
            subscription_plan=agency.subscription_plan,
            max_users=agency.max_users,
            admin_email=request.admin.email,
            admin_full_name=request.admin.full_name,
            admin_password=request.admin.password,
            admin_phone=request.admin.phone,
            industry=agency.industry,
            company_size=agency.company_size,
            primary_focus=agency.primary_focus,
            business_goals=agency.business_goals,
            modules=tuple(
                (m.module_id, m.path, m.title, m.category) for m in selected.modules
            ),
        )

        try:
            owner_id = await self.seeder(tenant_engine, seed)
            await self.registry.assign_modules(
                agency.id,
                selected.module_ids,
                assigned_by=requested_by,
            )
        except Exception as e:
            raise ProvisioningStepError(
                ErrorCode.SEED_FAILED,
                f"Seeding agency {agency.id} failed: {e}",
            ) from e
        return owner_id

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    def _domain_taken(self, domain: str) -> ProvisioningResult:
        return ProvisioningResult(
            status=ProvisioningStatus.FAILED,
            message=USER_MESSAGES[ErrorCode.DOMAIN_TAKEN],
            domain=domain,
            failure_reason=ErrorCode.DOMAIN_TAKEN,
        )

    async def _current_step(self, agency_id: UUID) -> ProvisioningStep | None:
        try:
            agency = await self.registry.get_agency(agency_id)
        except Exception:
            logger.error(f"Could not read provisioning step for {agency_id}", exc_info=True)
            return None
        return agency.provisioning_step if agency else None

    async def _release(self, agency_id: UUID) -> None:
        try:
            await self.registry.release_reservation(agency_id)
        except Exception:
            logger.error(f"Failed to release domain for agency {agency_id}", exc_info=True)

    async def drop_tenant_database(self, database_name: str) -> bool:
        """Drop a tenant database. Returns False if the drop failed."""
        try:
            await self.database_admin.drop_database(database_name)
        except Exception:
            logger.error(f"Failed to drop tenant database {database_name}", exc_info=True)
            return False
        return True

    async def _fail(
        self,
        agency: Agency,
        database_name: str,
        database_created: bool,
        reason: ErrorCode,
        error: Exception,
    ) -> ProvisioningResult:
        logger.error(
            f"Provisioning agency {agency.id} ({agency.domain}) failed with {reason.value}: {error}",
            exc_info=error,
        )

        if reason == ErrorCode.SEED_FAILED:
            try:
                await self.registry.remove_assignments(agency.id)
            except Exception:
                logger.error(f"Failed to remove module assignments for {agency.id}", exc_info=True)

        dropped = True
        if database_created:
            dropped = await self.drop_tenant_database(database_name)

        try:
            await self.registry.mark_failed(
                agency.id,
                reason,
                detail=str(error),
                cleanup_pending=not dropped,
            )
        except Exception:
            # Left in "provisioning"; the reconciliation task will fail it later
            logger.error(f"Failed to record failure for agency {agency.id}", exc_info=True)

        await self._release(agency.id)

        return ProvisioningResult(
            status=ProvisioningStatus.FAILED,
            message=USER_MESSAGES.get(reason, GENERIC_FAILURE_MESSAGE),
            agency_id=agency.id,
            domain=agency.domain,
            step=ProvisioningStep.FAILED,
            failure_reason=reason,
            database_name=database_name,
        )

    # ------------------------------------------------------------------
    # Decommissioning
    # ------------------------------------------------------------------

    async def decommission(self, agency: Agency) -> bool:
        """Drop an agency's database, then delete its records and free its domain.

        Returns False if the database could not be dropped; the central
        records are then left in place so the deletion can be retried.
        """
        name = agency.database_name
        if name:
            try:
                exists = await self.database_admin.database_exists(name)
            except Exception:
                logger.error(f"Could not check tenant database {name}", exc_info=True)
                return False
            if exists and not await self.drop_tenant_database(name):
                return False

        await self.registry.delete_agency(agency.id)
        logger.info(f"Agency {agency.id} ({agency.domain}) decommissioned")
        return True


_provisioning_engine: Optional[ProvisioningEngine] = None


def get_provisioning_engine() -> ProvisioningEngine:
    """Get the process-wide provisioning engine."""
    global _provisioning_engine
    if _provisioning_engine is None:
        from agencyhub.database import AsyncSessionLocal

        lock = DomainLock() if settings.PROVISIONING_LOCK_ENABLED else None
        _provisioning_engine = ProvisioningEngine(AsyncSessionLocal, domain_lock=lock)
    return _provisioning_engine


async def close_provisioning_engine():
    global _provisioning_engine
    if _provisioning_engine:
        await _provisioning_engine.wait_inflight()
        if _provisioning_engine.domain_lock is not None:
            await _provisioning_engine.domain_lock.close()
        _provisioning_engine = None
