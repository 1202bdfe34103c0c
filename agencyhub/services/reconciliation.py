"""
Provisioning reconciliation.

Catches what an interrupted workflow leaves behind:
- agencies stuck in pending/provisioning (worker crash, process restart)
  are failed, their database dropped and their domain released
- agencies whose failure-path drop did not succeed (cleanup_pending)
  get the drop retried until it does
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agencyhub.config import settings
from agencyhub.core.exceptions import ErrorCode
from agencyhub.models.agency import Agency
from agencyhub.models.base import utcnow
from agencyhub.services.database_admin import DatabaseAdmin, get_database_admin
from agencyhub.services.provisioning import STALLED_STEP_REASONS
from agencyhub.services.tenant_registry import TenantRegistry

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    stale_failed: list[UUID] = field(default_factory=list)
    databases_dropped: list[str] = field(default_factory=list)
    cleanup_still_pending: list[UUID] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "stale_failed": [str(a) for a in self.stale_failed],
            "databases_dropped": self.databases_dropped,
            "cleanup_still_pending": [str(a) for a in self.cleanup_still_pending],
        }


class ProvisioningReconciler:
    """Finishes the failure path for interrupted or half-cleaned provisioning."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        database_admin: DatabaseAdmin | None = None,
        stale_after: timedelta | None = None,
    ):
        self.registry = TenantRegistry(session_factory)
        self.database_admin = database_admin or get_database_admin()
        self.stale_after = stale_after or timedelta(minutes=settings.PROVISIONING_STALE_AFTER_MINUTES)

    async def _drop(self, agency: Agency, report: ReconciliationReport) -> bool:
        if not agency.database_name:
            return True
        try:
            # The name is persisted before CREATE DATABASE runs
            if not await self.database_admin.database_exists(agency.database_name):
                return True
            await self.database_admin.drop_database(agency.database_name)
        except Exception:
            logger.error(
                f"Dropping database {agency.database_name} for agency {agency.id} failed again",
                exc_info=True,
            )
            if agency.id not in report.cleanup_still_pending:
                report.cleanup_still_pending.append(agency.id)
            return False
        report.databases_dropped.append(agency.database_name)
        return True

    async def fail_stale(self, report: ReconciliationReport, now: datetime | None = None) -> None:
        cutoff = (now or utcnow()) - self.stale_after
        for agency in await self.registry.find_stale_provisioning(cutoff):
            reason = STALLED_STEP_REASONS.get(agency.provisioning_step, ErrorCode.SEED_FAILED)
            logger.warning(
                f"Agency {agency.id} stuck at {agency.provisioning_step.value} since "
                f"{agency.status_changed_at}; failing with {reason.value}"
            )

            await self.registry.remove_assignments(agency.id)
            dropped = await self._drop(agency, report)
            await self.registry.mark_failed(
                agency.id,
                reason,
                detail="Provisioning did not complete (reconciled)",
                cleanup_pending=not dropped,
            )
            await self.registry.release_reservation(agency.id)
            report.stale_failed.append(agency.id)

    async def retry_cleanup(self, report: ReconciliationReport) -> None:
        for agency in await self.registry.find_pending_cleanup():
            if await self._drop(agency, report):
                await self.registry.clear_cleanup_pending(agency.id)
                await self.registry.release_reservation(agency.id)
                logger.info(f"Deferred cleanup completed for agency {agency.id}")

    async def run(self, now: datetime | None = None) -> ReconciliationReport:
        report = ReconciliationReport()
        await self.fail_stale(report, now)
        await self.retry_cleanup(report)
        return report
