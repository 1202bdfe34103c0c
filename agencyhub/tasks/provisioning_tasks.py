"""
Provisioning Tasks

Periodic reconciliation of interrupted provisioning workflows and of
tenant databases whose cleanup drop failed.
"""
import asyncio
import logging

from celery import shared_task

from agencyhub.database import create_session_factory, create_task_engine
from agencyhub.services.database_admin import close_database_admin
from agencyhub.services.reconciliation import ProvisioningReconciler

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run a coroutine on a private event loop (Celery workers are sync)."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@shared_task(bind=True, max_retries=3)
def reconcile_provisioning(self):
    """Fail stale provisioning attempts and retry pending database drops."""
    try:
        return run_async(_reconcile_provisioning())
    except Exception as e:
        logger.error(f"Provisioning reconciliation failed: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=60)


async def _reconcile_provisioning() -> dict:
    task_engine = create_task_engine()
    try:
        report = await ProvisioningReconciler(create_session_factory(task_engine)).run()
    finally:
        await close_database_admin()
        await task_engine.dispose()

    summary = report.to_dict()
    if report.stale_failed or report.databases_dropped or report.cleanup_still_pending:
        logger.info(f"Provisioning reconciliation: {summary}")
    return summary
