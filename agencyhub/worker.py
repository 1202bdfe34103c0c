"""
Celery Worker Configuration

The API provisions agencies inline; the worker only runs the periodic
reconciliation that fails stuck workflows and finishes failed drops.
"""

import logging

from celery import Celery
from celery.schedules import crontab

from agencyhub.config import settings

logger = logging.getLogger(__name__)


celery_app = Celery(
    "agencyhub",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["agencyhub.tasks.provisioning_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # At most one reconciliation per worker; redelivered if the worker dies
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_time_limit=600,
    task_soft_time_limit=540,

    result_expires=6 * 3600,

    task_routes={
        "agencyhub.tasks.provisioning_tasks.*": {"queue": "provisioning"},
    },
    task_default_queue="default",
)

celery_app.conf.beat_schedule = {
    "reconcile-provisioning": {
        "task": "agencyhub.tasks.provisioning_tasks.reconcile_provisioning",
        "schedule": crontab(minute=f"*/{settings.PROVISIONING_RECONCILE_INTERVAL_MINUTES}"),
    },
}


class AgencyHubTask(celery_app.Task):
    """Logs task failures and retries."""

    abstract = True

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Task {self.name} [{task_id}] failed: {exc}")

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        logger.warning(f"Task {self.name} [{task_id}] retrying: {exc}")


celery_app.Task = AgencyHubTask
