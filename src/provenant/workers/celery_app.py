"""Celery app configuration for background reconciliation.

Broker: Redis
Result Backend: Redis
Beat: ``reconcile_claim_submissions`` every five minutes
"""

from __future__ import annotations

from celery import Celery

from provenant.config import Settings

RECONCILE_INTERVAL_SECONDS = 300.0

_settings = Settings.from_env()

celery_app = Celery(
    "provenant",
    broker=_settings.celery_broker_url,
    backend=_settings.celery_result_backend,
    include=["provenant.workers.tasks"],
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Task tracking
    task_track_started=True,
    # Timeouts: a run searches the log for at most `limit` pending rows
    task_time_limit=1800,
    task_soft_time_limit=1500,
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=50,
    result_expires=3600,
    # Broker settings
    broker_connection_retry=True,
    broker_connection_retry_on_startup=True,
    broker_connection_max_retries=10,
    task_routes={
        "provenant.workers.tasks.reconcile_claim_submissions": {"queue": "reconcile"},
    },
    beat_schedule={
        "reconcile-claim-submissions": {
            "task": "provenant.workers.tasks.reconcile_claim_submissions",
            "schedule": RECONCILE_INTERVAL_SECONDS,
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
