"""Celery tasks for anchoring maintenance."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from provenant.bootstrap import build_services
from provenant.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_reconciliation(limit: int = 100, services=None) -> Dict[str, Any]:
    """Run one reconciliation pass and return the report as a dict.

    When ``services`` is omitted a service graph is built from the
    environment for the duration of the call.
    """

    owned = services is None
    services = services or build_services()
    try:
        report = services.reconciler.run(limit=limit)
    finally:
        if owned:
            services.close()
    return report.to_dict()


@celery_app.task(bind=True, name="provenant.workers.tasks.reconcile_claim_submissions")
def reconcile_claim_submissions(self, limit: Optional[int] = None) -> Dict[str, Any]:
    """Repair claim submissions stuck between the log and the store."""

    summary = run_reconciliation(limit=limit or 100)
    logger.info(
        "Reconciliation task %s finished: %s",
        self.request.id,
        {key: len(ids) for key, ids in summary.items()},
    )
    return summary
