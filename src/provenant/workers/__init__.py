"""Celery workers for periodic reconciliation of claim submissions."""

from provenant.workers.celery_app import celery_app
from provenant.workers.tasks import reconcile_claim_submissions, run_reconciliation

__all__ = ["celery_app", "reconcile_claim_submissions", "run_reconciliation"]
