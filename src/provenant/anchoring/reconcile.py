"""Repair anchoring attempts interrupted between submission and recording.

Outbox rows older than ``settle_after`` are examined:

``submitted``
    The log acknowledged the message but the transaction id never reached
    the claim. Copy it over (or mark the row superseded when the claim
    already carries a different transaction).
``pending``
    The process stopped before the acknowledgement was journaled, so the
    outcome is unknown. Search the log for the attempt's content hash; a
    match with a transaction id is recorded. The attempt is marked failed,
    and so becomes eligible for explicit resubmission, only when the search
    saw the log advance past ``attempted_at + landing_window`` without a
    match. Timeouts short of that point and subscription errors leave the
    row pending for the next run.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from provenant.anchoring.query import ConsensusQuery, QueryOutcome, QueryResult, QueryWindow
from provenant.db.models import ClaimSubmission
from provenant.db.store import CatalogStore
from provenant.errors import ConflictError, NotFound, ProvenantError, QueryCancelled
from provenant.observability import log_event, run_scope

logger = logging.getLogger(__name__)

SEARCH_SKEW = timedelta(minutes=5)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@dataclass
class ReconciliationReport:
    recorded: List[str] = field(default_factory=list)
    found_on_log: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    superseded: List[str] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "recorded": list(self.recorded),
            "found_on_log": list(self.found_on_log),
            "failed": list(self.failed),
            "superseded": list(self.superseded),
            "unresolved": list(self.unresolved),
        }


class Reconciler:
    def __init__(
        self,
        store: CatalogStore,
        query: Optional[ConsensusQuery] = None,
        *,
        settle_after: float = 120.0,
        landing_window: float = 120.0,
        search_timeout: float = 20.0,
        search_grace: float = 1.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._store = store
        self._query = query
        self.settle_after = settle_after
        self.landing_window = timedelta(seconds=landing_window)
        self.search_timeout = search_timeout
        self.search_grace = search_grace
        self._clock = clock

    def run(self, *, limit: int = 100, cancel: Optional[threading.Event] = None) -> ReconciliationReport:
        report = ReconciliationReport()
        cutoff = self._clock() - timedelta(seconds=self.settle_after)
        with run_scope():
            for submission in self._store.list_submissions(
                ("submitted",), older_than=cutoff, limit=limit
            ):
                self._record(submission, submission.transaction_id, submission.consensus_timestamp, report)

            for submission in self._store.list_submissions(
                ("pending",), older_than=cutoff, limit=limit
            ):
                self._search(submission, report, cancel)

            log_event("reconcile.completed", **{k: len(v) for k, v in report.to_dict().items()})
        return report

    def _record(
        self,
        submission: ClaimSubmission,
        transaction_id: str,
        consensus_timestamp: Optional[datetime],
        report: ReconciliationReport,
        *,
        bucket: Optional[List[str]] = None,
    ) -> None:
        try:
            self._store.record_claim_proof(submission.claim_id, transaction_id, consensus_timestamp)
        except ConflictError as exc:
            self._store.mark_submission_superseded(submission.id, exc.message)
            report.superseded.append(submission.id)
            return
        except NotFound as exc:
            self._store.mark_submission_failed(submission.id, exc.message)
            report.failed.append(submission.id)
            return
        self._store.mark_submission_recorded(submission.id)
        (bucket if bucket is not None else report.recorded).append(submission.id)
        log_event(
            "reconcile.recorded",
            submission_id=submission.id,
            claim_id=submission.claim_id,
            transaction_id=transaction_id,
        )

    def _searched_past(self, submission: ClaimSubmission, result: QueryResult) -> bool:
        if result.last_consensus_timestamp is None:
            return False
        horizon = _aware(submission.attempted_at) + self.landing_window
        return _aware(result.last_consensus_timestamp) > horizon

    def _search(
        self,
        submission: ClaimSubmission,
        report: ReconciliationReport,
        cancel: Optional[threading.Event],
    ) -> None:
        if self._query is None:
            report.unresolved.append(submission.id)
            return
        window = QueryWindow(
            start_time=_aware(submission.attempted_at) - SEARCH_SKEW,
            timeout=self.search_timeout,
            grace=self.search_grace,
        )
        try:
            result = self._query.find_attestation(submission.claim_hash, window, cancel=cancel)
        except QueryCancelled:
            raise
        except ProvenantError as exc:
            logger.warning("Log search failed for submission %s: %s", submission.id, exc)
            report.unresolved.append(submission.id)
            return

        if not result.records:
            if result.outcome is QueryOutcome.ERRORED or not self._searched_past(submission, result):
                log_event(
                    "reconcile.search.inconclusive",
                    submission_id=submission.id,
                    outcome=result.outcome.value,
                    seen_until=result.last_consensus_timestamp,
                )
                report.unresolved.append(submission.id)
                return
            self._store.mark_submission_failed(submission.id, "Attestation not found on consensus log")
            report.failed.append(submission.id)
            return

        record = next((r for r in result.records if r.transaction_id), None)
        if record is None:
            logger.warning(
                "Submission %s found on the log without a transaction id", submission.id
            )
            report.unresolved.append(submission.id)
            return
        self._store.mark_submission_submitted(
            submission.id, record.transaction_id, record.consensus_timestamp
        )
        self._record(
            submission,
            record.transaction_id,
            record.consensus_timestamp,
            report,
            bucket=report.found_on_log,
        )
