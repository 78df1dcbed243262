"""Consensus query and finality verification.

The log delivers records through an ordered, push-based subscription per
topic. :meth:`ConsensusQuery.query_by_content_filter` turns that stream into
a bounded request:

* first match → wait ``grace`` for near-simultaneous duplicates, then close;
* no match → close when ``timeout`` fires and return what was collected;
* subscription error → close immediately and return partial results;
* caller cancellation → close immediately and raise :class:`QueryCancelled`.

The subscription is torn down on every one of those paths, and once a
query resolves no further record reaches the caller's handler.

``QueryResult.last_consensus_timestamp`` is the newest record the stream
delivered, matching or not. A timed-out query only proves absence up to
that point.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterator, List, Optional

from provenant.anchoring.network import (
    ConsensusNetwork,
    ConsensusRecord,
    TransactionStatus,
    validate_topic_id,
    validate_transaction_id,
)
from provenant.errors import (
    ConfirmationTimeout,
    NetworkUnavailable,
    ProvenantError,
    QueryCancelled,
    ValidationError,
)
from provenant.observability import log_event

if TYPE_CHECKING:
    from provenant.caching import VerificationCache

logger = logging.getLogger(__name__)

Predicate = Callable[[ConsensusRecord], bool]
RecordHandler = Callable[[ConsensusRecord], None]


class QueryOutcome(str, Enum):
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"


@dataclass(frozen=True)
class QueryWindow:
    start_time: Optional[datetime] = None
    timeout: float = 20.0
    grace: float = 3.0


@dataclass
class QueryResult:
    records: List[ConsensusRecord]
    outcome: QueryOutcome
    error: Optional[str] = None
    last_consensus_timestamp: Optional[datetime] = None

    @property
    def matched(self) -> bool:
        return bool(self.records)

    def __iter__(self) -> Iterator[ConsensusRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


class _Collector:
    """Per-query subscription state. Resolves exactly once."""

    def __init__(self, predicate: Predicate, on_record: Optional[RecordHandler], clock):
        self._predicate = predicate
        self._on_record = on_record
        self._clock = clock
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._last_sequence: Optional[int] = None
        self.last_consensus_timestamp: Optional[datetime] = None
        self.records: List[ConsensusRecord] = []
        self.first_match_at: Optional[float] = None
        self.error: Optional[BaseException] = None
        self.closed = False

    def on_message(self, record: ConsensusRecord) -> None:
        with self._lock:
            if self.closed:
                return
            if self._last_sequence is not None and record.sequence_number <= self._last_sequence:
                return
            self._last_sequence = record.sequence_number
            self.last_consensus_timestamp = record.consensus_timestamp
            try:
                matched = self._predicate(record)
            except (ValueError, TypeError, KeyError, ValidationError) as exc:
                logger.debug("Predicate rejected record %s: %s", record.sequence_number, exc)
                return
            if not matched:
                return
            self.records.append(record)
            if self.first_match_at is None:
                self.first_match_at = self._clock()
            if self._on_record is not None:
                self._on_record(record)
        self._wake.set()

    def on_error(self, exc: BaseException) -> None:
        with self._lock:
            if self.closed:
                return
            self.error = exc
        self._wake.set()

    def wait(self, seconds: float) -> None:
        if seconds > 0:
            self._wake.wait(seconds)
        self._wake.clear()

    def snapshot(self):
        with self._lock:
            return list(self.records), self.first_match_at, self.error, self.last_consensus_timestamp

    def close(self) -> None:
        with self._lock:
            self.closed = True


def _decoded(record: ConsensusRecord) -> Optional[dict]:
    try:
        payload = json.loads(record.raw_contents)
    except (TypeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def hash_filter(verification_hash: str) -> Predicate:
    """Match envelopes whose embedded ``verification_hash`` equals ``verification_hash``."""

    def _predicate(record: ConsensusRecord) -> bool:
        payload = _decoded(record)
        return bool(payload) and payload.get("verification_hash") == verification_hash

    return _predicate


def batch_filter(batch_id: str) -> Predicate:
    """Match product or claim envelopes that reference ``batch_id``."""

    def _predicate(record: ConsensusRecord) -> bool:
        payload = _decoded(record)
        if not payload or not isinstance(payload.get("data"), dict):
            return False
        data = payload["data"]
        return data.get("batch_id") == batch_id or data.get("product_batch_id") == batch_id

    return _predicate


class ConsensusQuery:
    """Finality checks and content searches against one consensus topic."""

    def __init__(
        self,
        network: ConsensusNetwork,
        topic_id: str,
        *,
        cache: Optional[VerificationCache] = None,
        default_window: Optional[QueryWindow] = None,
        poll_interval: float = 0.05,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._network = network
        self.topic_id = validate_topic_id(topic_id)
        self._cache = cache
        self.default_window = default_window or QueryWindow()
        self.poll_interval = poll_interval
        self._clock = clock

    # ------------------------------------------------------------------
    # Finality
    # ------------------------------------------------------------------

    def verify_transaction(self, transaction_id: str) -> TransactionStatus:
        """Return the finality status of ``transaction_id``.

        ``exists=False`` means the log has not (yet) confirmed the
        transaction. Transport failures raise :class:`NetworkUnavailable`
        instead of being reported as a negative.
        """

        validate_transaction_id(transaction_id)
        if self._cache is not None:
            cached = self._cache.get(transaction_id)
            if cached is not None:
                return cached
        try:
            status = self._network.get_transaction(transaction_id)
        except ProvenantError:
            raise
        except OSError as exc:
            raise NetworkUnavailable(
                f"Failed to verify transaction {transaction_id}: {exc}",
                details={"transaction_id": transaction_id},
            ) from exc
        if self._cache is not None:
            self._cache.put(transaction_id, status)
        log_event(
            "consensus.verify",
            transaction_id=transaction_id,
            exists=status.exists,
            result=status.result,
        )
        return status

    def await_confirmation(
        self,
        transaction_id: str,
        *,
        timeout: float = 60.0,
        poll_interval: float = 2.0,
        cancel: Optional[threading.Event] = None,
    ) -> TransactionStatus:
        """Poll until ``transaction_id`` is confirmed or ``timeout`` elapses."""

        deadline = self._clock() + timeout
        last_error: Optional[str] = None
        while True:
            if cancel is not None and cancel.is_set():
                raise QueryCancelled(
                    "Confirmation wait cancelled", details={"transaction_id": transaction_id}
                )
            try:
                status = self.verify_transaction(transaction_id)
            except NetworkUnavailable as exc:
                last_error = exc.message
            else:
                if status.exists:
                    return status
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ConfirmationTimeout(
                    f"Transaction {transaction_id} not confirmed within {timeout}s",
                    details={"transaction_id": transaction_id, "last_error": last_error},
                )
            pause = min(poll_interval, remaining)
            if cancel is not None:
                cancel.wait(pause)
            else:
                time.sleep(pause)

    # ------------------------------------------------------------------
    # Content queries
    # ------------------------------------------------------------------

    def query_by_content_filter(
        self,
        predicate: Predicate,
        window: Optional[QueryWindow] = None,
        *,
        cancel: Optional[threading.Event] = None,
        on_record: Optional[RecordHandler] = None,
    ) -> QueryResult:
        window = window or self.default_window
        collector = _Collector(predicate, on_record, self._clock)
        deadline = self._clock() + window.timeout
        handle: Any = None
        try:
            try:
                handle = self._network.subscribe(
                    self.topic_id, window.start_time, collector.on_message, collector.on_error
                )
            except OSError as exc:
                raise NetworkUnavailable(
                    f"Failed to subscribe to topic {self.topic_id}: {exc}",
                    details={"topic_id": self.topic_id},
                ) from exc

            while True:
                if cancel is not None and cancel.is_set():
                    log_event("consensus.query.cancelled", topic_id=self.topic_id)
                    raise QueryCancelled(
                        "Consensus query cancelled", details={"topic_id": self.topic_id}
                    )
                records, first_match_at, error, seen_until = collector.snapshot()
                now = self._clock()
                if error is not None:
                    result = QueryResult(
                        records,
                        QueryOutcome.ERRORED,
                        error=str(error),
                        last_consensus_timestamp=seen_until,
                    )
                    break
                if first_match_at is not None and now >= first_match_at + window.grace:
                    result = QueryResult(records, QueryOutcome.MATCHED, last_consensus_timestamp=seen_until)
                    break
                if now >= deadline:
                    outcome = QueryOutcome.MATCHED if records else QueryOutcome.TIMED_OUT
                    result = QueryResult(records, outcome, last_consensus_timestamp=seen_until)
                    break
                next_stop = deadline
                if first_match_at is not None:
                    next_stop = min(next_stop, first_match_at + window.grace)
                collector.wait(min(self.poll_interval, max(next_stop - now, 0.0)))
        finally:
            collector.close()
            if handle is not None:
                self._network.unsubscribe(handle)

        log_event(
            "consensus.query.resolved",
            topic_id=self.topic_id,
            outcome=result.outcome.value,
            records=len(result.records),
            error=result.error,
        )
        return result

    def find_attestation(
        self,
        verification_hash: str,
        window: Optional[QueryWindow] = None,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> QueryResult:
        return self.query_by_content_filter(hash_filter(verification_hash), window, cancel=cancel)

    def find_by_batch_id(
        self,
        batch_id: str,
        window: Optional[QueryWindow] = None,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> QueryResult:
        return self.query_by_content_filter(batch_filter(batch_id), window, cancel=cancel)
