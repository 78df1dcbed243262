"""Read-side access to Hedera through the public mirror-node REST API.

The mirror node exposes finality lookups and the ordered message stream of
a consensus topic. Topic subscriptions are emulated by a polling thread
that pages forward from the last consensus timestamp it delivered.
"""

from __future__ import annotations

import base64
import binascii
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests  # type: ignore[import-untyped]
from pydantic import BaseModel, Field

from provenant.anchoring.network import (
    ConsensusRecord,
    ErrorHandler,
    MessageHandler,
    TransactionStatus,
    validate_topic_id,
    validate_transaction_id,
)
from provenant.anchoring.proof_links import mirror_transaction_id
from provenant.errors import NetworkUnavailable

logger = logging.getLogger(__name__)


def parse_consensus_timestamp(value: str) -> datetime:
    """Convert a mirror-node ``seconds.nanos`` string to an aware datetime."""

    seconds, _, nanos = value.partition(".")
    micros = int((nanos or "0").ljust(9, "0")[:6])
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc).replace(microsecond=micros)


def format_consensus_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    whole = int(value.timestamp())
    return f"{whole}.{value.microsecond * 1000:09d}"


class MirrorTransaction(BaseModel):
    transaction_id: str
    consensus_timestamp: str
    result: str


class TransactionsResp(BaseModel):
    transactions: List[MirrorTransaction] = Field(default_factory=list)


class MirrorMessage(BaseModel):
    consensus_timestamp: str
    sequence_number: int
    message: str
    topic_id: Optional[str] = None
    chunk_info: Optional[Dict[str, Any]] = None

    def transaction_id(self) -> Optional[str]:
        initial = (self.chunk_info or {}).get("initial_transaction_id")
        if not isinstance(initial, dict):
            return None
        account = initial.get("account_id")
        valid_start = initial.get("transaction_valid_start")
        if not account or not valid_start:
            return None
        return f"{account}@{valid_start}"

    def to_record(self) -> ConsensusRecord:
        try:
            contents = base64.b64decode(self.message, validate=True)
        except (binascii.Error, ValueError):
            contents = self.message.encode("utf-8")
        return ConsensusRecord(
            sequence_number=self.sequence_number,
            consensus_timestamp=parse_consensus_timestamp(self.consensus_timestamp),
            raw_contents=contents,
            transaction_id=self.transaction_id(),
        )


class MessagesResp(BaseModel):
    messages: List[MirrorMessage] = Field(default_factory=list)
    links: Dict[str, Optional[str]] = Field(default_factory=dict)


class MirrorNodeClient:
    """Synchronous client for the mirror-node REST endpoints we rely on."""

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        page_size: int = 100,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self.timeout = timeout
        self.page_size = page_size

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        try:
            response = self._session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NetworkUnavailable(f"Mirror node unreachable: {exc}") from exc
        if response.status_code == 404:
            return None
        if response.status_code >= 500 or response.status_code == 429:
            raise NetworkUnavailable(
                f"Mirror node returned HTTP {response.status_code}",
                details={"path": path, "status": response.status_code},
            )
        response.raise_for_status()
        return response.json()

    def get_transaction(self, transaction_id: str) -> TransactionStatus:
        """Look up ``transaction_id`` and report whether it reached consensus."""

        validate_transaction_id(transaction_id)
        payload = self._get(f"/api/v1/transactions/{mirror_transaction_id(transaction_id)}")
        if payload is None:
            return TransactionStatus(exists=False, result="NOT_FOUND")
        parsed = TransactionsResp.model_validate(payload)
        if not parsed.transactions:
            return TransactionStatus(exists=False, result="NOT_FOUND")
        tx = parsed.transactions[0]
        return TransactionStatus(
            exists=tx.result == "SUCCESS",
            consensus_timestamp=parse_consensus_timestamp(tx.consensus_timestamp),
            result=tx.result,
        )

    def topic_messages(
        self, topic_id: str, after: Optional[str] = None, *, limit: Optional[int] = None
    ) -> List[MirrorMessage]:
        """Return one page of topic messages strictly after consensus timestamp ``after``."""

        validate_topic_id(topic_id)
        params: Dict[str, Any] = {"order": "asc", "limit": limit or self.page_size}
        if after:
            params["timestamp"] = f"gt:{after}"
        payload = self._get(f"/api/v1/topics/{topic_id}/messages", params=params)
        if payload is None:
            return []
        return MessagesResp.model_validate(payload).messages

    def subscribe(
        self,
        topic_id: str,
        start_time: Optional[datetime],
        on_message: MessageHandler,
        on_error: ErrorHandler,
        *,
        poll_interval: float = 1.0,
    ) -> "MirrorSubscription":
        validate_topic_id(topic_id)
        subscription = MirrorSubscription(
            self,
            topic_id,
            format_consensus_timestamp(start_time) if start_time else None,
            on_message,
            on_error,
            poll_interval=poll_interval,
        )
        subscription.start()
        return subscription

    def close(self) -> None:
        self._session.close()


class MirrorSubscription:
    """Background poller delivering topic messages in consensus order."""

    def __init__(
        self,
        client: MirrorNodeClient,
        topic_id: str,
        after: Optional[str],
        on_message: MessageHandler,
        on_error: ErrorHandler,
        *,
        poll_interval: float = 1.0,
    ):
        self._client = client
        self.topic_id = topic_id
        self._after = after
        self._on_message = on_message
        self._on_error = on_error
        self.poll_interval = poll_interval
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"mirror-subscription-{topic_id}", daemon=True
        )

    @property
    def active(self) -> bool:
        return not self._stopped.is_set()

    def start(self) -> None:
        self._thread.start()

    def _fail(self, exc: BaseException) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        logger.warning("Subscription to %s failed: %s", self.topic_id, exc)
        self._on_error(exc)

    def _deliver(self, page: List[MirrorMessage]) -> None:
        for message in page:
            if self._stopped.is_set():
                return
            record = message.to_record()
            self._after = message.consensus_timestamp
            self._on_message(record)

    def _run(self) -> None:
        while not self._stopped.is_set():
            try:
                page = self._client.topic_messages(self.topic_id, self._after)
            except (NetworkUnavailable, requests.RequestException, ValueError) as exc:
                self._fail(exc)
                return
            try:
                self._deliver(page)
            except Exception as exc:  # malformed record or a failing handler
                self._fail(exc)
                return
            if len(page) < self._client.page_size:
                self._stopped.wait(self.poll_interval)

    def cancel(self) -> None:
        self._stopped.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=self._client.timeout + 1.0)
