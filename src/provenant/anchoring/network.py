"""Interface to the external consensus log.

The engine never talks to a concrete SDK. It depends on
:class:`ConsensusNetwork`, which the Hedera gateway implements for
production and an in-memory fake implements for tests.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol, runtime_checkable

from provenant.errors import ValidationError

TRANSACTION_ID_PATTERN = re.compile(r"^\d+\.\d+\.\d+@\d+\.\d+$")
TOPIC_ID_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")


def validate_transaction_id(transaction_id: str) -> str:
    if not isinstance(transaction_id, str) or not TRANSACTION_ID_PATTERN.match(transaction_id):
        raise ValidationError(
            "Invalid transaction ID format",
            details={
                "transaction_id": transaction_id,
                "expected_format": "0.0.12345@1640995200.123456789",
            },
        )
    return transaction_id


def validate_topic_id(topic_id: str) -> str:
    if not isinstance(topic_id, str) or not TOPIC_ID_PATTERN.match(topic_id):
        raise ValidationError(
            "Invalid topic ID format",
            details={"topic_id": topic_id, "expected_format": "0.0.12345"},
        )
    return topic_id


@dataclass(frozen=True)
class TxHandle:
    """Acknowledgement returned by the network for a submitted message."""

    transaction_id: str
    topic_id: str
    sequence_number: Optional[int] = None
    consensus_timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class TransactionStatus:
    exists: bool
    consensus_timestamp: Optional[datetime] = None
    result: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "exists": self.exists,
            "consensus_timestamp": self.consensus_timestamp.isoformat()
            if self.consensus_timestamp
            else None,
            "result": self.result,
        }


@dataclass(frozen=True)
class ConsensusRecord:
    sequence_number: int
    consensus_timestamp: datetime
    raw_contents: bytes
    transaction_id: Optional[str] = None

    def text(self) -> str:
        return self.raw_contents.decode("utf-8", errors="replace")


MessageHandler = Callable[[ConsensusRecord], None]
ErrorHandler = Callable[[BaseException], None]


@runtime_checkable
class SubscriptionHandle(Protocol):
    def cancel(self) -> None: ...


@runtime_checkable
class ConsensusNetwork(Protocol):
    """Operations the engine consumes from a consensus log client."""

    def submit_message(self, topic_id: str, payload: bytes) -> TxHandle: ...

    def subscribe(
        self,
        topic_id: str,
        start_time: Optional[datetime],
        on_message: MessageHandler,
        on_error: ErrorHandler,
    ) -> SubscriptionHandle: ...

    def unsubscribe(self, handle: SubscriptionHandle) -> None: ...

    def get_transaction(self, transaction_id: str) -> TransactionStatus: ...

    def close(self) -> None: ...
