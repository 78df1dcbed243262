"""Consensus submission client.

Submission is at-most-once: :meth:`SubmissionClient.submit` calls the
network exactly once and never retries. A caller that retries gets a new,
distinct transaction id. Recording the returned id onto the owning claim is
a separate step performed by the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from provenant.anchoring.attestations import AttestationMessage
from provenant.anchoring.network import ConsensusNetwork, validate_topic_id
from provenant.errors import NetworkUnavailable, PayloadTooLarge, ProvenantError
from provenant.observability import log_event

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGE_BYTES = 4096


@dataclass(frozen=True)
class SubmissionReceipt:
    transaction_id: str
    topic_id: str
    claim_hash: str
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    consensus_timestamp: Optional[datetime] = None
    sequence_number: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "topic_id": self.topic_id,
            "claim_hash": self.claim_hash,
            "submitted_at": self.submitted_at.isoformat(),
            "consensus_timestamp": self.consensus_timestamp.isoformat()
            if self.consensus_timestamp
            else None,
            "sequence_number": self.sequence_number,
        }


class SubmissionClient:
    """Send attestation envelopes to one consensus topic."""

    def __init__(
        self,
        network: ConsensusNetwork,
        topic_id: str,
        *,
        max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES,
    ) -> None:
        self._network = network
        self.topic_id = validate_topic_id(topic_id)
        self.max_message_bytes = max_message_bytes

    def encode(self, message: AttestationMessage) -> bytes:
        """Serialize ``message``; oversized payloads fail before any network I/O."""

        payload = message.to_bytes()
        if len(payload) > self.max_message_bytes:
            raise PayloadTooLarge(len(payload), self.max_message_bytes)
        return payload

    def submit(self, message: AttestationMessage) -> SubmissionReceipt:
        payload = self.encode(message)
        log_event(
            "consensus.submit.start",
            topic_id=self.topic_id,
            message_type=message.type,
            claim_hash=message.verification_hash,
            size=len(payload),
        )
        try:
            handle = self._network.submit_message(self.topic_id, payload)
        except ProvenantError:
            log_event(
                "consensus.submit.failed",
                level=logging.WARNING,
                topic_id=self.topic_id,
                claim_hash=message.verification_hash,
            )
            raise
        except OSError as exc:
            log_event(
                "consensus.submit.failed",
                level=logging.WARNING,
                topic_id=self.topic_id,
                claim_hash=message.verification_hash,
                error=str(exc),
            )
            raise NetworkUnavailable(f"Consensus network unavailable: {exc}") from exc

        receipt = SubmissionReceipt(
            transaction_id=handle.transaction_id,
            topic_id=handle.topic_id or self.topic_id,
            claim_hash=message.verification_hash,
            consensus_timestamp=handle.consensus_timestamp,
            sequence_number=handle.sequence_number,
        )
        log_event(
            "consensus.submit.acknowledged",
            topic_id=receipt.topic_id,
            transaction_id=receipt.transaction_id,
            claim_hash=receipt.claim_hash,
        )
        return receipt
