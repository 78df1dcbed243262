"""Exception taxonomy shared by the anchoring engine, the store and the gateway."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ProvenantError(Exception):
    """Base class for every error raised by provenant."""

    kind = "error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class ValidationError(ProvenantError):
    """Malformed identifier or attestation, rejected before any network call."""

    kind = "validation_error"


class ConflictError(ProvenantError):
    """A uniqueness or immutability rule was violated in the store."""

    kind = "conflict"


class NotFound(ProvenantError):
    kind = "not_found"


class NetworkUnavailable(ProvenantError):
    """The consensus log or the relational store could not be reached."""

    kind = "network_unavailable"


class PayloadTooLarge(ProvenantError):
    """An attestation exceeds the log's message ceiling."""

    kind = "payload_too_large"

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Attestation is {size} bytes; the consensus log accepts at most {limit}",
            details={"size": size, "limit": limit},
        )
        self.size = size
        self.limit = limit


class Timeout(ProvenantError):
    """A wait window elapsed. Never a confirmed negative."""

    kind = "timeout"


class ConfirmationTimeout(Timeout):
    kind = "confirmation_timeout"


class QueryCancelled(ProvenantError):
    """The caller cancelled a log query before it resolved."""

    kind = "cancelled"
