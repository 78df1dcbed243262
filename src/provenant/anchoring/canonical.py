"""Canonical attestation serialization and hashing utilities."""

from __future__ import annotations

import json
from datetime import datetime
from hashlib import sha256
from typing import Any, Dict, Iterable, List, Mapping

from provenant.errors import ValidationError

CANONICAL_FIELDS = ("batch_id", "product_name", "supplier_name", "claims", "timestamp")


def _default(value: Any):
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value)} is not JSON serializable")


def canonical_json(obj: Any) -> str:
    """Serialize *obj* to compact JSON preserving the given key order."""

    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, default=_default)


def _field(attestation: Any, name: str) -> Any:
    if isinstance(attestation, Mapping):
        if name not in attestation:
            raise ValidationError(f"Attestation is missing '{name}'", details={"field": name})
        return attestation[name]
    try:
        return getattr(attestation, name)
    except AttributeError as exc:
        raise ValidationError(f"Attestation is missing '{name}'", details={"field": name}) from exc


def _sorted_claims(claims: Iterable[Any]) -> List[str]:
    if isinstance(claims, (str, bytes)):
        raise ValidationError("Attestation claims must be a list of strings")
    values = list(claims)
    if not all(isinstance(item, str) for item in values):
        raise ValidationError("Attestation claims must be a list of strings")
    return sorted(values)


def _timestamp(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, str) and value:
        return value
    raise ValidationError("Attestation timestamp must be a datetime or ISO-8601 string")


def normalize_attestation(attestation: Any) -> Dict[str, Any]:
    """Project an attestation onto the canonical fields in fixed order."""

    return {
        "batch_id": str(_field(attestation, "batch_id")),
        "product_name": str(_field(attestation, "product_name")),
        "supplier_name": str(_field(attestation, "supplier_name")),
        "claims": _sorted_claims(_field(attestation, "claims")),
        "timestamp": _timestamp(_field(attestation, "timestamp")),
    }


def canonicalize(attestation: Any) -> bytes:
    """Return the canonical UTF-8 bytes for an attestation.

    Accepts a mapping or any object exposing the canonical fields as
    attributes. Claims are sorted so that reordering them does not change
    the result; every other value is taken verbatim.
    """

    return canonical_json(normalize_attestation(attestation)).encode("utf-8")


def hash_bytes(data: bytes) -> str:
    """Return the SHA-256 hex digest of ``data``."""

    return sha256(data).hexdigest()


def attestation_hash(attestation: Any) -> str:
    return hash_bytes(canonicalize(attestation))
