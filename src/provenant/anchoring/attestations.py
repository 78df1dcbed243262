"""Attestation wire models.

Two envelopes are submitted to the consensus log::

    {"type": "PRODUCT_REGISTRATION", "timestamp": ..., "data": {batch_id, ...}, "verification_hash": ...}
    {"type": "CLAIM_SUBMISSION",     "timestamp": ..., "data": {claim_id, ...}, "verification_hash": ...}

``verification_hash`` is the SHA-256 of the canonical attestation derived
from ``data`` and ``timestamp``, so any reader can recompute it without
trusting the log.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from provenant.anchoring.canonical import attestation_hash, canonical_json
from provenant.errors import ValidationError

PRODUCT_REGISTRATION = "PRODUCT_REGISTRATION"
CLAIM_SUBMISSION = "CLAIM_SUBMISSION"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return str(value)


def claim_descriptor(claim_type: str, description: str) -> str:
    """Encode a claim as a compact JSON pair so no separator can be forged."""

    return canonical_json([claim_type, description])


class Attestation(BaseModel):
    """The canonical content whose hash is anchored."""

    model_config = ConfigDict(frozen=True)

    batch_id: str
    product_name: str
    supplier_name: str
    claims: List[str] = Field(default_factory=list)
    timestamp: str

    def content_hash(self) -> str:
        return attestation_hash(self)


class ProductData(BaseModel):
    batch_id: str
    product_name: str
    supplier_name: str
    description: Optional[str] = None
    created_at: Optional[str] = None
    claims: List[str] = Field(default_factory=list)


class ClaimData(BaseModel):
    claim_id: str
    product_batch_id: str
    product_name: str
    supplier_name: str
    claim_type: str
    claim_description: str
    created_at: Optional[str] = None


class _Envelope(BaseModel):
    timestamp: str
    verification_hash: str

    def attestation(self) -> Attestation:  # pragma: no cover - overridden
        raise NotImplementedError

    def to_bytes(self) -> bytes:
        return canonical_json(self.model_dump(mode="json")).encode("utf-8")

    def verify(self) -> bool:
        """Recompute the content hash and compare it with the embedded one."""

        return self.attestation().content_hash() == self.verification_hash


class ProductMessage(_Envelope):
    type: Literal["PRODUCT_REGISTRATION"] = PRODUCT_REGISTRATION
    data: ProductData

    def attestation(self) -> Attestation:
        return Attestation(
            batch_id=self.data.batch_id,
            product_name=self.data.product_name,
            supplier_name=self.data.supplier_name,
            claims=list(self.data.claims),
            timestamp=self.timestamp,
        )


class ClaimMessage(_Envelope):
    type: Literal["CLAIM_SUBMISSION"] = CLAIM_SUBMISSION
    data: ClaimData

    def attestation(self) -> Attestation:
        return Attestation(
            batch_id=self.data.product_batch_id,
            product_name=self.data.product_name,
            supplier_name=self.data.supplier_name,
            claims=[claim_descriptor(self.data.claim_type, self.data.claim_description)],
            timestamp=self.timestamp,
        )


AttestationMessage = Union[ProductMessage, ClaimMessage]


def build_product_message(
    product: Any, claims: Iterable[Any] = (), *, timestamp: Optional[str] = None
) -> ProductMessage:
    """Build the registration envelope for a product and the claims made with it."""

    stamp = timestamp or utc_now_iso()
    data = ProductData(
        batch_id=str(product.batch_id),
        product_name=product.product_name,
        supplier_name=product.supplier_name,
        description=getattr(product, "description", None),
        created_at=iso(getattr(product, "created_at", None)),
        claims=sorted(claim_descriptor(c.claim_type, c.description) for c in claims),
    )
    attestation = Attestation(
        batch_id=data.batch_id,
        product_name=data.product_name,
        supplier_name=data.supplier_name,
        claims=data.claims,
        timestamp=stamp,
    )
    return ProductMessage(timestamp=stamp, data=data, verification_hash=attestation.content_hash())


def build_claim_message(
    claim: Any, product: Any, *, timestamp: Optional[str] = None
) -> ClaimMessage:
    """Build the submission envelope for one claim of ``product``."""

    stamp = timestamp or utc_now_iso()
    data = ClaimData(
        claim_id=str(claim.id),
        product_batch_id=str(product.batch_id),
        product_name=product.product_name,
        supplier_name=product.supplier_name,
        claim_type=claim.claim_type,
        claim_description=claim.description,
        created_at=iso(getattr(claim, "created_at", None)),
    )
    message = ClaimMessage(timestamp=stamp, data=data, verification_hash="")
    return message.model_copy(update={"verification_hash": message.attestation().content_hash()})


def parse_message(raw: Union[bytes, str]) -> AttestationMessage:
    """Decode an envelope read back from the log."""

    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Consensus message is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Consensus message must be a JSON object")
    kind = payload.get("type")
    try:
        if kind == PRODUCT_REGISTRATION:
            return ProductMessage.model_validate(payload)
        if kind == CLAIM_SUBMISSION:
            return ClaimMessage.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Consensus message does not match the attestation format",
            details={"errors": exc.errors(include_url=False)},
        ) from exc
    raise ValidationError("Unknown attestation type", details={"type": kind})


def verify_message(raw: Union[bytes, str, AttestationMessage]) -> bool:
    message = raw if isinstance(raw, (ProductMessage, ClaimMessage)) else parse_message(raw)
    return message.verify()
