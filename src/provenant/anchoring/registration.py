"""Product registration and claim anchoring.

A product is always persisted first. Its claims are then inserted and
anchored one at a time, in request order, so a product's claims appear on
the log in a deterministic sequence. Each claim's outcome is independent:
a claim that cannot be anchored never prevents its siblings from being
anchored, and never rolls back the product.

Anchoring one claim is three independently retryable steps::

    open outbox row (pending) → submit to the log → record tx id on the claim

If the process stops between "submitted" and "recorded", the outbox row
keeps enough state for :mod:`provenant.anchoring.reconcile` to finish the
job without resubmitting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from provenant.anchoring.attestations import build_claim_message, build_product_message
from provenant.anchoring.batch_ids import BatchIdGenerator, extract_prefix
from provenant.anchoring.submission import SubmissionClient, SubmissionReceipt
from provenant.db.models import Claim, Product
from provenant.db.store import CatalogStore
from provenant.errors import (
    ConflictError,
    NetworkUnavailable,
    NotFound,
    ProvenantError,
    ValidationError,
)
from provenant.observability import log_event, run_scope

logger = logging.getLogger(__name__)


class AnchorStatus(str, Enum):
    ANCHORED = "anchored"
    NOT_ANCHORED = "not_anchored"
    ORPHANED = "orphaned"


@dataclass(frozen=True)
class ClaimInput:
    claim_type: str
    description: str

    @classmethod
    def coerce(cls, value: Any) -> "ClaimInput":
        if isinstance(value, ClaimInput):
            return value
        if isinstance(value, dict):
            return cls(claim_type=value.get("claim_type", ""), description=value.get("description", ""))
        raise ValidationError("Claims must be ClaimInput instances or mappings")


@dataclass
class ClaimOutcome:
    claim: Claim
    status: AnchorStatus
    receipt: Optional[SubmissionReceipt] = None
    submission_id: Optional[str] = None
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "claim": self.claim.to_dict(),
            "status": self.status.value,
            "receipt": self.receipt.to_dict() if self.receipt else None,
            "submission_id": self.submission_id,
            "error": self.error,
        }


@dataclass
class RegistrationResult:
    product: Product
    verification_url: str
    claims: List[ClaimOutcome] = field(default_factory=list)
    product_receipt: Optional[SubmissionReceipt] = None
    product_error: Optional[Dict[str, Any]] = None

    @property
    def anchored_claims(self) -> int:
        return sum(1 for outcome in self.claims if outcome.status is AnchorStatus.ANCHORED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product.to_dict(),
            "verification_url": self.verification_url,
            "claims": [outcome.to_dict() for outcome in self.claims],
            "product_receipt": self.product_receipt.to_dict() if self.product_receipt else None,
            "product_error": self.product_error,
        }


def _require_text(value: Any, name: str, *, min_length: int = 1) -> str:
    if not isinstance(value, str) or len(value.strip()) < min_length:
        raise ValidationError(
            f"{name} must be a string of at least {min_length} characters",
            details={"field": name},
        )
    return value.strip()


class ProductRegistrar:
    """Create products and anchor their claims on the consensus log."""

    def __init__(
        self,
        store: CatalogStore,
        *,
        submitter: Optional[SubmissionClient] = None,
        batch_ids: Optional[BatchIdGenerator] = None,
        verification_base_url: str = "http://localhost:3000",
    ) -> None:
        self._store = store
        self._submitter = submitter
        self._batch_ids = batch_ids or BatchIdGenerator(store.exists_batch_id)
        self._base_url = verification_base_url.rstrip("/")

    def verification_url(self, batch_id: str) -> str:
        return f"{self._base_url}/verify/{batch_id}"

    def _insert_product(
        self, product_name: str, supplier_name: str, description: Optional[str]
    ) -> Product:
        prefix = extract_prefix(product_name)
        batch_id = self._batch_ids.generate(prefix)
        try:
            return self._store.insert_product(batch_id, product_name, supplier_name, description)
        except ConflictError:
            logger.warning("Batch ID %s taken at insert time; regenerating once", batch_id)
        batch_id = self._batch_ids.generate(prefix)
        return self._store.insert_product(batch_id, product_name, supplier_name, description)

    def register_product(
        self,
        product_name: str,
        supplier_name: str,
        description: Optional[str] = None,
        claims: Iterable[Any] = (),
    ) -> RegistrationResult:
        product_name = _require_text(product_name, "product_name", min_length=2)
        supplier_name = _require_text(supplier_name, "supplier_name", min_length=2)
        inputs = [ClaimInput.coerce(item) for item in claims]
        for item in inputs:
            _require_text(item.claim_type, "claim_type", min_length=2)
            _require_text(item.description, "description", min_length=5)

        with run_scope():
            product = self._insert_product(product_name, supplier_name, description)
            log_event("product.registered", batch_id=product.batch_id, claims=len(inputs))
            result = RegistrationResult(
                product=product, verification_url=self.verification_url(product.batch_id)
            )

            if self._submitter is not None:
                try:
                    result.product_receipt = self._submitter.submit(
                        build_product_message(product, inputs)
                    )
                except ProvenantError as exc:
                    logger.warning("Product %s was not anchored: %s", product.batch_id, exc)
                    result.product_error = exc.to_dict()

            for item in inputs:
                claim = self._store.insert_claim(product.id, item.claim_type, item.description)
                result.claims.append(self.anchor_claim(claim, product))

            log_event(
                "product.registration.completed",
                batch_id=product.batch_id,
                anchored=result.anchored_claims,
                total=len(result.claims),
            )
            return result

    def add_claim(self, batch_id: str, claim_type: str, description: str) -> ClaimOutcome:
        """Attach a new claim to an existing product and anchor it."""

        claim_type = _require_text(claim_type, "claim_type", min_length=2)
        description = _require_text(description, "description", min_length=5)
        product = self._store.get_product_by_batch_id(batch_id)
        if product is None:
            raise NotFound("Product not found", details={"batch_id": batch_id})
        with run_scope():
            claim = self._store.insert_claim(product.id, claim_type, description)
            return self.anchor_claim(claim, product)

    def resubmit_claim(self, claim_id: str) -> ClaimOutcome:
        """Anchor a claim that has no proof yet.

        This is the only retry path and it is explicit: the new attempt gets
        a new transaction id. Claims with an attempt still in flight are
        refused so one claim is never anchored twice by accident.
        """

        claim = self._store.get_claim(claim_id)
        if claim is None:
            raise NotFound("Claim not found", details={"claim_id": claim_id})
        if claim.consensus_transaction_id:
            raise ConflictError(
                "Claim is already anchored",
                details={"claim_id": claim_id, "transaction_id": claim.consensus_transaction_id},
            )
        in_flight = self._store.list_submissions(("pending", "submitted"), claim_id=claim_id)
        if in_flight:
            raise ConflictError(
                "Claim has an anchoring attempt awaiting reconciliation",
                details={"claim_id": claim_id, "submission_id": in_flight[0].id},
            )
        product = self._store.get_product(claim.product_id)
        if product is None:
            raise NotFound("Product not found", details={"product_id": claim.product_id})
        with run_scope():
            return self.anchor_claim(claim, product)

    def anchor_claim(self, claim: Claim, product: Product) -> ClaimOutcome:
        if self._submitter is None:
            return ClaimOutcome(
                claim=claim,
                status=AnchorStatus.NOT_ANCHORED,
                error=NetworkUnavailable("Consensus network is not configured").to_dict(),
            )

        try:
            message = build_claim_message(claim, product)
            self._submitter.encode(message)
            submission = self._store.open_submission(
                claim.id, message.verification_hash, self._submitter.topic_id
            )
        except ProvenantError as exc:
            logger.warning("Claim %s was not anchored: %s", claim.id, exc)
            return ClaimOutcome(claim=claim, status=AnchorStatus.NOT_ANCHORED, error=exc.to_dict())

        try:
            receipt = self._submitter.submit(message)
        except ProvenantError as exc:
            logger.warning("Claim %s was not anchored: %s", claim.id, exc)
            try:
                self._store.mark_submission_failed(submission.id, exc.message)
            except ProvenantError as mark_exc:
                logger.error(
                    "Could not mark submission %s failed; reconciliation will resolve it: %s",
                    submission.id,
                    mark_exc,
                )
            return ClaimOutcome(
                claim=claim,
                status=AnchorStatus.NOT_ANCHORED,
                submission_id=submission.id,
                error=exc.to_dict(),
            )

        try:
            self._store.mark_submission_submitted(
                submission.id,
                receipt.transaction_id,
                receipt.consensus_timestamp,
                topic_id=receipt.topic_id,
            )
        except ProvenantError as exc:
            logger.error(
                "Submission %s acknowledged as %s but not journaled: %s",
                submission.id,
                receipt.transaction_id,
                exc,
            )

        try:
            claim = self._store.record_claim_proof(
                claim.id, receipt.transaction_id, receipt.consensus_timestamp
            )
        except ProvenantError as exc:
            log_event(
                "claim.orphaned",
                level=logging.ERROR,
                claim_id=claim.id,
                transaction_id=receipt.transaction_id,
                error=exc.message,
            )
            return ClaimOutcome(
                claim=claim,
                status=AnchorStatus.ORPHANED,
                receipt=receipt,
                submission_id=submission.id,
                error=exc.to_dict(),
            )

        try:
            self._store.mark_submission_recorded(submission.id)
        except ProvenantError as exc:
            logger.warning("Submission %s recorded on claim but not closed: %s", submission.id, exc)

        log_event("claim.anchored", claim_id=claim.id, transaction_id=receipt.transaction_id)
        return ClaimOutcome(
            claim=claim,
            status=AnchorStatus.ANCHORED,
            receipt=receipt,
            submission_id=submission.id,
        )
