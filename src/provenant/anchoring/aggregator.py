"""Fold per-claim proof state into a product verification report."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional

from pydantic import BaseModel, Field

from provenant.anchoring.network import TransactionStatus
from provenant.anchoring.proof_links import ProofLinks
from provenant.errors import ProvenantError
from provenant.observability import log_event

logger = logging.getLogger(__name__)


class ClaimProofState(str, Enum):
    NO_PROOF = "NO_PROOF"
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    CONFIRMED = "CONFIRMED"


class OverallStatus(str, Enum):
    NO_CLAIMS = "NO_CLAIMS"
    NO_PROOF = "NO_PROOF"
    VERIFIED = "VERIFIED"
    PARTIALLY_VERIFIED = "PARTIALLY_VERIFIED"
    UNVERIFIED = "UNVERIFIED"


class ClaimVerification(BaseModel):
    claim_id: str
    claim_type: str
    description: str
    state: ClaimProofState
    transaction_id: Optional[str] = None
    consensus_timestamp: Optional[str] = None
    result: Optional[str] = None
    error: Optional[str] = None
    proof_links: Optional[dict] = None


class VerificationReport(BaseModel):
    batch_id: Optional[str] = None
    overall_status: OverallStatus
    total_claims: int
    claims_with_proof: int
    verified_claims: int
    verification_percentage: int
    claims: List[ClaimVerification] = Field(default_factory=list)


def verification_percentage(verified: int, total: int) -> int:
    """Percentage of verified claims, rounded half up; 0 when there are no claims."""

    if total <= 0:
        return 0
    return (200 * verified + total) // (2 * total)


def overall_status(total: int, with_proof: int, verified: int) -> OverallStatus:
    if total == 0:
        return OverallStatus.NO_CLAIMS
    if with_proof == 0:
        return OverallStatus.NO_PROOF
    if verified == total:
        return OverallStatus.VERIFIED
    if verified > 0:
        return OverallStatus.PARTIALLY_VERIFIED
    return OverallStatus.UNVERIFIED


Verifier = Callable[[str], TransactionStatus]
LinkBuilder = Callable[[str], ProofLinks]


class VerificationAggregator:
    """Classify each claim and compute the overall status.

    ``verify`` is usually :meth:`ConsensusQuery.verify_transaction`. A lookup
    that fails leaves the claim pending with the error recorded; it never
    turns into a confirmed negative and never aborts the report.
    """

    def __init__(self, verify: Verifier, *, links: Optional[LinkBuilder] = None) -> None:
        self._verify = verify
        self._links = links

    def classify(self, claim: Any) -> ClaimVerification:
        transaction_id = getattr(claim, "consensus_transaction_id", None)
        entry = ClaimVerification(
            claim_id=str(claim.id),
            claim_type=claim.claim_type,
            description=claim.description,
            state=ClaimProofState.NO_PROOF,
            transaction_id=transaction_id,
        )
        if not transaction_id:
            return entry

        entry.state = ClaimProofState.PENDING_CONFIRMATION
        try:
            status = self._verify(transaction_id)
        except ProvenantError as exc:
            entry.error = exc.message
            logger.warning("Verification lookup failed for claim %s: %s", entry.claim_id, exc)
            return entry

        entry.result = status.result
        if status.consensus_timestamp is not None:
            entry.consensus_timestamp = status.consensus_timestamp.isoformat()
        if status.exists:
            entry.state = ClaimProofState.CONFIRMED
            if self._links is not None:
                try:
                    entry.proof_links = self._links(transaction_id).to_dict()
                except ProvenantError as exc:
                    logger.warning("Could not build proof links for %s: %s", transaction_id, exc)
        return entry

    def compute(self, product: Any, claims: Iterable[Any]) -> VerificationReport:
        entries = [self.classify(claim) for claim in claims]
        total = len(entries)
        with_proof = sum(1 for e in entries if e.state is not ClaimProofState.NO_PROOF)
        verified = sum(1 for e in entries if e.state is ClaimProofState.CONFIRMED)
        report = VerificationReport(
            batch_id=str(product.batch_id) if product is not None else None,
            overall_status=overall_status(total, with_proof, verified),
            total_claims=total,
            claims_with_proof=with_proof,
            verified_claims=verified,
            verification_percentage=verification_percentage(verified, total),
            claims=entries,
        )
        log_event(
            "verification.computed",
            batch_id=report.batch_id,
            overall_status=report.overall_status.value,
            verified_claims=verified,
            total_claims=total,
        )
        return report
