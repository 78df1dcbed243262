"""Claim anchoring and verification engine.

Batch identifiers, attestation hashing, consensus submission, log queries,
verification status aggregation and proof links.
"""

from .aggregator import (
    ClaimProofState,
    ClaimVerification,
    OverallStatus,
    VerificationAggregator,
    VerificationReport,
)
from .attestations import (
    Attestation,
    ClaimMessage,
    ProductMessage,
    build_claim_message,
    build_product_message,
    parse_message,
    verify_message,
)
from .batch_ids import BatchId, BatchIdGenerator, extract_prefix, parse_batch_id, validate_batch_id
from .canonical import attestation_hash, canonicalize, hash_bytes
from .network import ConsensusNetwork, ConsensusRecord, TransactionStatus, TxHandle
from .proof_links import ProofLinks, build_proof_links
from .query import ConsensusQuery, QueryOutcome, QueryResult, QueryWindow
from .reconcile import ReconciliationReport, Reconciler
from .registration import AnchorStatus, ClaimInput, ProductRegistrar, RegistrationResult
from .submission import SubmissionClient, SubmissionReceipt
from .verification import VerificationService

__all__ = [
    "AnchorStatus",
    "Attestation",
    "BatchId",
    "BatchIdGenerator",
    "ClaimInput",
    "ClaimMessage",
    "ClaimProofState",
    "ClaimVerification",
    "ConsensusNetwork",
    "ConsensusQuery",
    "ConsensusRecord",
    "OverallStatus",
    "ProductMessage",
    "ProductRegistrar",
    "ProofLinks",
    "QueryOutcome",
    "QueryResult",
    "QueryWindow",
    "ReconciliationReport",
    "Reconciler",
    "RegistrationResult",
    "SubmissionClient",
    "SubmissionReceipt",
    "TransactionStatus",
    "TxHandle",
    "VerificationAggregator",
    "VerificationReport",
    "VerificationService",
    "attestation_hash",
    "build_claim_message",
    "build_product_message",
    "build_proof_links",
    "canonicalize",
    "extract_prefix",
    "hash_bytes",
    "parse_batch_id",
    "parse_message",
    "validate_batch_id",
    "verify_message",
]
