"""Verification of products, single claims and raw transactions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from provenant.anchoring.aggregator import (
    ClaimVerification,
    VerificationAggregator,
    VerificationReport,
)
from provenant.anchoring.network import TransactionStatus, validate_transaction_id
from provenant.anchoring.proof_links import ProofLinks, build_proof_links
from provenant.anchoring.query import ConsensusQuery
from provenant.anchoring.batch_ids import parse_batch_id
from provenant.db.models import Product
from provenant.db.store import CatalogStore
from provenant.errors import NotFound
from provenant.observability import run_scope


@dataclass
class ProductVerification:
    product: Product
    report: VerificationReport

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product.to_dict(),
            "verification": self.report.model_dump(mode="json"),
        }


@dataclass
class TransactionVerification:
    transaction_id: str
    status: TransactionStatus
    proof_links: ProofLinks

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "verification": self.status.to_dict(),
            "proof_links": self.proof_links.to_dict(),
        }


class VerificationService:
    """Reconcile local claim records against confirmed log entries."""

    def __init__(
        self,
        store: CatalogStore,
        query: Optional[ConsensusQuery],
        *,
        topic_id: Optional[str] = None,
        network: str = "testnet",
    ) -> None:
        self._store = store
        self._query = query
        self.topic_id = topic_id or (query.topic_id if query is not None else None)
        self.network = network
        self._aggregator = VerificationAggregator(self._verify, links=self._links)

    def _verify(self, transaction_id: str) -> TransactionStatus:
        if self._query is None:
            return TransactionStatus(exists=False, result="NETWORK_NOT_CONFIGURED")
        return self._query.verify_transaction(transaction_id)

    def _links(self, transaction_id: str) -> ProofLinks:
        topic_id = self._store.get_topic_for_transaction(transaction_id) or self.topic_id
        if topic_id is None:
            raise NotFound("No consensus topic configured for proof links")
        return build_proof_links(transaction_id, topic_id, self.network)

    def _product(self, batch_id: str) -> Product:
        parse_batch_id(batch_id)
        product = self._store.get_product_by_batch_id(batch_id)
        if product is None:
            raise NotFound("Product not found", details={"batch_id": batch_id})
        return product

    def verify_product(self, batch_id: str) -> ProductVerification:
        with run_scope():
            product = self._product(batch_id)
            claims = self._store.get_claims_by_product(product.id)
            return ProductVerification(product=product, report=self._aggregator.compute(product, claims))

    def verify_claim(self, batch_id: str, claim_id: str) -> ClaimVerification:
        with run_scope():
            product = self._product(batch_id)
            claim = self._store.get_claim(claim_id)
            if claim is None or claim.product_id != product.id:
                raise NotFound(
                    "Claim not found for this product",
                    details={"batch_id": batch_id, "claim_id": claim_id},
                )
            return self._aggregator.classify(claim)

    def verify_transaction(self, transaction_id: str) -> TransactionVerification:
        validate_transaction_id(transaction_id)
        return TransactionVerification(
            transaction_id=transaction_id,
            status=self._verify(transaction_id),
            proof_links=self._links(transaction_id),
        )
