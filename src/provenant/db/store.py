"""Relational catalog store.

Implements the relational interface the anchoring engine consumes and maps
driver exceptions onto the provenant taxonomy:

- unique violation on ``batch_id``      → :class:`ConflictError`
- foreign-key violation                 → :class:`NotFound`
- connection / operational failure      → :class:`NetworkUnavailable`
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from provenant.db.models import Claim, ClaimSubmission, Product
from provenant.db.session import build_session_factory, session_scope
from provenant.errors import ConflictError, NetworkUnavailable, NotFound

logger = logging.getLogger(__name__)


def _is_batch_id_violation(exc: IntegrityError) -> bool:
    text = str(getattr(exc, "orig", exc)).lower()
    return "batch_id" in text and ("unique" in text or "duplicate" in text)


def _is_foreign_key_violation(exc: IntegrityError) -> bool:
    return "foreign key" in str(getattr(exc, "orig", exc)).lower()


class CatalogStore:
    """Products, claims and their anchoring attempts."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessions = build_session_factory(engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with session_scope(self._sessions) as session:
                yield session
        except IntegrityError as exc:
            if _is_batch_id_violation(exc):
                raise ConflictError("Batch ID already exists", details={"constraint": "batch_id"}) from exc
            if _is_foreign_key_violation(exc):
                raise NotFound("Referenced record does not exist") from exc
            raise ConflictError(f"Integrity violation: {exc.orig}") from exc
        except OperationalError as exc:
            raise NetworkUnavailable(f"Relational store unavailable: {exc.orig}") from exc

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def exists_batch_id(self, batch_id: str) -> bool:
        with self._session() as session:
            found = session.execute(
                select(Product.id).where(Product.batch_id == str(batch_id)).limit(1)
            ).first()
        return found is not None

    def insert_product(
        self,
        batch_id: str,
        product_name: str,
        supplier_name: str,
        description: Optional[str] = None,
    ) -> Product:
        product = Product(
            batch_id=str(batch_id),
            product_name=product_name,
            supplier_name=supplier_name,
            description=description,
        )
        with self._session() as session:
            session.add(product)
            session.flush()
        return product

    def get_product_by_batch_id(self, batch_id: str) -> Optional[Product]:
        with self._session() as session:
            return session.execute(
                select(Product).where(Product.batch_id == str(batch_id))
            ).scalar_one_or_none()

    def get_product(self, product_id: str) -> Optional[Product]:
        with self._session() as session:
            return session.get(Product, product_id)

    def list_prefix_statistics(self, prefix: str, year: int) -> Dict[str, Any]:
        pattern = f"{prefix.upper()}-{year:04d}-%"
        with self._session() as session:
            row = session.execute(
                select(
                    func.count(Product.id),
                    func.min(Product.batch_id),
                    func.max(Product.batch_id),
                    func.min(Product.created_at),
                    func.max(Product.created_at),
                ).where(Product.batch_id.like(pattern))
            ).one()
        return {
            "prefix": prefix.upper(),
            "year": year,
            "total_count": int(row[0] or 0),
            "first_batch_id": row[1],
            "last_batch_id": row[2],
            "first_created": row[3],
            "last_created": row[4],
            "pattern": pattern,
        }

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def insert_claim(self, product_id: str, claim_type: str, description: str) -> Claim:
        claim = Claim(product_id=product_id, claim_type=claim_type, description=description)
        with self._session() as session:
            session.add(claim)
            session.flush()
        return claim

    def get_claim(self, claim_id: str) -> Optional[Claim]:
        with self._session() as session:
            return session.get(Claim, claim_id)

    def get_claims_by_product(self, product_id: str) -> List[Claim]:
        with self._session() as session:
            rows = session.execute(
                select(Claim)
                .where(Claim.product_id == product_id)
                .order_by(Claim.created_at, Claim.id)
            ).scalars()
            return list(rows)

    def list_unanchored_claims(self, product_id: Optional[str] = None) -> List[Claim]:
        query = select(Claim).where(Claim.consensus_transaction_id.is_(None))
        if product_id is not None:
            query = query.where(Claim.product_id == product_id)
        with self._session() as session:
            return list(session.execute(query.order_by(Claim.created_at)).scalars())

    def record_claim_proof(
        self,
        claim_id: str,
        transaction_id: str,
        consensus_timestamp: Optional[datetime] = None,
    ) -> Claim:
        """Write the anchoring transaction onto a claim, exactly once.

        Recording the id a claim already carries is a no-op; recording a
        different one raises :class:`ConflictError`.
        """

        with self._session() as session:
            result = session.execute(
                update(Claim)
                .where(Claim.id == claim_id, Claim.consensus_transaction_id.is_(None))
                .values(
                    consensus_transaction_id=transaction_id,
                    consensus_timestamp=consensus_timestamp,
                )
            )
            claim = session.get(Claim, claim_id, populate_existing=True)
            if claim is None:
                raise NotFound("Claim not found", details={"claim_id": claim_id})
            if result.rowcount == 0 and claim.consensus_transaction_id != transaction_id:
                raise ConflictError(
                    "Claim already anchored by another transaction",
                    details={
                        "claim_id": claim_id,
                        "recorded": claim.consensus_transaction_id,
                        "attempted": transaction_id,
                    },
                )
        return claim

    # ------------------------------------------------------------------
    # Submission outbox
    # ------------------------------------------------------------------

    def open_submission(
        self, claim_id: str, claim_hash: str, topic_id: Optional[str] = None
    ) -> ClaimSubmission:
        submission = ClaimSubmission(
            claim_id=claim_id, claim_hash=claim_hash, topic_id=topic_id, status="pending"
        )
        with self._session() as session:
            session.add(submission)
            session.flush()
        return submission

    def _advance(self, submission_id: str, **values: Any) -> ClaimSubmission:
        values["updated_at"] = datetime.now(timezone.utc)
        with self._session() as session:
            submission = session.get(ClaimSubmission, submission_id)
            if submission is None:
                raise NotFound("Submission not found", details={"submission_id": submission_id})
            for key, value in values.items():
                setattr(submission, key, value)
        return submission

    def mark_submission_submitted(
        self,
        submission_id: str,
        transaction_id: str,
        consensus_timestamp: Optional[datetime] = None,
        topic_id: Optional[str] = None,
    ) -> ClaimSubmission:
        values: Dict[str, Any] = {
            "status": "submitted",
            "transaction_id": transaction_id,
            "consensus_timestamp": consensus_timestamp,
        }
        if topic_id:
            values["topic_id"] = topic_id
        return self._advance(submission_id, **values)

    def mark_submission_recorded(self, submission_id: str) -> ClaimSubmission:
        return self._advance(submission_id, status="recorded", error=None)

    def mark_submission_failed(self, submission_id: str, error: str) -> ClaimSubmission:
        return self._advance(submission_id, status="failed", error=error)

    def mark_submission_superseded(self, submission_id: str, note: str) -> ClaimSubmission:
        return self._advance(submission_id, status="superseded", error=note)

    def get_submission(self, submission_id: str) -> Optional[ClaimSubmission]:
        with self._session() as session:
            return session.get(ClaimSubmission, submission_id)

    def get_topic_for_transaction(self, transaction_id: str) -> Optional[str]:
        """Topic the outbox journaled for ``transaction_id``, if any."""

        query = (
            select(ClaimSubmission.topic_id)
            .where(
                ClaimSubmission.transaction_id == transaction_id,
                ClaimSubmission.topic_id.is_not(None),
            )
            .order_by(ClaimSubmission.updated_at.desc())
            .limit(1)
        )
        with self._session() as session:
            return session.execute(query).scalar_one_or_none()

    def list_submissions(
        self,
        statuses: Iterable[str],
        *,
        older_than: Optional[datetime] = None,
        claim_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[ClaimSubmission]:
        query = select(ClaimSubmission).where(ClaimSubmission.status.in_(list(statuses)))
        if older_than is not None:
            query = query.where(ClaimSubmission.attempted_at <= older_than)
        if claim_id is not None:
            query = query.where(ClaimSubmission.claim_id == claim_id)
        query = query.order_by(ClaimSubmission.attempted_at, ClaimSubmission.id).limit(limit)
        with self._session() as session:
            return list(session.execute(query).scalars())
