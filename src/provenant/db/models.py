"""SQLAlchemy models for the product catalog.

- Products, identified by a unique human-readable ``batch_id``
- Claims made about a product, carrying the consensus transaction that anchors them
- Claim submissions, the outbox that records every anchoring attempt so an
  interrupted submit/record sequence can be repaired later
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

SUBMISSION_STATUSES = ("pending", "submitted", "recorded", "failed", "superseded")


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Product(Base):
    """A registered product batch."""

    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    batch_id = Column(String(32), nullable=False)
    product_name = Column(String(255), nullable=False)
    supplier_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    claims = relationship(
        "Claim",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="Claim.created_at",
    )

    __table_args__ = (UniqueConstraint("batch_id", name="uq_products_batch_id"),)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "product_name": self.product_name,
            "supplier_name": self.supplier_name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Claim(Base):
    """A claim about a product.

    ``consensus_transaction_id`` and ``consensus_timestamp`` are written once,
    when an anchoring submission succeeds, and never change afterwards.
    """

    __tablename__ = "claims"

    id = Column(String(36), primary_key=True, default=_uuid)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    claim_type = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    consensus_transaction_id = Column(String(64), nullable=True)
    consensus_timestamp = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    product = relationship("Product", back_populates="claims")
    submissions = relationship(
        "ClaimSubmission", back_populates="claim", cascade="all, delete-orphan"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "claim_type": self.claim_type,
            "description": self.description,
            "consensus_transaction_id": self.consensus_transaction_id,
            "consensus_timestamp": self.consensus_timestamp.isoformat()
            if self.consensus_timestamp
            else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ClaimSubmission(Base):
    """One attempt to anchor a claim on the consensus log.

    Opened as ``pending`` before the network call, advanced to ``submitted``
    once the log acknowledges it and to ``recorded`` once the transaction id
    is on the claim. ``failed`` attempts never reached the log; ``superseded``
    ones reached it after another attempt had already been recorded.
    """

    __tablename__ = "claim_submissions"

    id = Column(String(36), primary_key=True, default=_uuid)
    claim_id = Column(String(36), ForeignKey("claims.id"), nullable=False, index=True)
    claim_hash = Column(String(64), nullable=False)
    status = Column(
        Enum(*SUBMISSION_STATUSES, name="submission_status_enum"),
        nullable=False,
        default="pending",
    )
    topic_id = Column(String(32), nullable=True)
    transaction_id = Column(String(64), nullable=True)
    consensus_timestamp = Column(DateTime(timezone=True), nullable=True)
    error = Column(Text, nullable=True)
    attempted_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    claim = relationship("Claim", back_populates="submissions")

    __table_args__ = (Index("idx_submission_status_attempted", "status", "attempted_at"),)
