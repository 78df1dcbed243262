"""Relational persistence for products, claims and anchoring attempts.

Provides SQLAlchemy models, engine/session construction and the
:class:`CatalogStore` repository.
"""

from provenant.db.models import Base, Claim, ClaimSubmission, Product
from provenant.db.session import (
    build_engine,
    build_session_factory,
    drop_all,
    init_db,
    session_scope,
)
from provenant.db.store import CatalogStore

__all__ = [
    # Models
    "Base",
    "Product",
    "Claim",
    "ClaimSubmission",
    # Session management
    "build_engine",
    "build_session_factory",
    "session_scope",
    "init_db",
    "drop_all",
    # Repository
    "CatalogStore",
]
