"""Caching layer for short-lived verification results."""

from provenant.caching.redis_client import VerificationCache

__all__ = ["VerificationCache"]
