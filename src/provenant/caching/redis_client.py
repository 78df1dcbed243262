"""Redis cache for confirmed transaction lookups.

Only confirmed results are stored: finality is permanent, so serving a
cached confirmation can never hide a state change. Negative or failed
lookups always go back to the network.

Cache Keys:
- provenant:tx:{transaction_id} → serialized TransactionStatus (TTL: seconds)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional

import redis

from provenant.anchoring.network import TransactionStatus

logger = logging.getLogger(__name__)

KEY_PREFIX = "provenant:tx:"


class VerificationCache:
    """Short-lived cache of ``verify_transaction`` confirmations."""

    def __init__(self, client: Any, ttl: int = 10):
        self._client = client
        self.ttl = ttl

    @classmethod
    def from_url(cls, url: str, ttl: int = 10) -> "VerificationCache":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        return cls(client, ttl=ttl)

    @staticmethod
    def _key(transaction_id: str) -> str:
        return f"{KEY_PREFIX}{transaction_id}"

    def get(self, transaction_id: str) -> Optional[TransactionStatus]:
        try:
            data = self._client.get(self._key(transaction_id))
        except redis.RedisError as exc:
            logger.warning("Verification cache read failed for %s: %s", transaction_id, exc)
            return None
        if not data:
            return None
        try:
            payload = json.loads(data)
        except (json.JSONDecodeError, TypeError):
            return None
        stamp = payload.get("consensus_timestamp")
        return TransactionStatus(
            exists=bool(payload.get("exists")),
            consensus_timestamp=datetime.fromisoformat(stamp) if stamp else None,
            result=payload.get("result"),
        )

    def put(self, transaction_id: str, status: TransactionStatus) -> None:
        if not status.exists or self.ttl <= 0:
            return
        try:
            self._client.setex(self._key(transaction_id), self.ttl, json.dumps(status.to_dict()))
        except redis.RedisError as exc:
            logger.warning("Verification cache write failed for %s: %s", transaction_id, exc)

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if callable(close):
            close()
