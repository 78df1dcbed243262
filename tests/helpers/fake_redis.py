"""Minimal stand-in for the redis client calls the verification cache makes."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import redis


class FakeRedis:
    def __init__(self, *, fail: bool = False):
        self.values: Dict[str, str] = {}
        self.expirations: List[Tuple[str, int]] = []
        self.fail = fail
        self.closed = False

    def get(self, key: str) -> Optional[str]:
        if self.fail:
            raise redis.ConnectionError("redis down")
        return self.values.get(key)

    def setex(self, key: str, ttl: int, value: str) -> None:
        if self.fail:
            raise redis.ConnectionError("redis down")
        self.values[key] = value
        self.expirations.append((key, ttl))

    def close(self) -> None:
        self.closed = True
