"""Environment-driven settings.

Every tunable is read once by :meth:`Settings.from_env` and then passed
explicitly to the objects that need it; nothing else in the package reads
the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from provenant.errors import ValidationError

MIRROR_NODE_URLS = {
    "mainnet": "https://mainnet-public.mirrornode.hedera.com",
    "testnet": "https://testnet.mirrornode.hedera.com",
    "previewnet": "https://previewnet.mirrornode.hedera.com",
}

DEFAULT_DATABASE_URL = "sqlite:///data/provenant.db"


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"{key} must be an integer, got {raw!r}") from exc


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValidationError(f"{key} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    hedera_network: str = "testnet"
    hedera_account_id: Optional[str] = None
    hedera_private_key: Optional[str] = field(default=None, repr=False)
    hedera_topic_id: Optional[str] = None
    hedera_mirror_url: Optional[str] = None
    max_message_bytes: int = 4096
    query_timeout: float = 20.0
    query_grace: float = 3.0
    verify_cache_ttl: int = 10
    redis_url: Optional[str] = None
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"
    reconcile_after: float = 120.0
    frontend_url: str = "http://localhost:3000"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        network = (env.get("HEDERA_NETWORK") or "testnet").lower()
        if network not in MIRROR_NODE_URLS:
            raise ValidationError(
                f"HEDERA_NETWORK must be one of {sorted(MIRROR_NODE_URLS)}, got {network!r}"
            )
        return cls(
            database_url=env.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
            hedera_network=network,
            hedera_account_id=env.get("HEDERA_ACCOUNT_ID") or None,
            hedera_private_key=env.get("HEDERA_PRIVATE_KEY") or None,
            hedera_topic_id=env.get("HEDERA_TOPIC_ID") or None,
            hedera_mirror_url=env.get("HEDERA_MIRROR_URL") or None,
            max_message_bytes=_int(env, "PROVENANT_MAX_MESSAGE_BYTES", 4096),
            query_timeout=_float(env, "PROVENANT_QUERY_TIMEOUT", 20.0),
            query_grace=_float(env, "PROVENANT_QUERY_GRACE", 3.0),
            verify_cache_ttl=_int(env, "PROVENANT_VERIFY_CACHE_TTL", 10),
            redis_url=env.get("REDIS_URL") or None,
            celery_broker_url=env.get("CELERY_BROKER_URL") or "redis://localhost:6379/1",
            celery_result_backend=env.get("CELERY_RESULT_BACKEND") or "redis://localhost:6379/2",
            reconcile_after=_float(env, "PROVENANT_RECONCILE_AFTER", 120.0),
            frontend_url=env.get("FRONTEND_URL") or "http://localhost:3000",
        )

    @property
    def mirror_url(self) -> str:
        if self.hedera_mirror_url:
            return self.hedera_mirror_url.rstrip("/")
        return MIRROR_NODE_URLS[self.hedera_network]

    @property
    def hedera_configured(self) -> bool:
        return bool(self.hedera_account_id and self.hedera_private_key and self.hedera_topic_id)
