"""Run-scoped logging helpers for anchoring and verification flows."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

logger = logging.getLogger("provenant")

_run_id_ctx: ContextVar[Optional[str]] = ContextVar("provenant_run_id", default=None)


def current_run_id() -> Optional[str]:
    return _run_id_ctx.get()


@contextmanager
def run_scope(run_id: Optional[str] = None) -> Iterator[str]:
    """Bind ``run_id`` (or the active one, or a fresh one) for the block."""

    value = run_id or current_run_id() or uuid.uuid4().hex
    token = _run_id_ctx.set(value)
    try:
        yield value
    finally:
        _run_id_ctx.reset(token)


def redact_secret(raw: Optional[str]) -> str:
    """Return a redacted representation of a key for safe logging."""

    if not raw:
        return "<missing>"
    if len(raw) <= 6:
        return "***"
    return f"{raw[:4]}***"


def log_event(message: str, *, level: int = logging.INFO, **extra: object) -> None:
    """Log an event with the active run_id attached under ``record.payload``."""

    payload = {"run_id": current_run_id(), **extra}
    logger.log(level, message, extra={"payload": payload})
