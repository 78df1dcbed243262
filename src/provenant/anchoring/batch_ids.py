"""Human-readable product batch identifiers.

Format: ``PREFIX-YYYY-NNNN`` where ``PREFIX`` is one to ten uppercase
alphanumerics, ``YYYY`` the current year and ``NNNN`` a zero-padded random
number. Uniqueness is ultimately enforced by the store's constraint on
``products.batch_id``; the existence check here only keeps collisions rare.
"""

from __future__ import annotations

import logging
import random
import re
import threading
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set, Tuple

from provenant.errors import ValidationError

logger = logging.getLogger(__name__)

BATCH_ID_PATTERN = re.compile(r"^[A-Z0-9]{1,10}-\d{4}-\d{4}$")
PREFIX_PATTERN = re.compile(r"^[A-Z0-9]{1,10}$")
DEFAULT_PREFIX = "PRODUCT"
MAX_ATTEMPTS = 100
NUMBER_SPACE = 10_000
MAX_TRACKED_PREFIXES = 1024


class BatchId(str):
    """A validated batch identifier that behaves as its text form."""

    __slots__ = ()

    def __new__(cls, value: str) -> "BatchId":
        if not validate_batch_id(value):
            raise ValidationError(
                "Batch ID must be in format PREFIX-YYYY-NNNN (e.g., COFFEE-2024-1234)",
                details={"batch_id": value},
            )
        return super().__new__(cls, value)

    @classmethod
    def compose(cls, prefix: str, year: int, number: str) -> "BatchId":
        return cls(f"{prefix}-{year:04d}-{number}")

    @property
    def prefix(self) -> str:
        return self.split("-")[0]

    @property
    def year(self) -> int:
        return int(self.split("-")[1])

    @property
    def number(self) -> str:
        return self.split("-")[2]

    @property
    def full(self) -> str:
        return str.__str__(self)


def extract_prefix(product_name: Optional[str]) -> str:
    """Derive a batch-id prefix from the first word of a product name."""

    if not product_name or not isinstance(product_name, str):
        return DEFAULT_PREFIX
    words = product_name.strip().split()
    if not words:
        return DEFAULT_PREFIX
    cleaned = re.sub(r"[^A-Z0-9]", "", words[0].upper())[:10]
    return cleaned or DEFAULT_PREFIX


def validate_batch_id(batch_id: object) -> bool:
    return isinstance(batch_id, str) and bool(BATCH_ID_PATTERN.match(batch_id))


def parse_batch_id(batch_id: str) -> BatchId:
    return BatchId(batch_id)


def _normalize_prefix(prefix: Optional[str]) -> str:
    value = (prefix or DEFAULT_PREFIX).upper()
    if not PREFIX_PATTERN.match(value):
        raise ValidationError(
            "Batch ID prefix must be 1-10 uppercase letters or digits",
            details={"prefix": prefix},
        )
    return value


class BatchIdGenerator:
    """Generate batch ids that do not yet exist in the store.

    Each ``(prefix, year)`` number space is drawn without replacement, so an
    instance never proposes the same candidate twice. Only issued numbers
    are remembered, for the current year and the ``max_tracked`` most
    recently used prefixes. A candidate the store already holds costs one
    existence check; after ``max_attempts`` checks the generator falls back
    to a timestamp-derived suffix so callers always make progress.
    """

    def __init__(
        self,
        exists: Callable[[str], bool],
        *,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        millis: Optional[Callable[[], int]] = None,
        max_attempts: int = MAX_ATTEMPTS,
        max_tracked: int = MAX_TRACKED_PREFIXES,
    ) -> None:
        self._exists = exists
        self._rng = rng or random.SystemRandom()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._millis = millis or (lambda: int(time.time() * 1000))
        self.max_attempts = max_attempts
        self.max_tracked = max_tracked
        self._pools: OrderedDict[Tuple[str, int], Set[int]] = OrderedDict()
        self._lock = threading.Lock()

    def _issued(self, prefix: str, year: int) -> Set[int]:
        key = (prefix, year)
        issued = self._pools.get(key)
        if issued is None:
            for stale in [k for k in self._pools if k[1] != year]:
                del self._pools[stale]
            issued = self._pools[key] = set()
            while len(self._pools) > self.max_tracked:
                self._pools.popitem(last=False)
        else:
            self._pools.move_to_end(key)
        return issued

    def _draw(self, prefix: str, year: int) -> Optional[int]:
        with self._lock:
            issued = self._issued(prefix, year)
            if len(issued) >= NUMBER_SPACE:
                return None
            while True:
                number = self._rng.randrange(NUMBER_SPACE)
                if number not in issued:
                    issued.add(number)
                    return number

    def generate(self, prefix: Optional[str] = DEFAULT_PREFIX) -> BatchId:
        value = _normalize_prefix(prefix)
        year = self._clock().year

        for _ in range(self.max_attempts):
            number = self._draw(value, year)
            if number is None:
                break
            candidate = BatchId.compose(value, year, f"{number:04d}")
            if not self._exists(candidate):
                return candidate

        fallback = BatchId.compose(value, year, str(self._millis())[-4:].zfill(4))
        logger.warning(
            "Using timestamp-based batch ID after %s attempts: %s", self.max_attempts, fallback
        )
        return fallback

    def generate_many(self, prefix: Optional[str], count: int) -> List[BatchId]:
        """Generate ``count`` ids that are distinct from each other and the store."""

        if count < 0:
            raise ValidationError("count must be non-negative", details={"count": count})
        issued: List[BatchId] = []
        seen = set()
        attempts = 0
        while len(issued) < count and attempts < count * 10:
            attempts += 1
            candidate = self.generate(prefix)
            if candidate.full in seen:
                continue
            seen.add(candidate.full)
            issued.append(candidate)
        if len(issued) < count:
            logger.warning("Only generated %s/%s unique batch IDs", len(issued), count)
        return issued
