"""Hedera implementation of :class:`~provenant.anchoring.network.ConsensusNetwork`.

Submissions go through the Hiero SDK, reads and subscriptions through the
mirror node. The gateway is opened once at start-up, passed by reference to
the services that need it, and closed once at shutdown.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import List, Optional

from provenant.anchoring.network import (
    ErrorHandler,
    MessageHandler,
    TransactionStatus,
    TxHandle,
)
from provenant.errors import NetworkUnavailable
from provenant.hedera.mirror import MirrorNodeClient, MirrorSubscription
from provenant.hedera.sdk import HieroSubmitter

logger = logging.getLogger(__name__)


class HederaNetwork:
    def __init__(
        self,
        mirror: MirrorNodeClient,
        submitter: Optional[HieroSubmitter] = None,
        *,
        poll_interval: float = 1.0,
    ):
        self.mirror = mirror
        self.submitter = submitter
        self.poll_interval = poll_interval
        self._lock = threading.Lock()
        self._subscriptions: List[MirrorSubscription] = []
        self._open = False

    def open(self) -> "HederaNetwork":
        with self._lock:
            if self._open:
                return self
            if self.submitter is not None:
                self.submitter.open()
            self._open = True
        return self

    def __enter__(self) -> "HederaNetwork":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _require_open(self) -> None:
        if not self._open:
            raise NetworkUnavailable("Hedera gateway is not open")

    def submit_message(self, topic_id: str, payload: bytes) -> TxHandle:
        self._require_open()
        if self.submitter is None:
            raise NetworkUnavailable("No Hedera operator configured for submissions")
        return self.submitter.submit(topic_id, payload)

    def subscribe(
        self,
        topic_id: str,
        start_time: Optional[datetime],
        on_message: MessageHandler,
        on_error: ErrorHandler,
    ) -> MirrorSubscription:
        self._require_open()
        subscription = self.mirror.subscribe(
            topic_id, start_time, on_message, on_error, poll_interval=self.poll_interval
        )
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, handle: MirrorSubscription) -> None:
        handle.cancel()
        with self._lock:
            if handle in self._subscriptions:
                self._subscriptions.remove(handle)

    def get_transaction(self, transaction_id: str) -> TransactionStatus:
        self._require_open()
        return self.mirror.get_transaction(transaction_id)

    def close(self) -> None:
        with self._lock:
            if not self._open:
                return
            self._open = False
            subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.cancel()
        if self.submitter is not None:
            self.submitter.close()
        self.mirror.close()
        logger.info("Hedera gateway closed (%d live subscriptions cancelled)", len(subscriptions))
