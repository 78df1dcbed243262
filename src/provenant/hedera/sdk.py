"""Write-side access to Hedera through the Hiero Python SDK.

The SDK is an optional dependency (``pip install provenant[hedera]``); it is
imported when a submitter is opened, not when this module is imported.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from provenant.anchoring.network import TxHandle, validate_topic_id
from provenant.errors import NetworkUnavailable, ValidationError
from provenant.observability import redact_secret

logger = logging.getLogger(__name__)


class HieroSubmitter:
    """Sign and submit topic messages with a single operator account.

    The underlying SDK client is not documented as thread-safe, so every
    submission holds ``self._lock``.
    """

    def __init__(self, network: str, account_id: str, private_key: str):
        self.network = network
        self.account_id = account_id
        self._private_key_raw = private_key
        self._lock = threading.Lock()
        self._client: Any = None
        self._operator_key: Any = None

    def open(self) -> None:
        with self._lock:
            if self._client is not None:
                return
            try:
                from hiero_sdk_python import AccountId, Client, Network, PrivateKey
            except ImportError as exc:
                raise NetworkUnavailable(
                    "hiero-sdk-python is not installed; install provenant[hedera]"
                ) from exc
            try:
                operator_id = AccountId.from_string(self.account_id)
                operator_key = PrivateKey.from_string(self._private_key_raw)
            except (ValueError, TypeError) as exc:
                raise ValidationError(
                    "Invalid Hedera operator credentials",
                    details={
                        "account_id": self.account_id,
                        "private_key": redact_secret(self._private_key_raw),
                    },
                ) from exc
            client = Client(Network(network=self.network))
            client.set_operator(operator_id, operator_key)
            self._client = client
            self._operator_key = operator_key
            logger.info(
                "Hedera client opened on %s as %s (key %s)",
                self.network,
                self.account_id,
                redact_secret(self._private_key_raw),
            )

    def submit(self, topic_id: str, payload: bytes) -> TxHandle:
        from hiero_sdk_python import ResponseCode, TopicId, TopicMessageSubmitTransaction

        validate_topic_id(topic_id)
        with self._lock:
            if self._client is None:
                raise NetworkUnavailable("Hedera client is not open")
            try:
                transaction = (
                    TopicMessageSubmitTransaction(
                        topic_id=TopicId.from_string(topic_id),
                        message=payload.decode("utf-8"),
                    )
                    .freeze_with(self._client)
                    .sign(self._operator_key)
                )
                receipt = transaction.execute(self._client)
            except Exception as exc:  # SDK surfaces gRPC and precheck failures without a common base
                raise NetworkUnavailable(
                    f"Hedera submission failed: {exc}", details={"topic_id": topic_id}
                ) from exc

        if receipt.status != ResponseCode.SUCCESS:
            raise NetworkUnavailable(
                "Hedera rejected the topic message",
                details={"topic_id": topic_id, "status": _status_name(ResponseCode, receipt.status)},
            )
        sequence = getattr(receipt, "topic_sequence_number", None)
        return TxHandle(
            transaction_id=str(transaction.transaction_id),
            topic_id=topic_id,
            sequence_number=int(sequence) if sequence else None,
        )

    def close(self) -> None:
        with self._lock:
            client, self._client = self._client, None
            self._operator_key = None
        if client is not None and hasattr(client, "close"):
            client.close()


def _status_name(codes: Any, status: Any) -> str:
    try:
        return codes(status).name
    except (ValueError, TypeError):
        return str(status)


def build_submitter(network: str, account_id: Optional[str], private_key: Optional[str]) -> Optional[HieroSubmitter]:
    if not account_id or not private_key:
        return None
    return HieroSubmitter(network, account_id, private_key)
