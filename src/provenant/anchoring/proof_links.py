"""Explorer and mirror-node URIs for anchored transactions."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict

from provenant.anchoring.network import validate_topic_id, validate_transaction_id
from provenant.config import MIRROR_NODE_URLS
from provenant.errors import ValidationError

EXPLORER_URL = "https://hashscan.io"


@dataclass(frozen=True)
class ProofLinks:
    transaction_uri: str
    topic_uri: str
    transaction_api_uri: str
    topic_messages_api_uri: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def mirror_transaction_id(transaction_id: str) -> str:
    """Convert ``0.0.123@1700000000.000000001`` to the mirror REST form.

    >>> mirror_transaction_id("0.0.123@1700000000.000000001")
    '0.0.123-1700000000-000000001'
    """

    account, _, valid_start = transaction_id.partition("@")
    seconds, _, nanos = valid_start.partition(".")
    return f"{account}-{seconds}-{nanos}"


def build_proof_links(transaction_id: str, topic_id: str, network: str) -> ProofLinks:
    validate_transaction_id(transaction_id)
    validate_topic_id(topic_id)
    mirror = MIRROR_NODE_URLS.get(network)
    if mirror is None:
        raise ValidationError(
            "Unknown consensus network",
            details={"network": network, "expected": sorted(MIRROR_NODE_URLS)},
        )
    return ProofLinks(
        transaction_uri=f"{EXPLORER_URL}/{network}/transaction/{transaction_id}",
        topic_uri=f"{EXPLORER_URL}/{network}/topic/{topic_id}",
        transaction_api_uri=f"{mirror}/api/v1/transactions/{mirror_transaction_id(transaction_id)}",
        topic_messages_api_uri=f"{mirror}/api/v1/topics/{topic_id}/messages",
    )
