from types import SimpleNamespace

import pytest

from provenant.anchoring.attestations import build_claim_message
from provenant.anchoring.submission import SubmissionClient
from provenant.errors import NetworkUnavailable, PayloadTooLarge, ValidationError
from tests.helpers.fake_network import TOPIC_ID

PRODUCT = SimpleNamespace(
    batch_id="TEA-2026-0007",
    product_name="Green Tea",
    supplier_name="Hill Estates",
    created_at=None,
)


def _message(description="Grown without pesticides"):
    claim = SimpleNamespace(id="claim-1", claim_type="organic", description=description, created_at=None)
    return build_claim_message(claim, PRODUCT, timestamp="2026-01-01T00:00:00+00:00")


def test_submit_returns_receipt(network, submitter):
    receipt = submitter.submit(_message())
    assert receipt.topic_id == TOPIC_ID
    assert receipt.transaction_id.startswith("0.0.1001@")
    assert receipt.claim_hash == _message().verification_hash
    assert receipt.sequence_number == 1
    assert network.submissions == [_message().to_bytes()]


def test_oversized_payload_rejected_before_network(network):
    client = SubmissionClient(network, TOPIC_ID, max_message_bytes=256)
    with pytest.raises(PayloadTooLarge) as info:
        client.submit(_message("x" * 400))
    assert info.value.limit == 256
    assert info.value.size > 256
    assert network.submissions == []


def test_network_failure_is_not_retried(network, submitter):
    network.submit_failures[1] = ConnectionResetError("peer reset")
    with pytest.raises(NetworkUnavailable):
        submitter.submit(_message())
    assert network.submissions == []


def test_each_submit_is_a_new_transaction(submitter):
    first = submitter.submit(_message())
    second = submitter.submit(_message())
    assert first.transaction_id != second.transaction_id


def test_malformed_topic_rejected(network):
    with pytest.raises(ValidationError):
        SubmissionClient(network, "topic-5")
