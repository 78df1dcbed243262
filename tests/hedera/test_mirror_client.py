import base64
import threading
from datetime import datetime, timezone

import pytest
import requests

from provenant.anchoring.query import ConsensusQuery, QueryOutcome, QueryWindow
from provenant.errors import NetworkUnavailable
from provenant.hedera import HederaNetwork, MirrorNodeClient, build_submitter
from provenant.hedera.mirror import format_consensus_timestamp, parse_consensus_timestamp

TX = "0.0.1001@1767225600.000000042"
BASE = "https://mirror.example"


class _Response:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class _Session:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        if not self.responses:
            return _Response(payload={"messages": [], "links": {"next": None}})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


def _message(seq, text, stamp):
    return {
        "consensus_timestamp": stamp,
        "sequence_number": seq,
        "topic_id": "0.0.5005",
        "message": base64.b64encode(text.encode()).decode(),
        "chunk_info": {
            "initial_transaction_id": {
                "account_id": "0.0.1001",
                "transaction_valid_start": f"1767225600.00000000{seq}",
            }
        },
    }


def test_timestamp_conversions():
    parsed = parse_consensus_timestamp("1767225600.123456789")
    assert parsed == datetime(2026, 1, 1, 0, 0, 0, 123456, tzinfo=timezone.utc)
    assert format_consensus_timestamp(parsed) == "1767225600.123456000"


def test_get_transaction_confirmed():
    session = _Session(
        _Response(
            payload={
                "transactions": [
                    {
                        "transaction_id": "0.0.1001-1767225600-000000042",
                        "consensus_timestamp": "1767225601.000000001",
                        "result": "SUCCESS",
                    }
                ]
            }
        )
    )
    status = MirrorNodeClient(BASE, session=session).get_transaction(TX)
    assert status.exists is True
    assert status.result == "SUCCESS"
    assert session.calls[0][0] == f"{BASE}/api/v1/transactions/0.0.1001-1767225600-000000042"


def test_get_transaction_not_found_and_failed_result():
    client = MirrorNodeClient(
        BASE,
        session=_Session(
            _Response(status_code=404),
            _Response(
                payload={
                    "transactions": [
                        {
                            "transaction_id": "x",
                            "consensus_timestamp": "1767225601.0",
                            "result": "INVALID_TOPIC_ID",
                        }
                    ]
                }
            ),
        ),
    )
    assert client.get_transaction(TX).exists is False
    failed = client.get_transaction(TX)
    assert failed.exists is False
    assert failed.result == "INVALID_TOPIC_ID"


@pytest.mark.parametrize(
    "response", [_Response(status_code=503), requests.ConnectionError("refused"), _Response(status_code=429)]
)
def test_transport_failures_are_network_unavailable(response):
    with pytest.raises(NetworkUnavailable):
        MirrorNodeClient(BASE, session=_Session(response)).get_transaction(TX)


def test_topic_messages_decode_contents():
    session = _Session(_Response(payload={"messages": [_message(1, '{"a":1}', "1767225601.000000001")]}))
    messages = MirrorNodeClient(BASE, session=session).topic_messages("0.0.5005", "1767225600.000000000")
    record = messages[0].to_record()
    assert record.raw_contents == b'{"a":1}'
    assert record.transaction_id == "0.0.1001@1767225600.000000001"
    assert session.calls[0][1]["timestamp"] == "gt:1767225600.000000000"


def test_subscription_delivers_in_order_then_cancels():
    session = _Session(
        _Response(
            payload={
                "messages": [
                    _message(1, "first", "1767225601.000000001"),
                    _message(2, "second", "1767225602.000000001"),
                ]
            }
        )
    )
    client = MirrorNodeClient(BASE, session=session)
    received = []
    done = threading.Event()

    def on_message(record):
        received.append(record)
        if len(received) == 2:
            done.set()

    subscription = client.subscribe("0.0.5005", None, on_message, lambda exc: None, poll_interval=0.01)
    assert done.wait(2.0)
    subscription.cancel()
    assert not subscription.active
    assert [r.text() for r in received] == ["first", "second"]


def test_subscription_reports_errors():
    client = MirrorNodeClient(BASE, session=_Session(requests.ConnectionError("reset")))
    errors = []
    failed = threading.Event()

    def on_error(exc):
        errors.append(exc)
        failed.set()

    subscription = client.subscribe("0.0.5005", None, lambda record: None, on_error, poll_interval=0.01)
    assert failed.wait(2.0)
    subscription.cancel()
    assert isinstance(errors[0], NetworkUnavailable)


def test_gateway_lifecycle():
    session = _Session()
    gateway = HederaNetwork(MirrorNodeClient(BASE, session=session), poll_interval=0.01)

    with pytest.raises(NetworkUnavailable):
        gateway.get_transaction(TX)

    gateway.open()
    with pytest.raises(NetworkUnavailable):
        gateway.submit_message("0.0.5005", b"{}")
    handle = gateway.subscribe("0.0.5005", None, lambda record: None, lambda exc: None)
    gateway.close()

    assert not handle.active
    assert session.closed


def test_submitter_requires_credentials():
    assert build_submitter("testnet", None, None) is None
    assert build_submitter("testnet", "0.0.1001", None) is None


def test_malformed_record_reports_error_and_stops():
    session = _Session(_Response(payload={"messages": [_message(1, "bad", "not-a-timestamp")]}))
    client = MirrorNodeClient(BASE, session=session)
    received = []
    errors = []
    failed = threading.Event()

    def on_error(exc):
        errors.append(exc)
        failed.set()

    subscription = client.subscribe("0.0.5005", None, received.append, on_error, poll_interval=0.01)
    assert failed.wait(2.0)
    assert not subscription.active
    subscription.cancel()
    assert received == []
    assert isinstance(errors[0], ValueError)


def test_failing_handler_reports_error():
    session = _Session(_Response(payload={"messages": [_message(1, "first", "1767225601.000000001")]}))
    client = MirrorNodeClient(BASE, session=session)
    errors = []
    failed = threading.Event()

    def on_message(record):
        raise RuntimeError("handler broke")

    def on_error(exc):
        errors.append(exc)
        failed.set()

    subscription = client.subscribe("0.0.5005", None, on_message, on_error, poll_interval=0.01)
    assert failed.wait(2.0)
    subscription.cancel()
    assert str(errors[0]) == "handler broke"


def test_query_over_malformed_mirror_stream_errors_immediately():
    session = _Session(_Response(payload={"messages": [_message(1, "bad", "not-a-timestamp")]}))
    gateway = HederaNetwork(MirrorNodeClient(BASE, session=session), poll_interval=0.01)
    gateway.open()
    try:
        query = ConsensusQuery(gateway, "0.0.5005", poll_interval=0.01)
        result = query.query_by_content_filter(lambda record: True, QueryWindow(timeout=5.0, grace=0.01))
    finally:
        gateway.close()
    assert result.outcome is QueryOutcome.ERRORED
