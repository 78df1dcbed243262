from types import SimpleNamespace

import pytest

from provenant.anchoring.aggregator import (
    ClaimProofState,
    OverallStatus,
    VerificationAggregator,
    verification_percentage,
)
from provenant.anchoring.network import TransactionStatus
from provenant.anchoring.proof_links import build_proof_links
from provenant.errors import NetworkUnavailable

PRODUCT = SimpleNamespace(batch_id="COFFEE-2026-0001")
CONFIRMED = TransactionStatus(exists=True, result="SUCCESS")
PENDING = TransactionStatus(exists=False, result="NOT_FOUND")


def _claim(index, tx=None):
    return SimpleNamespace(
        id=f"claim-{index}",
        claim_type="organic",
        description=f"Claim number {index}",
        consensus_transaction_id=tx,
    )


def _tx(index):
    return f"0.0.1001@1767225600.{index:09d}"


def _aggregator(statuses):
    return VerificationAggregator(lambda tx: statuses[tx])


def test_no_claims():
    report = _aggregator({}).compute(PRODUCT, [])
    assert report.overall_status is OverallStatus.NO_CLAIMS
    assert report.verification_percentage == 0


def test_claims_without_transactions_have_no_proof():
    report = _aggregator({}).compute(PRODUCT, [_claim(i) for i in range(3)])
    assert report.overall_status is OverallStatus.NO_PROOF
    assert report.claims_with_proof == 0
    assert report.verification_percentage == 0
    assert all(c.state is ClaimProofState.NO_PROOF for c in report.claims)


def test_all_confirmed_is_verified():
    claims = [_claim(i, _tx(i)) for i in range(3)]
    report = _aggregator({_tx(i): CONFIRMED for i in range(3)}).compute(PRODUCT, claims)
    assert report.overall_status is OverallStatus.VERIFIED
    assert report.verification_percentage == 100


def test_two_confirmed_one_without_proof_is_partial():
    claims = [_claim(0, _tx(0)), _claim(1, _tx(1)), _claim(2)]
    report = _aggregator({_tx(0): CONFIRMED, _tx(1): CONFIRMED}).compute(PRODUCT, claims)
    assert report.overall_status is OverallStatus.PARTIALLY_VERIFIED
    assert report.claims_with_proof == 2
    assert report.verified_claims == 2
    assert report.verification_percentage == 67


def test_proof_without_confirmation_is_unverified():
    claims = [_claim(0, _tx(0)), _claim(1, _tx(1))]
    report = _aggregator({_tx(0): PENDING, _tx(1): PENDING}).compute(PRODUCT, claims)
    assert report.overall_status is OverallStatus.UNVERIFIED
    assert report.verification_percentage == 0
    assert all(c.state is ClaimProofState.PENDING_CONFIRMATION for c in report.claims)


def test_lookup_failure_leaves_claim_pending():
    def verify(_tx_id):
        raise NetworkUnavailable("mirror down")

    report = VerificationAggregator(verify).compute(PRODUCT, [_claim(0, _tx(0))])
    assert report.claims[0].state is ClaimProofState.PENDING_CONFIRMATION
    assert report.claims[0].error == "mirror down"
    assert report.overall_status is OverallStatus.UNVERIFIED


def test_confirmed_claims_carry_proof_links():
    aggregator = VerificationAggregator(
        lambda tx: CONFIRMED, links=lambda tx: build_proof_links(tx, "0.0.5005", "testnet")
    )
    entry = aggregator.classify(_claim(0, _tx(0)))
    assert entry.proof_links["transaction_uri"].endswith(_tx(0))


@pytest.mark.parametrize(
    "verified, total, expected",
    [(0, 0, 0), (1, 3, 33), (2, 3, 67), (1, 2, 50), (1, 8, 13), (3, 3, 100)],
)
def test_percentage_rounds_half_up(verified, total, expected):
    assert verification_percentage(verified, total) == expected
