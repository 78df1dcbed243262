import pytest

from provenant.anchoring.aggregator import ClaimProofState, OverallStatus
from provenant.anchoring.verification import VerificationService
from provenant.errors import NotFound, ValidationError
from tests.helpers.fake_network import TOPIC_ID

CLAIMS = [
    {"claim_type": "organic", "description": "Certified organic by EU"},
    {"claim_type": "fair-trade", "description": "Fair trade sourced beans"},
]


@pytest.fixture()
def service(store, query) -> VerificationService:
    return VerificationService(store, query, network="testnet")


def test_freshly_anchored_product_is_verified(registrar, service):
    batch_id = registrar.register_product("Organic Coffee", "Green Farms", None, CLAIMS).product.batch_id

    result = service.verify_product(batch_id)

    assert result.report.overall_status is OverallStatus.VERIFIED
    assert result.report.verification_percentage == 100
    payload = result.to_dict()
    assert payload["product"]["batch_id"] == batch_id
    assert payload["verification"]["claims"][0]["proof_links"]["topic_uri"].endswith(TOPIC_ID)


def test_unconfirmed_transactions_are_pending_not_errors(network, registrar, service):
    network.auto_confirm = False
    batch_id = registrar.register_product("Organic Coffee", "Green Farms", None, CLAIMS).product.batch_id

    report = service.verify_product(batch_id).report

    assert report.overall_status is OverallStatus.UNVERIFIED
    assert {c.state for c in report.claims} == {ClaimProofState.PENDING_CONFIRMATION}


def test_partial_verification(network, registrar, service):
    network.submit_failures[3] = ConnectionResetError("gateway reset")
    batch_id = registrar.register_product(
        "Organic Coffee", "Green Farms", None, CLAIMS + [{"claim_type": "carbon", "description": "Carbon neutral"}]
    ).product.batch_id

    report = service.verify_product(batch_id).report

    assert report.overall_status is OverallStatus.PARTIALLY_VERIFIED
    assert report.verification_percentage == 67


def test_unknown_and_malformed_batch_ids(service):
    with pytest.raises(NotFound):
        service.verify_product("TEA-2026-0001")
    with pytest.raises(ValidationError):
        service.verify_product("not a batch id")


def test_verify_single_claim(registrar, service):
    result = registrar.register_product("Organic Coffee", "Green Farms", None, CLAIMS)
    entry = service.verify_claim(result.product.batch_id, result.claims[0].claim.id)
    assert entry.state is ClaimProofState.CONFIRMED

    other = registrar.register_product("Green Tea", "Hill Estates").product
    with pytest.raises(NotFound):
        service.verify_claim(other.batch_id, result.claims[0].claim.id)


def test_verify_transaction_with_links(network, service):
    tx = network.submit_message(TOPIC_ID, b"{}").transaction_id
    payload = service.verify_transaction(tx).to_dict()
    assert payload["verification"]["exists"] is True
    assert payload["proof_links"]["transaction_uri"].endswith(tx)


def test_without_network_claims_report_unconfirmed(store, registrar):
    batch_id = registrar.register_product("Organic Coffee", "Green Farms", None, CLAIMS).product.batch_id
    service = VerificationService(store, None, topic_id=TOPIC_ID)
    report = service.verify_product(batch_id).report
    assert report.overall_status is OverallStatus.UNVERIFIED
    assert report.claims[0].result == "NETWORK_NOT_CONFIGURED"


def test_proof_links_follow_the_journaled_topic_after_rotation(store, query, registrar):
    batch_id = registrar.register_product("Organic Coffee", "Green Farms", None, CLAIMS).product.batch_id
    rotated = VerificationService(store, query, topic_id="0.0.6006", network="testnet")

    claims = rotated.verify_product(batch_id).report.claims

    assert {c.proof_links["topic_uri"] for c in claims} == {
        f"https://hashscan.io/testnet/topic/{TOPIC_ID}"
    }
    unknown = rotated.verify_transaction("0.0.1001@1767225600.000000999")
    assert unknown.proof_links.topic_uri.endswith("0.0.6006")
