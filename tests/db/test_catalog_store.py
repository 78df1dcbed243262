from datetime import datetime, timedelta, timezone

import pytest

from provenant.db.store import CatalogStore
from provenant.errors import ConflictError, NetworkUnavailable, NotFound

TX = "0.0.1001@1767225600.000000001"


def _product(store, batch_id="COFFEE-2026-0001"):
    return store.insert_product(batch_id, "Organic Coffee", "Green Farms", "Single origin")


def test_insert_and_fetch_product(store):
    product = _product(store)
    assert store.exists_batch_id("COFFEE-2026-0001")
    assert not store.exists_batch_id("COFFEE-2026-0002")
    fetched = store.get_product_by_batch_id("COFFEE-2026-0001")
    assert fetched.id == product.id
    assert fetched.to_dict()["supplier_name"] == "Green Farms"


def test_duplicate_batch_id_is_conflict(store):
    _product(store)
    with pytest.raises(ConflictError) as info:
        _product(store)
    assert info.value.details == {"constraint": "batch_id"}


def test_claim_for_missing_product_is_not_found(store):
    with pytest.raises(NotFound):
        store.insert_claim("no-such-product", "organic", "Certified organic")


def test_claims_are_listed_in_insert_order(store):
    product = _product(store)
    ids = [store.insert_claim(product.id, "organic", f"Claim {i}").id for i in range(3)]
    assert [c.id for c in store.get_claims_by_product(product.id)] == ids
    assert len(store.list_unanchored_claims(product.id)) == 3


def test_claim_proof_is_written_once(store):
    product = _product(store)
    claim = store.insert_claim(product.id, "organic", "Certified organic")
    stamp = datetime(2026, 1, 1, tzinfo=timezone.utc)

    recorded = store.record_claim_proof(claim.id, TX, stamp)
    assert recorded.consensus_transaction_id == TX

    again = store.record_claim_proof(claim.id, TX, stamp)
    assert again.consensus_transaction_id == TX

    with pytest.raises(ConflictError):
        store.record_claim_proof(claim.id, "0.0.1001@1767225600.000000002")
    assert store.get_claim(claim.id).consensus_transaction_id == TX
    assert store.list_unanchored_claims(product.id) == []


def test_record_proof_for_missing_claim(store):
    with pytest.raises(NotFound):
        store.record_claim_proof("missing", TX)


def test_submission_lifecycle(store):
    product = _product(store)
    claim = store.insert_claim(product.id, "organic", "Certified organic")
    submission = store.open_submission(claim.id, "a" * 64, "0.0.5005")
    assert submission.status == "pending"

    store.mark_submission_submitted(submission.id, TX)
    assert [s.id for s in store.list_submissions(["submitted"], claim_id=claim.id)] == [submission.id]

    store.mark_submission_recorded(submission.id)
    assert store.get_submission(submission.id).status == "recorded"
    assert store.list_submissions(["pending", "submitted"]) == []


def test_list_submissions_respects_age(store):
    product = _product(store)
    claim = store.insert_claim(product.id, "organic", "Certified organic")
    store.open_submission(claim.id, "a" * 64)
    past = datetime.now(timezone.utc) - timedelta(minutes=5)
    assert store.list_submissions(["pending"], older_than=past) == []
    assert len(store.list_submissions(["pending"], older_than=datetime.now(timezone.utc))) == 1


def test_advance_missing_submission(store):
    with pytest.raises(NotFound):
        store.mark_submission_failed("missing", "boom")


def test_prefix_statistics(store):
    for number in ("0003", "0001", "0002"):
        _product(store, f"TEA-2026-{number}")
    _product(store, "TEA-2025-0009")
    stats = store.list_prefix_statistics("tea", 2026)
    assert stats["total_count"] == 3
    assert stats["first_batch_id"] == "TEA-2026-0001"
    assert stats["last_batch_id"] == "TEA-2026-0003"


def test_operational_errors_are_network_unavailable(tmp_path):
    from provenant.db.session import build_engine

    store = CatalogStore(build_engine(f"sqlite:///{tmp_path}/catalog.db"))
    with pytest.raises(NetworkUnavailable):
        store.exists_batch_id("TEA-2026-0001")
