from types import SimpleNamespace

import pytest

from provenant.anchoring.attestations import (
    Attestation,
    ClaimMessage,
    ProductMessage,
    build_claim_message,
    build_product_message,
    claim_descriptor,
    parse_message,
    verify_message,
)
from provenant.anchoring.canonical import attestation_hash, canonicalize, hash_bytes
from provenant.errors import ValidationError

STAMP = "2026-01-01T00:00:00+00:00"


def _attestation(**overrides):
    payload = {
        "batch_id": "COFFEE-2026-0001",
        "product_name": "Organic Coffee",
        "supplier_name": "Green Farms",
        "claims": ["organic: Certified organic", "fair-trade: Fair trade sourced"],
        "timestamp": STAMP,
    }
    payload.update(overrides)
    return payload


def _product():
    return SimpleNamespace(
        batch_id="COFFEE-2026-0001",
        product_name="Organic Coffee",
        supplier_name="Green Farms",
        description="Single origin",
        created_at=None,
    )


def test_claim_order_does_not_change_hash():
    a = _attestation()
    b = _attestation(claims=list(reversed(a["claims"])))
    assert canonicalize(a) == canonicalize(b)
    assert hash_bytes(canonicalize(a)) == hash_bytes(canonicalize(b))


@pytest.mark.parametrize(
    "field, value",
    [
        ("batch_id", "COFFEE-2026-0002"),
        ("product_name", "Organic Coffee "),
        ("supplier_name", "Green Farm"),
        ("claims", ["organic: Certified organic"]),
        ("timestamp", "2026-01-01T00:00:01+00:00"),
    ],
)
def test_any_value_change_changes_hash(field, value):
    assert attestation_hash(_attestation()) != attestation_hash(_attestation(**{field: value}))


def test_canonical_bytes_are_compact_and_ordered():
    text = canonicalize(_attestation(claims=["b", "a"])).decode("utf-8")
    assert text.startswith('{"batch_id":"COFFEE-2026-0001","product_name"')
    assert '"claims":["a","b"]' in text
    assert " " not in text.replace("Organic Coffee", "").replace("Green Farms", "")


def test_hash_is_sha256_hex():
    digest = hash_bytes(b"abc")
    assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_model_and_mapping_hash_identically():
    assert Attestation(**_attestation()).content_hash() == attestation_hash(_attestation())


def test_missing_field_is_rejected():
    payload = _attestation()
    del payload["supplier_name"]
    with pytest.raises(ValidationError):
        canonicalize(payload)


def test_product_message_round_trips_and_verifies():
    claims = [SimpleNamespace(claim_type="organic", description="Certified organic")]
    message = build_product_message(_product(), claims, timestamp=STAMP)
    assert message.type == "PRODUCT_REGISTRATION"
    assert message.data.claims == ['["organic","Certified organic"]']

    parsed = parse_message(message.to_bytes())
    assert isinstance(parsed, ProductMessage)
    assert parsed.verification_hash == message.verification_hash
    assert verify_message(message.to_bytes())


def test_claim_message_hash_recomputable_from_envelope():
    claim = SimpleNamespace(id="c-1", claim_type="organic", description="Certified organic", created_at=None)
    message = build_claim_message(claim, _product(), timestamp=STAMP)
    assert isinstance(message, ClaimMessage)
    assert message.data.product_batch_id == "COFFEE-2026-0001"
    assert message.verification_hash == attestation_hash(
        _attestation(claims=[claim_descriptor("organic", "Certified organic")])
    )


def test_tampered_message_fails_verification():
    claim = SimpleNamespace(id="c-1", claim_type="organic", description="Certified organic", created_at=None)
    raw = build_claim_message(claim, _product(), timestamp=STAMP).to_bytes()
    tampered = raw.replace(b"Certified organic", b"Certified organik")
    assert not verify_message(tampered)


@pytest.mark.parametrize("raw", [b"not json", b"[1, 2]", b'{"type": "OTHER"}', b'{"type": "CLAIM_SUBMISSION"}'])
def test_parse_message_rejects_garbage(raw):
    with pytest.raises(ValidationError):
        parse_message(raw)


def test_claim_descriptor_cannot_be_shifted_between_fields():
    product = _product()
    left = SimpleNamespace(id="c-1", claim_type="a: b", description="c", created_at=None)
    right = SimpleNamespace(id="c-1", claim_type="a", description="b: c", created_at=None)
    assert claim_descriptor("a: b", "c") != claim_descriptor("a", "b: c")
    assert (
        build_claim_message(left, product, timestamp=STAMP).verification_hash
        != build_claim_message(right, product, timestamp=STAMP).verification_hash
    )
