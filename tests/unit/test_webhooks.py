import hashlib
import hmac

import pytest

from dsyncpay.webhooks import compute_signature, verify_signature

SECRET = "shared-secret"
BODY = b'{"event":{"type":"charge:confirmed","data":{"code":"66BEOV2A"}}}'


def test_compute_signature_matches_hmac_sha256():
    expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
    assert compute_signature(BODY, SECRET) == expected
    assert compute_signature(BODY.decode(), SECRET) == expected


def test_valid_signature_accepted():
    assert verify_signature(BODY, compute_signature(BODY, SECRET), SECRET) is True


def test_uppercase_hex_accepted():
    assert verify_signature(BODY, compute_signature(BODY, SECRET).upper(), SECRET) is True


def test_signature_over_different_bytes_rejected():
    # Same JSON document, different serialization
    reserialized = b'{"event": {"type": "charge:confirmed", "data": {"code": "66BEOV2A"}}}'
    assert verify_signature(reserialized, compute_signature(BODY, SECRET), SECRET) is False


def test_wrong_secret_rejected():
    assert verify_signature(BODY, compute_signature(BODY, "other"), SECRET) is False


@pytest.mark.parametrize(
    "payload, signature, secret",
    [
        (None, "abc", SECRET),
        (BODY, None, SECRET),
        (BODY, "", SECRET),
        (BODY, "abc", None),
        (BODY, "abc", ""),
        (BODY, 12345, SECRET),
        ({"event": {}}, "abc", SECRET),
        (BODY, "not-hex-ü", SECRET),
        ("\ud800body", "ab" * 32, SECRET),
        (BODY, "ab" * 32, "se\udc80cret"),
    ],
)
def test_missing_or_malformed_inputs_return_false(payload, signature, secret):
    assert verify_signature(payload, signature, secret) is False


def test_any_single_byte_change_is_rejected():
    signature = compute_signature(BODY, SECRET)
    for i in range(len(BODY)):
        mutated = bytearray(BODY)
        mutated[i] ^= 0x01
        assert verify_signature(bytes(mutated), signature, SECRET) is False
