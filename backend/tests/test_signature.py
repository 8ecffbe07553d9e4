import hashlib
import hmac

import pytest

from app.payments.signature import compute_signature, verify_webhook_signature

SECRET = "shared-webhook-secret"
BODY = b'{"event":"charge.completed","data":{"id":285959875,"tx_ref":"TRX-1","status":"successful"}}'


def test_signature_round_trip():
    assert verify_webhook_signature(BODY, compute_signature(BODY, SECRET), SECRET)


def test_signature_is_hex_hmac_sha256():
    expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
    assert compute_signature(BODY, SECRET) == expected


def test_any_single_byte_mutation_is_rejected():
    for i in range(len(BODY)):
        mutated = bytearray(BODY)
        mutated[i] = (mutated[i] + 1) % 256
        sig = compute_signature(bytes(mutated), SECRET)
        assert not verify_webhook_signature(BODY, sig, SECRET), f"mutation at byte {i} accepted"


def test_reserialized_body_does_not_verify():
    # Same JSON, different bytes.
    reserialized = b'{"event": "charge.completed", "data": {"id": 285959875, "tx_ref": "TRX-1", "status": "successful"}}'
    assert not verify_webhook_signature(reserialized, compute_signature(BODY, SECRET), SECRET)


def test_wrong_secret_is_rejected():
    assert not verify_webhook_signature(BODY, compute_signature(BODY, "other-secret"), SECRET)


@pytest.mark.parametrize("header", [None, "", "not-a-signature"])
def test_missing_or_garbage_header_returns_false(header):
    assert verify_webhook_signature(BODY, header, SECRET) is False


@pytest.mark.parametrize("secret", [None, ""])
def test_missing_secret_returns_false(secret):
    assert verify_webhook_signature(BODY, compute_signature(BODY, SECRET), secret) is False


def test_non_bytes_body_returns_false():
    sig = compute_signature(BODY, SECRET)
    assert verify_webhook_signature(BODY.decode(), sig, SECRET) is False
    assert verify_webhook_signature({"event": "charge.completed"}, sig, SECRET) is False


def test_header_whitespace_and_case_are_tolerated():
    sig = compute_signature(BODY, SECRET)
    assert verify_webhook_signature(BODY, f"  {sig.upper()} ", SECRET)
