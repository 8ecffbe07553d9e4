from __future__ import annotations

import hashlib
import hmac
from typing import Optional

SIGNATURE_HEADER = "verif-hash"


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_webhook_signature(raw_body: bytes, signature_header: Optional[str], secret: Optional[str]) -> bool:
    """Check a gateway webhook signature over the exact bytes that were signed.

    `raw_body` must be the unparsed request body; a re-serialised JSON object
    will not match. Returns False instead of raising for a missing header,
    missing secret or a body that is not bytes.
    """
    if not signature_header or not secret:
        return False
    if not isinstance(raw_body, (bytes, bytearray)):
        return False
    try:
        expected = compute_signature(bytes(raw_body), secret)
        return hmac.compare_digest(expected, signature_header.strip().lower())
    except (TypeError, ValueError):
        return False
