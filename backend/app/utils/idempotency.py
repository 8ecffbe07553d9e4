from __future__ import annotations

import hashlib
import json
from typing import Any, Optional

from flask import request
from sqlalchemy.exc import IntegrityError

from app.errors import IdempotencyConflictError
from app.extensions import db
from app.models import IdempotencyKey


def _hash_request(payload: Any) -> str:
    raw = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def get_idempotency_key() -> Optional[str]:
    k = request.headers.get("Idempotency-Key") or request.headers.get("X-Idempotency-Key")
    if not k or not k.strip():
        return None
    return k.strip()[:128]


def _scoped(user_id: Optional[int], key: str) -> str:
    # Keys are per user so two customers can never collide on a client-chosen key.
    return f"{int(user_id) if user_id is not None else 0}:{key}"[:128]


def lookup_response(user_id: Optional[int], route: str, payload: Any):
    """Replay a stored response for a repeated Idempotency-Key.

    Returns None when the request carries no key, ("hit", body, status) for
    a replay, or ("miss", row, 0) for a first use. Reusing a key with a
    different payload raises IdempotencyConflictError.
    """
    k = get_idempotency_key()
    if not k:
        return None

    key = _scoped(user_id, k)
    rh = _hash_request(payload)
    row = IdempotencyKey.query.filter_by(key=key).first()
    if row is None:
        row = IdempotencyKey(key=key, user_id=int(user_id) if user_id is not None else None, route=route, request_hash=rh)
        db.session.add(row)
        try:
            db.session.commit()
            return ("miss", row, 0)
        except IntegrityError:
            db.session.rollback()
            row = IdempotencyKey.query.filter_by(key=key).first()
            if row is None:
                raise

    if row.route != route or (row.request_hash and row.request_hash != rh):
        raise IdempotencyConflictError()
    if row.response_json and row.status_code is not None:
        return ("hit", json.loads(row.response_json), int(row.status_code))
    # First request with this key is still running or failed before storing.
    raise IdempotencyConflictError("A request with this Idempotency-Key is already in progress")


def store_response(row: IdempotencyKey, response_json: Any, status_code: int) -> None:
    row.response_json = json.dumps(response_json, default=str)
    row.status_code = int(status_code)
    db.session.add(row)
    db.session.commit()


def release_key(row: IdempotencyKey) -> None:
    """Forget a key whose request failed so the client can retry with it."""
    try:
        db.session.delete(row)
        db.session.commit()
    except Exception:
        db.session.rollback()
