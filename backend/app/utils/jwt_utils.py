"""HS256 access tokens shared with the Quicrefill auth service."""

import time
from typing import Any, Dict, Optional

import jwt
from flask import current_app

ALGORITHM = "HS256"
ACCESS_TOKEN_TTL = 60 * 60 * 24 * 7


def _secret() -> str:
    return current_app.config.get("SECRET_KEY") or "dev-secret-change-me"


def create_access_token(user_id: int, *, role: str = "customer", ttl_seconds: int = ACCESS_TOKEN_TTL) -> str:
    now = int(time.time())
    return jwt.encode(
        {"sub": str(user_id), "role": role, "iat": now, "exp": now + ttl_seconds, "type": "access"},
        _secret(),
        algorithm=ALGORITHM,
    )


def decode_access_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Claims of a valid, unexpired access token, or None.

    `sub` is returned as an int.
    """
    if not token:
        return None
    try:
        claims = jwt.decode(token, _secret(), algorithms=[ALGORITHM], options={"require": ["exp", "sub"]})
    except jwt.PyJWTError:
        return None
    if claims.get("type") != "access":
        return None
    try:
        claims["sub"] = int(claims["sub"])
    except (TypeError, ValueError):
        return None
    return claims


def get_bearer_token(auth_header: str) -> Optional[str]:
    parts = (auth_header or "").split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None
