"""Bearer-token authentication for the payment API.

Tokens are issued by the Quicrefill auth service (HS256, shared SECRET_KEY).
Flask-Login's request_loader turns the Authorization header into the
current user; `current_principal()` hands the service layer a plain
`Principal` instead of the ORM user.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from flask import g
from flask_login import current_user

from app.errors import AuthenticationError
from app.extensions import db, login_manager
from app.models import User
from app.utils.jwt_utils import decode_access_token, get_bearer_token


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str
    email: str = ""
    phone: str = ""
    name: str = ""


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.request_loader
def load_user_from_request(req):
    claims = decode_access_token(get_bearer_token(req.headers.get("Authorization", "")))
    if claims is None:
        return None
    user = db.session.get(User, claims["sub"])
    if user is not None:
        g.token_role = str(claims.get("role") or "customer")
    return user


def current_principal() -> Principal:
    if not current_user or not current_user.is_authenticated:
        raise AuthenticationError()
    return Principal(
        user_id=int(current_user.id),
        role=getattr(g, "token_role", "customer"),
        email=current_user.email or "",
        phone=current_user.phone or "",
        name=current_user.full_name,
    )


def auth_required(fn):
    """Reject the request with 401 unless a valid bearer token is present."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        current_principal()
        return fn(*args, **kwargs)

    return wrapper
