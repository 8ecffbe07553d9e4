"""Socket.IO push for payment status changes.

Clients join the room `user:<id>` and receive `payment_status` events.
Emitting is best effort; a failed emit never affects the payment.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from flask_socketio import join_room

from app.extensions import socketio
from app.utils.jwt_utils import decode_access_token

logger = logging.getLogger(__name__)

PAYMENT_STATUS_EVENT = "payment_status"


def user_room(user_id: int) -> str:
    return f"user:{int(user_id)}"


def broadcast_room_event(room: str, payload: Dict[str, Any], event: str = PAYMENT_STATUS_EVENT) -> bool:
    """Broadcast an event to a room. Returns False if the emit failed."""
    try:
        socketio.emit(event, payload, to=room)
        return True
    except Exception as e:
        logger.warning("socket emit to %s failed: %s", room, e)
        return False


@socketio.on("join")
def _on_join(data):
    # The client passes its access token; only its own room can be joined.
    token = data.get("token") if isinstance(data, dict) else None
    claims = decode_access_token(token)
    if claims is None:
        return {"ok": False}
    join_room(user_room(claims["sub"]))
    return {"ok": True}
