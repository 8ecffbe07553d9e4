from __future__ import annotations

from datetime import datetime
import json
from typing import Any, Dict

from app.extensions import db
from app.models.notification import Notification

PROVIDERS = {"in_app": "local", "sms": "termii", "email": "mail_api"}


def queue(user_id: int, channel: str, *, reference: str, event: str, subject: str, body: str,
          payload: Dict[str, Any]) -> Notification:
    n = Notification(
        user_id=user_id,
        reference=reference,
        event=event,
        channel=channel,
        subject=(subject or "")[:160],
        body=body or "",
        delivery_status="queued",
        provider=PROVIDERS[channel],
        payload=json.dumps(payload, default=str),
    )
    db.session.add(n)
    return n


def mark_sent(n: Notification, provider_ref: str = "") -> None:
    n.delivery_status = "sent"
    n.provider_ref = provider_ref[:120] if provider_ref else None
    n.delivered_at = datetime.utcnow()
    db.session.add(n)


def mark_failed(n: Notification, provider_ref: str = "") -> None:
    n.delivery_status = "failed"
    n.provider_ref = provider_ref[:120] if provider_ref else None
    db.session.add(n)
