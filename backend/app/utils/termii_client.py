from __future__ import annotations

import requests
from flask import current_app

TERMII_BASE = "https://api.ng.termii.com/api"


def send_termii_message(*, to: str, message: str, channel: str = "generic") -> tuple[bool, str]:
    """Send an SMS via Termii.

    - channel="generic" for normal routes, "dnd" if the account has it enabled
    """

    api_key = current_app.config.get("TERMII_API_KEY")
    sender = current_app.config.get("TERMII_SENDER_ID", "Quicrefil")

    if not api_key:
        return False, "TERMII_API_KEY not set"
    if not (to or "").strip():
        return False, "no_phone"

    ch = (channel or "generic").strip().lower()
    if ch not in {"generic", "dnd"}:
        ch = "generic"

    payload = {
        "to": to.strip(),
        "from": sender,
        "sms": message,
        "type": "plain",
        "channel": ch,
        "api_key": api_key,
    }

    try:
        r = requests.post(f"{TERMII_BASE}/sms/send", json=payload, timeout=10)
        if 200 <= r.status_code < 300:
            body = r.json() if r.content else {}
            return True, str(body.get("message_id") or "sent")
        return False, f"termii_http_{r.status_code}"
    except (requests.RequestException, ValueError) as e:
        return False, f"termii_exception:{e.__class__.__name__}"
