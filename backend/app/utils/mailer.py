"""Transactional email through an HTTP mail API (Resend-compatible)."""

from __future__ import annotations

import logging

import requests
from flask import current_app

logger = logging.getLogger(__name__)

MAIL_API_URL = "https://api.resend.com/emails"


def send_email(*, to: str, subject: str, html: str) -> tuple[bool, str]:
    api_key = current_app.config.get("MAIL_API_KEY")
    sender = current_app.config.get("MAIL_FROM", "Quicrefill <no-reply@quicrefill.com>")
    if not api_key:
        return False, "MAIL_API_KEY not set"
    if not to:
        return False, "no_email"

    try:
        r = requests.post(
            MAIL_API_URL,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json={"from": sender, "to": [to], "subject": subject, "html": html},
            timeout=10,
        )
    except requests.RequestException as e:
        logger.error("email to %s failed: %s", to, e.__class__.__name__)
        return False, f"mail_exception:{e.__class__.__name__}"

    if r.status_code >= 400:
        logger.error("email to %s rejected: HTTP %s", to, r.status_code)
        return False, f"mail_http_{r.status_code}"
    try:
        return True, str((r.json() or {}).get("id") or "sent")
    except ValueError:
        return True, "sent"
