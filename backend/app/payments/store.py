"""Persistence helpers for payments.

All status changes go through `apply_status`, a conditional
`UPDATE ... WHERE status = 'PENDING'`, so concurrent writers (webhook,
browser callback, reconciler) converge on one terminal value.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError

from app.errors import NotFoundError
from app.extensions import db
from app.models import AuditLog, FraudAlert, Payment
from app.payments.constants import TransactionStatus

logger = logging.getLogger(__name__)


def find_by_ref(ref: Optional[str]) -> Optional[Payment]:
    """Look a payment up by transaction reference, falling back to its id."""
    if not ref:
        return None
    p = Payment.query.filter_by(transaction_ref=ref).first()
    if p is None and len(ref) <= 36:
        p = db.session.get(Payment, ref)
    return p


def get_for_user(ref: Optional[str], user_id: int) -> Payment:
    p = find_by_ref(ref)
    # Someone else's payment is reported exactly like a missing one.
    if p is None or int(p.user_id) != int(user_id):
        raise NotFoundError(f"Payment not found: {ref}")
    return p


def insert_pending(payment: Payment) -> tuple[Payment, bool]:
    """Insert a new PENDING payment.

    Returns (payment, True) on insert, or (existing, False) when another
    request inserted the same transaction_ref first.
    """
    db.session.add(payment)
    try:
        db.session.commit()
        return payment, True
    except IntegrityError:
        db.session.rollback()
        existing = Payment.query.filter_by(transaction_ref=payment.transaction_ref).first()
        if existing is None:
            raise
        return existing, False


def apply_status(
    payment: Payment,
    status: TransactionStatus,
    *,
    gateway_reference: Optional[str] = None,
    gateway_transaction_id: Optional[str] = None,
    auth_mode: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> bool:
    """Write `status` (and gateway fields) only if the payment is still PENDING.

    Returns True when this call performed the write. False means another
    writer finalized the payment first; `payment` is refreshed either way.
    """
    now = datetime.utcnow()
    values: Dict[str, Any] = {"status": status.value, "updated_at": now}
    if status.is_terminal:
        values["finalized_at"] = now
        values["gateway_auth_mode"] = None
    elif auth_mode:
        values["gateway_auth_mode"] = auth_mode
    if gateway_reference:
        values["gateway_reference"] = gateway_reference
    if gateway_transaction_id:
        values["gateway_transaction_id"] = gateway_transaction_id
    if details:
        merged = payment.details_dict()
        merged.update({k: v for k, v in details.items() if v is not None})
        values["payment_details"] = json.dumps(merged, default=str)

    updated = (
        Payment.query
        .filter(Payment.id == payment.id, Payment.status == TransactionStatus.PENDING.value)
        .update(values, synchronize_session=False)
    )
    db.session.commit()
    db.session.refresh(payment)
    if not updated:
        logger.info("payment %s already %s, skipped %s", payment.transaction_ref, payment.status, status.value)
    return bool(updated)


def record_audit(actor_user_id: Optional[int], action: str, payment: Optional[Payment] = None,
                 details: Optional[Dict[str, Any]] = None, *, target_type: str = "payment",
                 target_id: Optional[str] = None) -> None:
    try:
        db.session.add(AuditLog(
            actor_user_id=int(actor_user_id) if actor_user_id is not None else None,
            action=action,
            target_type=target_type,
            target_id=target_id or (payment.transaction_ref if payment is not None else None),
            details=json.dumps(details or {}, default=str),
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("audit log write failed for %s", action)


def raise_fraud_alert(payment: Payment, alert_type: str, reason: str) -> tuple[FraudAlert, bool]:
    """Open an alert for the payment unless an unresolved one of that type exists.

    Returns (alert, created).
    """
    existing = (
        FraudAlert.query
        .filter_by(entity_type="Payment", entity_id=payment.transaction_ref, alert_type=alert_type, resolved=False)
        .first()
    )
    if existing is not None:
        return existing, False

    alert = FraudAlert(
        user_id=int(payment.user_id),
        alert_type=alert_type,
        entity_type="Payment",
        entity_id=payment.transaction_ref,
        reason=reason,
    )
    db.session.add(alert)
    db.session.commit()
    logger.warning("fraud alert %s on payment %s: %s", alert_type, payment.transaction_ref, reason)
    return alert, True
