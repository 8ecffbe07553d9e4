from __future__ import annotations

import logging
from datetime import datetime, timedelta

from app.errors import GatewayError
from app.extensions import db
from app.models import Payment
from app.payments import service, store
from app.payments.constants import GATEWAY_METHODS, TransactionStatus

logger = logging.getLogger(__name__)


def reconcile_pending_payments(*, older_than_minutes: int = 30, limit: int = 200) -> dict:
    """Re-verify stale PENDING gateway payments.

    Picks up payments whose webhook never arrived (or failed) and runs them
    through the normal verification path. Nothing is finalized without the
    gateway's answer.
    """
    cutoff = datetime.utcnow() - timedelta(minutes=int(older_than_minutes))
    methods = [m.value for m in GATEWAY_METHODS]
    rows = (
        Payment.query
        .filter(Payment.status == TransactionStatus.PENDING.value)
        .filter(Payment.payment_method.in_(methods))
        .filter(Payment.created_at <= cutoff)
        .order_by(Payment.created_at.asc())
        .limit(int(limit))
        .all()
    )

    checked = 0
    finalized = 0
    errors = 0
    for p in rows:
        checked += 1
        try:
            result = service.verify_payment(p.transaction_ref)
            if result.changed:
                finalized += 1
        except GatewayError as e:
            db.session.rollback()
            errors += 1
            logger.warning("reconcile %s failed: %s", p.transaction_ref, e.message)
            if not e.retryable:
                store.record_audit(None, "PAYMENT_RECONCILE_FAILED", p, {"error": e.message})

    logger.info("payment reconcile: checked=%s finalized=%s errors=%s", checked, finalized, errors)
    return {"checked": checked, "finalized": finalized, "errors": errors}
