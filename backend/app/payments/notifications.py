from __future__ import annotations

import logging

from app.extensions import db
from app.models import Payment, PaymentRefund, User
from app.realtime.socket import broadcast_room_event, user_room
from app.utils.mailer import send_email
from app.utils.notify import mark_failed, mark_sent, queue
from app.utils.termii_client import send_termii_message

logger = logging.getLogger(__name__)

_STATUS_COPY = {
    "COMPLETED": ("Payment successful", "Your payment of NGN {amount} ({ref}) was successful."),
    "FAILED": ("Payment failed", "Your payment of NGN {amount} ({ref}) failed. You have not been charged."),
    "CANCELLED": ("Payment cancelled", "Your payment of NGN {amount} ({ref}) was cancelled."),
}


def _dispatch(user_id: int, event_name: str, title: str, message: str, event: dict) -> None:
    ref = event["transactionRef"]
    try:
        user = db.session.get(User, int(user_id))
        if user is None:
            return

        common = {"reference": ref, "event": event_name, "subject": title, "payload": event}
        in_app = queue(user.id, "in_app", body=message, **common)
        email = queue(user.id, "email", body=message, **common) if user.email else None
        sms = queue(user.id, "sms", body=f"Quicrefill: {message}", **common) if user.phone else None
        db.session.commit()

        mark_sent(in_app, "local")
        if email is not None:
            ok, provider_ref = send_email(to=user.email, subject=title, html=f"<p>{message}</p>")
            (mark_sent if ok else mark_failed)(email, provider_ref)
        if sms is not None:
            ok, provider_ref = send_termii_message(to=user.phone, message=sms.body)
            (mark_sent if ok else mark_failed)(sms, provider_ref)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("notification dispatch failed for user %s (%s)", user_id, ref)

    broadcast_room_event(user_room(user_id), event)



def payment_status_changed(payment: Payment) -> None:
    """Tell the customer a payment reached a terminal status. Never raises."""
    copy = _STATUS_COPY.get(payment.status)
    if copy is None:
        return
    title, template = copy
    event = {
        "transactionRef": payment.transaction_ref,
        "status": payment.status,
        "amount": float(payment.amount or 0),
        "paymentMethod": payment.payment_method,
    }
    message = template.format(amount=payment.amount, ref=payment.transaction_ref)
    _dispatch(payment.user_id, f"payment.{payment.status.lower()}", title, message, event)


def refund_processed(payment: Payment, refund: PaymentRefund) -> None:
    event = {
        "transactionRef": payment.transaction_ref,
        "status": payment.status,
        "refundReference": refund.refund_reference,
        "refundStatus": refund.status,
        "refundAmount": float(refund.amount or 0),
    }
    message = f"A refund of NGN {refund.amount} for payment {payment.transaction_ref} is {refund.status.lower()}."
    _dispatch(payment.user_id, f"refund.{refund.status.lower()}", "Refund update", message, event)
