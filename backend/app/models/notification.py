from datetime import datetime

from app.extensions import db


class Notification(db.Model):
    """One delivery attempt of a payment event to a customer on one channel."""

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_reference_event", "reference", "event"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # payment transaction_ref the message is about
    reference = db.Column(db.String(128), nullable=False)
    event = db.Column(db.String(32), nullable=False)  # payment.completed | payment.failed | refund.pending ...

    channel = db.Column(db.String(16), nullable=False)  # in_app | sms | email
    subject = db.Column(db.String(160), nullable=False, default="")
    body = db.Column(db.Text, nullable=False)

    delivery_status = db.Column(db.String(16), nullable=False, default="queued")  # queued | sent | failed
    provider = db.Column(db.String(32), nullable=False)  # local | termii | mail_api
    provider_ref = db.Column(db.String(120), nullable=True)

    payload = db.Column(db.Text, nullable=True)  # JSON, the socket event as broadcast

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    delivered_at = db.Column(db.DateTime, nullable=True)
