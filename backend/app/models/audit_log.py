from datetime import datetime

from app.extensions import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_target", "target_type", "target_id"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # None for system writers (webhook, callbacks, reconciler)
    actor_user_id = db.Column(db.Integer, nullable=True)
    action = db.Column(db.String(64), nullable=False, index=True)  # PAYMENT_FAILED, REFUND_PROCESSED ...
    target_type = db.Column(db.String(32), nullable=False, default="payment")
    target_id = db.Column(db.String(128), nullable=True)  # transaction_ref for payments
    details = db.Column(db.Text, nullable=True)  # JSON

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
