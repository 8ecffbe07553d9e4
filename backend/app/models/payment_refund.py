import uuid
from datetime import datetime

from app.extensions import db


class PaymentRefund(db.Model):
    __tablename__ = "payment_refunds"

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.String(36), db.ForeignKey("payments.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=False)

    amount = db.Column(db.Numeric(14, 2), nullable=False)
    refund_reference = db.Column(db.String(64), nullable=False, unique=True, default=lambda: f"REF-{uuid.uuid4()}")
    gateway_reference = db.Column(db.String(128), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING|COMPLETED|FAILED

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "paymentId": self.payment_id,
            "amount": float(self.amount or 0),
            "refundReference": self.refund_reference,
            "gatewayReference": self.gateway_reference,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
