import json
import uuid
from datetime import datetime
from decimal import Decimal

from app.extensions import db


def _uuid() -> str:
    return str(uuid.uuid4())


def _money(value) -> float:
    return float(value) if value is not None else 0.0


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    transaction_ref = db.Column(db.String(128), nullable=False, unique=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    vendor_id = db.Column(db.String(64), nullable=True)

    amount = db.Column(db.Numeric(14, 2), nullable=False)
    requested_amount = db.Column(db.Numeric(14, 2), nullable=True)
    currency = db.Column(db.String(8), nullable=False, default="NGN")

    payment_method = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING|COMPLETED|FAILED|CANCELLED

    product_type = db.Column(db.String(32), nullable=True)
    service_type = db.Column(db.String(32), nullable=True)
    is_wallet_top_up = db.Column(db.Boolean, nullable=False, default=False)
    item_id = db.Column(db.String(64), nullable=True)
    voucher_code = db.Column(db.String(64), nullable=True)

    meter_number = db.Column(db.String(32), nullable=True)
    destination_bank_code = db.Column(db.String(16), nullable=True)
    destination_account_number = db.Column(db.String(16), nullable=True)

    gateway = db.Column(db.String(32), nullable=True)
    gateway_reference = db.Column(db.String(128), nullable=True, index=True)  # flw_ref
    gateway_transaction_id = db.Column(db.String(64), nullable=True)
    # Sub-state reported by the gateway while PENDING, e.g. "otp" or "redirect".
    gateway_auth_mode = db.Column(db.String(32), nullable=True)

    payment_details = db.Column(db.Text, nullable=True)  # JSON string, never card data

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    finalized_at = db.Column(db.DateTime, nullable=True)

    refunds = db.relationship("PaymentRefund", backref="payment", lazy="select", order_by="PaymentRefund.created_at")

    def details_dict(self) -> dict:
        raw = (self.payment_details or "").strip()
        if not raw:
            return {}
        try:
            d = json.loads(raw)
            return d if isinstance(d, dict) else {}
        except ValueError:
            return {}

    def merge_details(self, extra: dict) -> None:
        d = self.details_dict()
        d.update({k: v for k, v in (extra or {}).items() if v is not None})
        self.payment_details = json.dumps(d, default=str)

    def refunded_total(self) -> Decimal:
        total = Decimal("0.00")
        for r in self.refunds or []:
            if r.status != "FAILED":
                total += Decimal(r.amount or 0)
        return total

    def to_dict(self):
        return {
            "id": self.id,
            "transactionId": self.transaction_ref,
            "transactionRef": self.transaction_ref,
            "userId": int(self.user_id),
            "vendorId": self.vendor_id,
            "amount": _money(self.amount),
            "requestedAmount": _money(self.requested_amount) if self.requested_amount is not None else None,
            "currency": self.currency or "NGN",
            "paymentMethod": self.payment_method,
            "status": self.status,
            "productType": self.product_type,
            "serviceType": self.service_type,
            "isWalletTopUp": bool(self.is_wallet_top_up),
            "itemId": self.item_id,
            "voucherCode": self.voucher_code,
            "meterNumber": self.meter_number,
            "gateway": self.gateway,
            "gatewayReference": self.gateway_reference,
            "paymentDetails": self.details_dict(),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
