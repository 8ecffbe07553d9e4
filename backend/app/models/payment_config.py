from datetime import datetime

from app.extensions import db


class PaymentConfig(db.Model):
    __tablename__ = "payment_configs"

    id = db.Column(db.Integer, primary_key=True)
    payment_method = db.Column(db.String(32), nullable=False, unique=True)
    is_enabled = db.Column(db.Boolean, nullable=False, default=True)
    gateway = db.Column(db.String(32), nullable=True)

    updated_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "paymentMethod": self.payment_method,
            "isEnabled": bool(self.is_enabled),
            "gateway": self.gateway,
            "lastUpdated": self.updated_at.isoformat() if self.updated_at else None,
            "updatedBy": self.updated_by,
        }
