from datetime import datetime

from app.extensions import db


class AdminSettings(db.Model):
    __tablename__ = "admin_settings"

    id = db.Column(db.Integer, primary_key=True)

    # Flat charges in NGN, VAT as a fraction (0.075 = 7.5%)
    default_service_charge = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    default_topup_charge = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    default_vat_rate = db.Column(db.Numeric(6, 4), nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
