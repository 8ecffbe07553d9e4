from datetime import datetime

from app.extensions import db


class FraudAlert(db.Model):
    __tablename__ = "fraud_alerts"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    alert_type = db.Column(db.String(32), nullable=False, index=True)  # AMOUNT_MISMATCH
    entity_type = db.Column(db.String(32), nullable=False, default="Payment")
    entity_id = db.Column(db.String(64), nullable=True)
    reason = db.Column(db.Text(), nullable=True)
    resolved = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
