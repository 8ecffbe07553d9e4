from datetime import datetime

from app.extensions import db


class BvnVerification(db.Model):
    __tablename__ = "bvn_verifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    transaction_ref = db.Column(db.String(128), nullable=False)

    bvn = db.Column(db.String(16), nullable=False)  # masked, ****1234
    bank_name = db.Column(db.String(120), nullable=False)
    account_number = db.Column(db.String(16), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING|COMPLETED|FAILED
    bank_account_linked = db.Column(db.Boolean, nullable=False, default=False)
    response_details = db.Column(db.Text, nullable=True)  # JSON, masked

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
