from app.extensions import db
from app.models import Payment
from app.payments.signature import compute_signature

WEBHOOK_SECRET = "whsec-test-secret"
FRONTEND = "https://app.example.test"


def stored(app, ref):
    """Current stored state of a payment, read in a fresh app context."""
    with app.app_context():
        p = Payment.query.filter_by(transaction_ref=ref).first()
        return p.to_dict() if p else None


def sign(body: bytes) -> dict:
    return {"verif-hash": compute_signature(body, WEBHOOK_SECRET), "Content-Type": "application/json"}


def count(app, model, **filters):
    with app.app_context():
        return db.session.query(model).filter_by(**filters).count()
