from decimal import Decimal

import pytest

from app import create_app
from app.auth import Principal
from app.extensions import db
from app.models import Payment, User
from app.payments.constants import TransactionStatus
from app.payments.gateway import AUTH_MODE_OTP, GatewayResult, PaymentGateway
from app.utils.jwt_utils import create_access_token

from helpers import FRONTEND, WEBHOOK_SECRET


class FakeGateway(PaymentGateway):
    """In-memory gateway; tests set the answers and inspect `calls`."""

    name = "flutterwave"

    def __init__(self):
        self.calls = []
        self.charge_error = None
        self.charge_auth_mode = AUTH_MODE_OTP
        self.verify_results = {}
        self.verify_errors = {}
        self.validate_result = None
        self.authorize_result = None
        self.refund_error = None
        self.bvn_error = None
        self.bvn = {"firstName": "Ada", "lastName": "Obi", "bvn": "12345678901", "bankName": None, "accountNumber": None}

    def count(self, kind):
        return sum(1 for c in self.calls if c[0] == kind)

    def complete(self, tx_ref, amount, status=TransactionStatus.COMPLETED):
        self.verify_results[tx_ref] = GatewayResult(
            status=status,
            gateway_reference=f"FLW-{tx_ref}",
            gateway_transaction_id="9001",
            amount=Decimal(str(amount)).quantize(Decimal("0.01")),
        )

    def _charge(self, kind, tx_ref, amount, *, auth_mode=None, details=None):
        self.calls.append((kind, tx_ref))
        if self.charge_error is not None:
            raise self.charge_error
        return GatewayResult(
            status=TransactionStatus.PENDING,
            gateway_reference=f"FLW-{tx_ref}",
            gateway_transaction_id="1001",
            amount=amount,
            auth_mode=auth_mode,
            details=details or {},
        )

    def charge_card(self, *, tx_ref, amount, currency, customer, card):
        return self._charge("charge_card", tx_ref, amount, auth_mode=self.charge_auth_mode)

    def charge_bank_transfer(self, *, tx_ref, amount, currency, customer):
        return self._charge("charge_bank_transfer", tx_ref, amount, details={
            "bankTransfer": {"accountNumber": "0123456789", "bankName": "Test Bank"},
        })

    def create_virtual_account(self, *, tx_ref, amount, currency, customer):
        return self._charge("create_virtual_account", tx_ref, amount, details={
            "virtualAccount": {"accountNumber": "9876543210", "bankName": "Wema Bank"},
        })

    def verify(self, tx_ref):
        self.calls.append(("verify", tx_ref))
        if tx_ref in self.verify_errors:
            raise self.verify_errors[tx_ref]
        return self.verify_results.get(tx_ref) or GatewayResult(
            status=TransactionStatus.PENDING, gateway_reference=f"FLW-{tx_ref}"
        )

    def validate_charge(self, *, gateway_ref, otp, token_id=None):
        self.calls.append(("validate_charge", gateway_ref, otp))
        return self.validate_result or GatewayResult(status=TransactionStatus.COMPLETED, gateway_reference=gateway_ref)

    def authorize_card(self, *, tx_ref, amount, currency, customer, card, gateway_ref=None):
        self.calls.append(("authorize_card", tx_ref, gateway_ref))
        return self.authorize_result or GatewayResult(
            status=TransactionStatus.PENDING,
            gateway_reference=gateway_ref,
            auth_mode="redirect",
            redirect_url="https://checkout.example.test/3ds",
        )

    def refund(self, *, gateway_transaction_id, amount):
        self.calls.append(("refund", gateway_transaction_id, amount))
        if self.refund_error is not None:
            raise self.refund_error
        return GatewayResult(status=TransactionStatus.COMPLETED, gateway_reference="RF-1", amount=amount)

    def resolve_bvn(self, bvn):
        self.calls.append(("resolve_bvn", bvn))
        if self.bvn_error is not None:
            raise self.bvn_error
        return dict(self.bvn)


@pytest.fixture()
def app():
    app = create_app({
        "TESTING": True,
        "ENV": "test",
        "SECRET_KEY": "test-secret-key-0123456789",
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "FLUTTERWAVE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "FRONTEND_URL": FRONTEND,
        "TERMII_API_KEY": "",
        "MAIL_API_KEY": "",
        "LOG_LEVEL": "WARNING",
    })
    app.extensions["payment_gateway"] = FakeGateway()
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def gateway(app):
    return app.extensions["payment_gateway"]


@pytest.fixture()
def ctx(app):
    """App context for tests that call the service layer directly."""
    with app.app_context():
        yield


@pytest.fixture()
def client(app):
    return app.test_client()


def _make_user(app, email, phone, first="Ada", last="Obi"):
    with app.app_context():
        u = User(first_name=first, last_name=last, email=email, phone=phone)
        u.set_password("secret-pass")
        db.session.add(u)
        db.session.commit()
        return u.id


@pytest.fixture()
def user_id(app):
    return _make_user(app, "ada@example.test", "+2348000000001")


@pytest.fixture()
def other_user_id(app):
    return _make_user(app, "bola@example.test", "+2348000000002", first="Bola", last="Ade")


@pytest.fixture()
def principal(app, user_id):
    with app.app_context():
        u = db.session.get(User, user_id)
        return Principal(user_id=u.id, role="customer", email=u.email, phone=u.phone, name=u.full_name)


@pytest.fixture()
def other_principal(app, other_user_id):
    with app.app_context():
        u = db.session.get(User, other_user_id)
        return Principal(user_id=u.id, role="customer", email=u.email, phone=u.phone, name=u.full_name)


@pytest.fixture()
def auth_headers(app, user_id):
    with app.app_context():
        token = create_access_token(user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_payment(app, user_id):
    """Insert a payment row directly, bypassing the gateway."""

    def _make(ref, *, method="CARD", status="PENDING", amount="5000.00", owner=None, **extra):
        with app.app_context():
            p = Payment(
                transaction_ref=ref,
                user_id=owner or user_id,
                amount=Decimal(amount),
                requested_amount=Decimal(amount),
                payment_method=method,
                status=status,
                gateway="flutterwave" if method in ("CARD", "TRANSFER", "VIRTUAL_ACCOUNT") else None,
                **extra,
            )
            db.session.add(p)
            db.session.commit()
            return p.id

    return _make

