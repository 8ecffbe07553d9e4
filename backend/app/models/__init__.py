from .user import User  # noqa: F401
from .notification import Notification  # noqa: F401

from .payment import Payment  # noqa: F401
from .payment_refund import PaymentRefund  # noqa: F401
from .payment_config import PaymentConfig  # noqa: F401
from .admin_settings import AdminSettings  # noqa: F401
from .bvn_verification import BvnVerification  # noqa: F401

from .audit_log import AuditLog  # noqa: F401
from .fraud_alert import FraudAlert  # noqa: F401

from .idempotency_key import IdempotencyKey  # noqa: F401

from .webhook_event import WebhookEvent  # noqa: F401
