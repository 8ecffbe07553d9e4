from __future__ import annotations

from enum import Enum
from typing import Optional


class PaymentMethod(str, Enum):
    CARD = "CARD"
    TRANSFER = "TRANSFER"
    VIRTUAL_ACCOUNT = "VIRTUAL_ACCOUNT"
    PAY_ON_DELIVERY = "PAY_ON_DELIVERY"
    WALLET = "WALLET"
    MONNIFY = "MONNIFY"

    @classmethod
    def values(cls) -> list[str]:
        return [m.value for m in cls]

    @classmethod
    def normalize(cls, raw: Optional[str]) -> Optional["PaymentMethod"]:
        """Case-insensitive lookup; None when the value is not a known method."""
        if not raw:
            return None
        wanted = str(raw).strip().lower()
        for m in cls:
            if m.value.lower() == wanted:
                return m
        return None


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class RefundStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


ELECTRICITY = "electricity"

# Methods that settle through an online gateway. The rest are resolved
# outside the gateway (delivery confirmation, wallet ledger).
GATEWAY_METHODS = frozenset({
    PaymentMethod.CARD,
    PaymentMethod.TRANSFER,
    PaymentMethod.VIRTUAL_ACCOUNT,
})

CARD_FREE_METHODS = frozenset({PaymentMethod.TRANSFER, PaymentMethod.VIRTUAL_ACCOUNT})

# Built-in availability when no PaymentConfig row exists for a method.
DEFAULT_METHOD_CONFIG = {
    PaymentMethod.CARD: (True, "flutterwave"),
    PaymentMethod.TRANSFER: (True, "flutterwave"),
    PaymentMethod.VIRTUAL_ACCOUNT: (True, "flutterwave"),
    PaymentMethod.PAY_ON_DELIVERY: (True, None),
    PaymentMethod.WALLET: (False, None),
    PaymentMethod.MONNIFY: (False, None),
}

HISTORY_MAX_LIMIT = 100
