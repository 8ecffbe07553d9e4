"""Request schemas for the payment API.

Models validate shape and cross-field rules only; availability of a payment
method and anything that needs the database is checked by the service.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import ClassVar, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.payments.constants import (
    CARD_FREE_METHODS,
    ELECTRICITY,
    HISTORY_MAX_LIMIT,
    PaymentMethod,
    TransactionStatus,
)


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")


class CardDetails(_Schema):
    cardno: Optional[str] = None
    cvv: Optional[str] = None
    expirymonth: Optional[str] = None
    expiryyear: Optional[str] = None
    pin: Optional[str] = None
    suggested_auth: Optional[str] = None
    billingzip: Optional[str] = None
    billingcity: Optional[str] = None
    billingaddress: Optional[str] = None
    billingstate: Optional[str] = None
    billingcountry: Optional[str] = None

    REQUIRED: ClassVar[tuple] = ("cardno", "cvv", "expirymonth", "expiryyear")

    def missing_fields(self) -> list[str]:
        return [f for f in self.REQUIRED if not getattr(self, f)]

    def is_empty(self) -> bool:
        return not any(v for v in self.model_dump().values())

    def __repr__(self) -> str:
        # card data must never end up in logs or tracebacks
        return "CardDetails(****)"

    __str__ = __repr__


class PaymentRequest(_Schema):
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    payment_method: str = Field(alias="paymentMethod", min_length=1)
    product_type: Optional[Literal["product", "wallet_topup"]] = Field(default=None, alias="productType")
    service_type: Optional[Literal["gas", "petrol", "diesel", "electricity"]] = Field(default=None, alias="serviceType")
    transaction_ref: Optional[str] = Field(default=None, alias="transactionRef", max_length=128)
    item_id: Optional[str] = Field(default=None, alias="itemId")
    card_details: Optional[CardDetails] = Field(default=None, alias="cardDetails")
    is_wallet_top_up: bool = Field(default=False, alias="isWalletTopUp")
    meter_number: Optional[str] = Field(default=None, alias="meterNumber")
    voucher_code: Optional[str] = Field(default=None, alias="voucherCode")
    destination_bank_code: Optional[str] = Field(default=None, alias="destinationBankCode")
    destination_account_number: Optional[str] = Field(default=None, alias="destinationAccountNumber")

    @field_validator("amount", mode="before")
    @classmethod
    def _reject_bool_amount(cls, v):
        if isinstance(v, bool):
            raise ValueError("Amount must be a number")
        return v

    @field_validator("payment_method")
    @classmethod
    def _known_method(cls, v: str) -> str:
        method = PaymentMethod.normalize(v)
        if method is None:
            raise ValueError(
                f"Invalid payment method: {v}. Must be one of: {', '.join(PaymentMethod.values())}"
            )
        return method.value

    @model_validator(mode="after")
    def _cross_field_rules(self):
        method = PaymentMethod(self.payment_method)
        card = self.card_details

        if method is PaymentMethod.CARD:
            if card is None:
                raise ValueError("cardDetails (cardno, cvv, expirymonth, expiryyear) are required for CARD payments")
            missing = card.missing_fields()
            if missing:
                raise ValueError(f"cardDetails missing required fields: {', '.join(missing)}")
        elif method in CARD_FREE_METHODS and card is not None and not card.is_empty():
            raise ValueError(f"cardDetails must not be provided for {method.value} payments")

        if self.is_wallet_top_up and (self.product_type or self.service_type):
            raise ValueError("isWalletTopUp cannot be used with productType or serviceType")
        if self.product_type and self.service_type:
            raise ValueError("productType and serviceType cannot both be set")
        if self.voucher_code and (self.is_wallet_top_up or self.product_type == "wallet_topup"):
            raise ValueError("Vouchers cannot be applied to wallet top-up transactions")
        if self.service_type == ELECTRICITY and not (
            self.meter_number and self.destination_bank_code and self.destination_account_number
        ):
            raise ValueError(
                "meterNumber, destinationBankCode, and destinationAccountNumber are required for electricity serviceType"
            )
        return self

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod(self.payment_method)

    @property
    def is_bill_payment(self) -> bool:
        return self.service_type == ELECTRICITY

    def fingerprint(self) -> dict:
        """Request identity for idempotency hashing, without card data."""
        return self.model_dump(mode="json", exclude={"card_details"})


class VerifyPaymentRequest(_Schema):
    transaction_ref: str = Field(alias="transactionRef", min_length=1)
    otp: Optional[str] = None
    flw_ref: Optional[str] = Field(default=None, alias="flwRef")
    token_id: Optional[str] = Field(default=None, alias="tokenId")


class AuthorizationData(_Schema):
    cardno: str = Field(min_length=1)
    cvv: str = Field(min_length=1)
    expirymonth: str = Field(min_length=1)
    expiryyear: str = Field(min_length=1)
    pin: Optional[str] = None

    def __repr__(self) -> str:
        return "AuthorizationData(****)"

    __str__ = __repr__


class AuthorizePaymentRequest(_Schema):
    transaction_ref: str = Field(alias="transactionRef", min_length=1)
    flw_ref: Optional[str] = Field(default=None, alias="flwRef")
    authorization_data: AuthorizationData = Field(alias="authorizationData")


class RefundRequest(_Schema):
    transaction_ref: str = Field(alias="transactionRef", min_length=1)
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    payment_reference: Optional[str] = Field(default=None, alias="paymentReference")


class CancelPaymentRequest(_Schema):
    transaction_ref: str = Field(alias="transactionRef", min_length=1)


class TransactionHistoryQuery(_Schema):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=HISTORY_MAX_LIMIT)
    start_date: Optional[datetime] = Field(default=None, alias="startDate")
    end_date: Optional[datetime] = Field(default=None, alias="endDate")
    status: Optional[TransactionStatus] = None
    payment_method: Optional[str] = Field(default=None, alias="paymentMethod")

    @field_validator("payment_method")
    @classmethod
    def _known_method(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        method = PaymentMethod.normalize(v)
        if method is None:
            raise ValueError(f"Must be one of: {', '.join(PaymentMethod.values())}")
        return method.value

    @field_validator("status", mode="before")
    @classmethod
    def _upper_status(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or None
        return v

    @model_validator(mode="after")
    def _date_order(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("startDate must be before endDate")
        return self


class PaymentMethodStatusQuery(_Schema):
    payment_method: str = Field(alias="paymentMethod", min_length=1)

    @field_validator("payment_method")
    @classmethod
    def _known_method(cls, v: str) -> str:
        method = PaymentMethod.normalize(v)
        if method is None:
            raise ValueError(f"Invalid payment method. Must be one of: {', '.join(PaymentMethod.values())}")
        return method.value


class BvnVerificationRequest(_Schema):
    bvn: str = Field(pattern=r"^\d{11}$")
    bank_name: str = Field(alias="bankName", min_length=1)
    account_number: str = Field(alias="accountNumber", pattern=r"^\d{10}$")
    transaction_ref: str = Field(alias="transactionRef", min_length=1)
