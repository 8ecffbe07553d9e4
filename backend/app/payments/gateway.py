"""Payment gateway client.

`PaymentGateway` is the seam the orchestrator talks to; `FlutterwaveGateway`
is the production implementation over the Flutterwave v3 REST API. Every
outbound call carries a timeout, and a timeout or connection failure is
raised as `GatewayUnavailableError` (outcome unknown, retry later) rather
than as a failed payment.

Vendor-specific conditions (status vocabulary, the sandbox pending-OTP code)
stay in this module.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import requests
from Crypto.Cipher import DES3
from flask import current_app

from app.errors import GatewayError, GatewayUnavailableError
from app.payments.constants import GATEWAY_METHODS, PaymentMethod, TransactionStatus

logger = logging.getLogger(__name__)

DECLINED_MESSAGE = "Payment gateway declined the request"

# Flutterwave reports a card that is waiting for an OTP with this charge
# response code on the redirect callback (sandbox and VBV secure code flow).
PENDING_OTP_CHARGE_CODE = "02"
PENDING_OTP_AUTH_MODEL = "VBVSECURECODE"
# Sandbox cards accept this OTP; used when the callback itself has to finish
# the challenge.
SANDBOX_CALLBACK_OTP = "12345"
SANDBOX_CALLBACK_TOKEN_ID = "default-token-id"

AUTH_MODE_OTP = "otp"
AUTH_MODE_PIN = "pin"
AUTH_MODE_REDIRECT = "redirect"
AUTH_MODE_AVS = "avs_noauth"

_STATUS_MAP = {
    "successful": TransactionStatus.COMPLETED,
    "success": TransactionStatus.COMPLETED,
    "completed": TransactionStatus.COMPLETED,
    "paid": TransactionStatus.COMPLETED,
    "failed": TransactionStatus.FAILED,
    "error": TransactionStatus.FAILED,
    "cancelled": TransactionStatus.CANCELLED,
    "expired": TransactionStatus.CANCELLED,
    "pending": TransactionStatus.PENDING,
}


def map_gateway_status(raw: Optional[str]) -> TransactionStatus:
    """Map a vendor status string; anything unrecognised stays PENDING."""
    return _STATUS_MAP.get((raw or "").strip().lower(), TransactionStatus.PENDING)


def callback_requires_otp(data: Optional[Dict[str, Any]]) -> bool:
    """True when a redirect-callback blob describes a card waiting for an OTP."""
    if not isinstance(data, dict):
        return False
    return (
        data.get("authModelUsed") == PENDING_OTP_AUTH_MODEL
        and bool(data.get("flwRef"))
        and str(data.get("status") or "").lower() == "pending"
        and str(data.get("chargeResponseCode") or "") == PENDING_OTP_CHARGE_CODE
    )


def _decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None


@dataclass
class GatewayResult:
    status: TransactionStatus
    gateway_reference: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None
    auth_mode: Optional[str] = None
    redirect_url: Optional[str] = None
    message: str = ""
    found: bool = True
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def pending_otp(self) -> bool:
        return self.status is TransactionStatus.PENDING and self.auth_mode == AUTH_MODE_OTP


@dataclass
class Customer:
    email: str
    name: str = ""
    phone: Optional[str] = None


class PaymentGateway:
    """Interface implemented by every gateway the orchestrator can use."""

    name = "base"

    def supports(self, method: PaymentMethod) -> bool:
        return method in GATEWAY_METHODS

    def charge_card(self, *, tx_ref: str, amount: Decimal, currency: str, customer: Customer, card) -> GatewayResult:
        raise NotImplementedError

    def charge_bank_transfer(self, *, tx_ref: str, amount: Decimal, currency: str, customer: Customer) -> GatewayResult:
        raise NotImplementedError

    def create_virtual_account(self, *, tx_ref: str, amount: Decimal, currency: str, customer: Customer) -> GatewayResult:
        raise NotImplementedError

    def verify(self, tx_ref: str) -> GatewayResult:
        raise NotImplementedError

    def validate_charge(self, *, gateway_ref: str, otp: str, token_id: Optional[str] = None) -> GatewayResult:
        raise NotImplementedError

    def authorize_card(self, *, tx_ref: str, amount: Decimal, currency: str, customer: Customer, card,
                       gateway_ref: Optional[str] = None) -> GatewayResult:
        raise NotImplementedError

    def refund(self, *, gateway_transaction_id: str, amount: Decimal) -> GatewayResult:
        raise NotImplementedError

    def resolve_bvn(self, bvn: str) -> Dict[str, Any]:
        raise NotImplementedError


class FlutterwaveGateway(PaymentGateway):
    name = "flutterwave"

    def __init__(self, *, base_url: str, secret_key: str, encryption_key: str = "",
                 timeout: float = 15, redirect_url: str = "", session: Optional[requests.Session] = None):
        self.base_url = (base_url or "https://api.flutterwave.com").rstrip("/")
        self.secret_key = secret_key or ""
        self.encryption_key = encryption_key or ""
        self.timeout = timeout
        self.redirect_url = redirect_url
        self.session = session or requests.Session()

    # -------------------------
    # transport
    # -------------------------
    def _request(self, method: str, path: str, *, json: Optional[dict] = None,
                 params: Optional[dict] = None, allow_not_found: bool = False) -> dict:
        if not self.secret_key:
            raise GatewayError("FLUTTERWAVE_SECRET_KEY not set")
        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {self.secret_key}", "Content-Type": "application/json"}
        try:
            r = self.session.request(method, url, headers=headers, json=json, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            logger.warning("flutterwave timeout %s %s", method, path)
            raise GatewayUnavailableError("Payment gateway timed out, please retry") from e
        except requests.RequestException as e:
            logger.warning("flutterwave unreachable %s %s: %s", method, path, e.__class__.__name__)
            raise GatewayUnavailableError("Payment gateway unreachable, please retry") from e

        try:
            body = r.json() if r.content else {}
        except ValueError:
            body = {}

        if r.status_code >= 500:
            raise GatewayUnavailableError(f"Payment gateway error (HTTP {r.status_code})", gateway_status=r.status_code)
        if r.status_code == 401:
            raise GatewayError("Payment gateway rejected our credentials", gateway_status=401)
        if allow_not_found and r.status_code in (400, 404) and "no transaction" in str(body.get("message", "")).lower():
            return {"status": "not_found", "message": body.get("message", "")}
        if r.status_code >= 400 or body.get("status") == "error":
            # vendor text stays in our logs; clients get the summary only
            logger.warning("flutterwave declined %s %s (HTTP %s): %s", method, path, r.status_code, body.get("message"))
            raise GatewayError(DECLINED_MESSAGE, gateway_status=r.status_code)
        return body

    def _encrypt(self, payload: dict) -> str:
        if not self.encryption_key:
            raise GatewayError("FLUTTERWAVE_ENCRYPTION_KEY not set")
        text = json.dumps(payload)
        pad = 8 - (len(text) % 8)
        text = text + chr(pad) * pad
        try:
            cipher = DES3.new(self.encryption_key.encode("utf-8"), DES3.MODE_ECB)
        except ValueError as e:
            raise GatewayError("Invalid FLUTTERWAVE_ENCRYPTION_KEY") from e
        return base64.b64encode(cipher.encrypt(text.encode("utf-8"))).decode("utf-8")

    # -------------------------
    # response mapping
    # -------------------------
    def _charge_result(self, body: dict) -> GatewayResult:
        data = body.get("data") or {}
        meta = body.get("meta") or {}
        auth = meta.get("authorization") or {}
        mode = (auth.get("mode") or "").lower() or None
        status = map_gateway_status(data.get("status"))
        redirect = auth.get("redirect") if mode == AUTH_MODE_REDIRECT else None

        details = {"processorResponse": data.get("processor_response")}
        if mode in (AUTH_MODE_PIN, AUTH_MODE_AVS):
            details["requiredFields"] = auth.get("fields") or []
        if mode == AUTH_MODE_REDIRECT and redirect:
            details["secure3dData"] = {"id": str(data.get("id") or ""), "redirectUrl": redirect}
        if mode == "banktransfer":
            details["bankTransfer"] = {
                "accountReference": auth.get("transfer_reference"),
                "accountNumber": auth.get("transfer_account"),
                "bankName": auth.get("transfer_bank"),
                "accountExpiration": auth.get("account_expiration"),
                "narration": auth.get("transfer_note"),
                "transferAmount": auth.get("transfer_amount"),
            }

        return GatewayResult(
            status=status,
            gateway_reference=data.get("flw_ref") or auth.get("transfer_reference"),
            gateway_transaction_id=str(data["id"]) if data.get("id") is not None else None,
            amount=_decimal(data.get("amount")),
            auth_mode=mode,
            redirect_url=redirect,
            message=body.get("message") or "",
            details={k: v for k, v in details.items() if v},
        )

    # -------------------------
    # operations
    # -------------------------
    def charge_card(self, *, tx_ref, amount, currency, customer, card) -> GatewayResult:
        payload = {
            "card_number": card.cardno,
            "cvv": card.cvv,
            "expiry_month": card.expirymonth,
            "expiry_year": card.expiryyear,
            "currency": currency,
            "amount": str(amount),
            "email": customer.email,
            "fullname": customer.name,
            "tx_ref": tx_ref,
            "redirect_url": self.redirect_url,
        }
        if getattr(card, "pin", None):
            payload["authorization"] = {"mode": AUTH_MODE_PIN, "pin": card.pin}
        elif getattr(card, "billingaddress", None):
            payload["authorization"] = {
                "mode": AUTH_MODE_AVS,
                "city": card.billingcity,
                "address": card.billingaddress,
                "state": card.billingstate,
                "country": card.billingcountry,
                "zipcode": card.billingzip,
            }
        body = self._request("POST", "/v3/charges", params={"type": "card"}, json={"client": self._encrypt(payload)})
        return self._charge_result(body)

    def authorize_card(self, *, tx_ref, amount, currency, customer, card, gateway_ref=None) -> GatewayResult:
        # Flutterwave completes PIN/AVS challenges by resubmitting the charge
        # with the authorization block filled in.
        result = self.charge_card(tx_ref=tx_ref, amount=amount, currency=currency, customer=customer, card=card)
        if not result.gateway_reference and gateway_ref:
            result.gateway_reference = gateway_ref
        return result

    def charge_bank_transfer(self, *, tx_ref, amount, currency, customer) -> GatewayResult:
        body = self._request("POST", "/v3/charges", params={"type": "bank_transfer"}, json={
            "tx_ref": tx_ref,
            "amount": str(amount),
            "email": customer.email,
            "currency": currency,
        })
        return self._charge_result(body)

    def create_virtual_account(self, *, tx_ref, amount, currency, customer) -> GatewayResult:
        body = self._request("POST", "/v3/virtual-account-numbers", json={
            "email": customer.email,
            "tx_ref": tx_ref,
            "amount": str(amount),
            "currency": currency,
            "is_permanent": False,
            "narration": f"Quicrefill {tx_ref}",
        })
        data = body.get("data") or {}
        return GatewayResult(
            status=TransactionStatus.PENDING,
            gateway_reference=data.get("flw_ref"),
            amount=_decimal(data.get("amount")),
            message=body.get("message") or "",
            details={"virtualAccount": {
                "accountNumber": data.get("account_number"),
                "bankName": data.get("bank_name"),
                "accountReference": data.get("order_ref"),
                "expiryDate": data.get("expiry_date"),
                "note": data.get("note"),
                "amount": data.get("amount"),
            }},
        )

    def verify(self, tx_ref: str) -> GatewayResult:
        body = self._request("GET", "/v3/transactions/verify_by_reference", params={"tx_ref": tx_ref}, allow_not_found=True)
        if body.get("status") == "not_found":
            return GatewayResult(status=TransactionStatus.PENDING, found=False, message=body.get("message", ""))
        data = body.get("data") or {}
        return GatewayResult(
            status=map_gateway_status(data.get("status")),
            gateway_reference=data.get("flw_ref"),
            gateway_transaction_id=str(data["id"]) if data.get("id") is not None else None,
            amount=_decimal(data.get("amount")),
            message=body.get("message") or "",
            details={"processorResponse": data.get("processor_response"), "paymentType": data.get("payment_type")},
        )

    def validate_charge(self, *, gateway_ref, otp, token_id=None) -> GatewayResult:
        body = self._request("POST", "/v3/validate-charge", json={"otp": otp, "flw_ref": gateway_ref, "type": "card"})
        result = self._charge_result(body)
        if not result.gateway_reference:
            result.gateway_reference = gateway_ref
        return result

    def refund(self, *, gateway_transaction_id, amount) -> GatewayResult:
        body = self._request("POST", f"/v3/transactions/{gateway_transaction_id}/refund", json={"amount": str(amount)})
        data = body.get("data") or {}
        return GatewayResult(
            status=map_gateway_status(data.get("status")),
            gateway_reference=str(data.get("id") or ""),
            amount=_decimal(data.get("amount_refunded") or amount),
            message=body.get("message") or "",
        )

    def resolve_bvn(self, bvn: str) -> Dict[str, Any]:
        body = self._request("GET", f"/v3/kyc/bvns/{bvn}")
        data = body.get("data") or {}
        return {
            "firstName": data.get("first_name") or "",
            "lastName": data.get("last_name") or "",
            "middleName": data.get("middle_name") or "",
            "bvn": data.get("bvn") or bvn,
            "bankName": data.get("bank_name"),
            "accountNumber": data.get("account_number"),
        }


def init_gateway(app) -> None:
    cfg = app.config
    app.extensions["payment_gateway"] = FlutterwaveGateway(
        base_url=cfg.get("FLUTTERWAVE_BASE_URL", ""),
        secret_key=cfg.get("FLUTTERWAVE_SECRET_KEY", ""),
        encryption_key=cfg.get("FLUTTERWAVE_ENCRYPTION_KEY", ""),
        timeout=cfg.get("GATEWAY_TIMEOUT_SECONDS", 15),
        redirect_url=f"{cfg.get('SERVER_URL', '')}/api/payments/callback",
    )


def get_gateway() -> PaymentGateway:
    gw = current_app.extensions.get("payment_gateway")
    if gw is None:
        raise GatewayError("No payment gateway configured")
    return gw
