"""Payment orchestration.

Initiation, verification, OTP/3-D Secure challenges, refunds,
cancellations and the read-side queries. Route handlers validate the
request with the pydantic schemas and pass a `Principal`; everything here
raises `app.errors` exceptions and never touches `flask.request`.

Status changes only ever happen through `store.apply_status`, so a payment
that is already COMPLETED, FAILED or CANCELLED is returned as stored.
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func

from app.auth import Principal
from app.errors import (
    GatewayError,
    GatewayUnavailableError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.extensions import db
from app.models import AdminSettings, BvnVerification, Payment, PaymentConfig, PaymentRefund, User, WebhookEvent
from app.payments import notifications, store
from app.payments.constants import (
    DEFAULT_METHOD_CONFIG,
    GATEWAY_METHODS,
    PaymentMethod,
    RefundStatus,
    TransactionStatus,
)
from app.payments.gateway import AUTH_MODE_OTP, Customer, GatewayResult, PaymentGateway, get_gateway
from app.payments.schemas import (
    AuthorizationData,
    BvnVerificationRequest,
    PaymentRequest,
    TransactionHistoryQuery,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def mask(value: Optional[str], keep: int = 4) -> str:
    value = value or ""
    return f"****{value[-keep:]}" if value else ""


@dataclass
class VerificationResult:
    transaction_ref: str
    status: str
    amount: Decimal
    payment_method: str
    gateway_reference: Optional[str] = None
    changed: bool = False
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payment(cls, payment: Payment, *, changed: bool = False, message: str = "") -> "VerificationResult":
        return cls(
            transaction_ref=payment.transaction_ref,
            status=payment.status,
            amount=to_money(payment.amount),
            payment_method=payment.payment_method,
            gateway_reference=payment.gateway_reference,
            changed=changed,
            message=message,
            details=payment.details_dict(),
        )

    def to_dict(self) -> dict:
        return {
            "transactionId": self.transaction_ref,
            "status": self.status,
            "amount": float(self.amount),
            "paymentMethod": self.payment_method,
            "gatewayReference": self.gateway_reference,
            "changed": self.changed,
            "message": self.message,
            "paymentDetails": self.details,
        }


# -------------------------
# configuration lookups
# -------------------------
def method_config(method: PaymentMethod) -> tuple[bool, Optional[str], Optional[PaymentConfig]]:
    row = PaymentConfig.query.filter_by(payment_method=method.value).first()
    if row is not None:
        return bool(row.is_enabled), row.gateway, row
    enabled, gateway = DEFAULT_METHOD_CONFIG[method]
    return enabled, gateway, None


def compute_fees(base: Decimal, *, is_top_up: bool) -> Dict[str, Decimal]:
    settings = AdminSettings.query.order_by(AdminSettings.id.asc()).first()
    zero = Decimal("0.00")
    service_fee = to_money(settings.default_service_charge or 0) if settings and not is_top_up else zero
    topup_charge = to_money(settings.default_topup_charge or 0) if settings and is_top_up else zero
    vat_rate = Decimal(str(settings.default_vat_rate or 0)) if settings else Decimal("0")
    vat = to_money(base * vat_rate)
    return {
        "baseAmount": base,
        "serviceFee": service_fee,
        "topupCharge": topup_charge,
        "vat": vat,
        "totalAmount": base + service_fee + topup_charge + vat,
    }


def _customer(principal: Principal) -> Customer:
    return Customer(email=principal.email, name=principal.name, phone=principal.phone or None)


def _log_context(payment: Payment) -> dict:
    return {"ref": payment.transaction_ref, "user": payment.user_id, "method": payment.payment_method}


# -------------------------
# gateway results
# -------------------------
def _apply_result(payment: Payment, result: GatewayResult, *, actor: Optional[int] = None) -> bool:
    """Reconcile a gateway answer into the stored payment.

    Returns True only when this call moved the payment to a terminal status.
    """
    if (
        result.status is TransactionStatus.COMPLETED
        and result.amount is not None
        and result.amount != to_money(payment.amount)
    ):
        reason = f"Gateway reported {result.amount} but payment {payment.transaction_ref} expects {to_money(payment.amount)}"
        _alert, created = store.raise_fraud_alert(payment, "AMOUNT_MISMATCH", reason)
        if created:
            store.record_audit(actor, "PAYMENT_AMOUNT_MISMATCH", payment, {"gatewayAmount": result.amount})
        return False

    wrote = store.apply_status(
        payment,
        result.status,
        gateway_reference=result.gateway_reference,
        gateway_transaction_id=result.gateway_transaction_id,
        auth_mode=result.auth_mode,
        details=result.details,
    )
    transitioned = wrote and result.status.is_terminal
    if transitioned:
        logger.info("payment %s -> %s", payment.transaction_ref, payment.status)
        notifications.payment_status_changed(payment)
    return transitioned


def _fail(payment: Payment, error: GatewayError, *, actor: Optional[int], action: str) -> None:
    if store.apply_status(payment, TransactionStatus.FAILED, details={"failureReason": error.message}):
        notifications.payment_status_changed(payment)
    store.record_audit(actor, action, payment, {"error": error.message, "gatewayStatus": error.gateway_status})


# -------------------------
# initiation
# -------------------------
def _check_method(req: PaymentRequest) -> Optional[str]:
    method = req.method
    if req.is_wallet_top_up and method is PaymentMethod.WALLET:
        raise ValidationError("WALLET payment method cannot be used for wallet top-ups")
    if req.is_bill_payment and method in (PaymentMethod.WALLET, PaymentMethod.PAY_ON_DELIVERY):
        raise ValidationError(f"{method.value} is not supported for bill payments")

    enabled, gateway_name, _row = method_config(method)
    if not enabled:
        raise ValidationError(f"Payment method {method.value} is currently disabled")
    if method not in GATEWAY_METHODS and method is not PaymentMethod.PAY_ON_DELIVERY:
        raise ValidationError(f"Payment method {method.value} is not available for online payments")
    return gateway_name if method in GATEWAY_METHODS else None


def _existing_for(ref: str, principal: Principal) -> Optional[Payment]:
    existing = Payment.query.filter_by(transaction_ref=ref).first()
    if existing is not None and int(existing.user_id) != principal.user_id:
        raise StateConflictError("transactionRef is already in use")
    return existing


def initiate_payment(principal: Principal, req: PaymentRequest) -> tuple[Payment, bool]:
    """Create a PENDING payment and start the charge with the gateway.

    Returns (payment, created). A repeated `transactionRef` returns the
    existing payment with created=False and no gateway call.
    """
    gateway_name = _check_method(req)

    if req.transaction_ref:
        existing = _existing_for(req.transaction_ref, principal)
        if existing is not None:
            logger.info("initiate replay for %s, returning existing payment", req.transaction_ref)
            return existing, False
        ref = req.transaction_ref
    else:
        ref = f"{'BILL' if req.is_bill_payment else 'TRX'}-{uuid.uuid4()}"

    base = to_money(req.amount)
    fees = compute_fees(base, is_top_up=req.is_wallet_top_up or req.product_type == "wallet_topup")

    payment = Payment(
        transaction_ref=ref,
        user_id=principal.user_id,
        amount=fees["totalAmount"],
        requested_amount=base,
        payment_method=req.method.value,
        status=TransactionStatus.PENDING.value,
        product_type=req.product_type,
        service_type=req.service_type,
        is_wallet_top_up=req.is_wallet_top_up,
        item_id=req.item_id,
        voucher_code=req.voucher_code,
        meter_number=req.meter_number,
        destination_bank_code=req.destination_bank_code,
        destination_account_number=req.destination_account_number,
        gateway=gateway_name,
    )
    # voucherCode is recorded for the vouchers service; no discount is applied here.
    payment.merge_details({**{k: str(v) for k, v in fees.items()}, "voucherCode": req.voucher_code})

    payment, created = store.insert_pending(payment)
    if not created:
        if int(payment.user_id) != principal.user_id:
            raise StateConflictError("transactionRef is already in use")
        return payment, False

    if req.is_bill_payment:
        process_bill_payment(principal, payment, req)
    else:
        process_payment(principal, payment, req)
    return payment, True


def process_payment(principal: Principal, payment: Payment, req: PaymentRequest) -> None:
    store.record_audit(principal.user_id, "PAYMENT_INITIATED", payment, {
        "amount": payment.amount, "paymentMethod": payment.payment_method,
    })
    _charge(principal, payment, req, failure_action="PAYMENT_FAILED")


def process_bill_payment(principal: Principal, payment: Payment, req: PaymentRequest) -> None:
    payment.merge_details({"billDetails": {
        "serviceType": req.service_type,
        "meterNumber": req.meter_number,
        "destinationBankCode": req.destination_bank_code,
        "destinationAccountNumber": mask(req.destination_account_number),
    }})
    db.session.commit()
    store.record_audit(principal.user_id, "BILL_PAYMENT_INITIATED", payment, {
        "amount": payment.amount, "paymentMethod": payment.payment_method, "meterNumber": req.meter_number,
    })
    _charge(principal, payment, req, failure_action="BILL_PAYMENT_FAILED")


def _charge(principal: Principal, payment: Payment, req: PaymentRequest, *, failure_action: str,
            gateway: Optional[PaymentGateway] = None) -> None:
    method = PaymentMethod(payment.payment_method)
    if method is PaymentMethod.PAY_ON_DELIVERY:
        # Settled at delivery; the POD callback or a driver confirmation finalizes it.
        return

    gw = gateway or get_gateway()
    kwargs = dict(tx_ref=payment.transaction_ref, amount=to_money(payment.amount),
                  currency=payment.currency or "NGN", customer=_customer(principal))
    try:
        if method is PaymentMethod.CARD:
            result = gw.charge_card(card=req.card_details, **kwargs)
        elif method is PaymentMethod.TRANSFER:
            result = gw.charge_bank_transfer(**kwargs)
        else:
            result = gw.create_virtual_account(**kwargs)
    except GatewayUnavailableError as e:
        logger.warning("gateway unavailable during charge %s", _log_context(payment))
        e.transaction_ref = payment.transaction_ref
        raise
    except GatewayError as e:
        logger.error("charge failed %s: %s", _log_context(payment), e.message)
        _fail(payment, e, actor=principal.user_id, action=failure_action)
        e.transaction_ref = payment.transaction_ref
        raise

    if result.redirect_url:
        result.details.setdefault("redirectUrl", result.redirect_url)
    if result.auth_mode:
        result.details.setdefault("authMode", result.auth_mode)
    _apply_result(payment, result, actor=principal.user_id)


# -------------------------
# verification
# -------------------------
def _load(transaction_ref: str, principal: Optional[Principal]) -> Payment:
    if principal is not None:
        return store.get_for_user(transaction_ref, principal.user_id)
    payment = store.find_by_ref(transaction_ref)
    if payment is None:
        raise NotFoundError(f"Payment not found: {transaction_ref}")
    return payment


def verify_payment(transaction_ref: str, *, principal: Optional[Principal] = None,
                   gateway: Optional[PaymentGateway] = None) -> VerificationResult:
    """Reconcile a payment with the gateway's authoritative status.

    Terminal payments are returned as stored without a gateway call.
    Raises GatewayUnavailableError when the gateway cannot be reached.
    """
    payment = _load(transaction_ref, principal)
    actor = principal.user_id if principal else None

    if TransactionStatus(payment.status).is_terminal:
        return VerificationResult.from_payment(payment, message="Payment already finalized")
    if PaymentMethod(payment.payment_method) not in GATEWAY_METHODS:
        return VerificationResult.from_payment(payment, message="Awaiting settlement outside the gateway")

    gw = gateway or get_gateway()
    result = gw.verify(payment.transaction_ref)
    if not result.found:
        return VerificationResult.from_payment(payment, message="Transaction not yet received by the gateway")

    changed = _apply_result(payment, result, actor=actor)
    if changed:
        store.record_audit(actor, "PAYMENT_VERIFIED", payment, {"status": payment.status})
    return VerificationResult.from_payment(payment, changed=changed, message=result.message)


def validate_card_payment(transaction_ref: str, gateway_ref: Optional[str], token_id: Optional[str],
                          otp: str, *, principal: Optional[Principal] = None, otp_reported: bool = False,
                          gateway: Optional[PaymentGateway] = None) -> VerificationResult:
    """Submit an OTP for a card charge that is waiting on one.

    Without a pending OTP challenge (stored from the charge response, or
    `otp_reported` by the gateway's redirect) this is a plain verification.
    """
    payment = _load(transaction_ref, principal)
    if TransactionStatus(payment.status).is_terminal:
        return VerificationResult.from_payment(payment, message="Payment already finalized")
    awaiting_otp = otp_reported or payment.gateway_auth_mode == AUTH_MODE_OTP
    if payment.payment_method != PaymentMethod.CARD.value or not awaiting_otp:
        return verify_payment(transaction_ref, principal=principal, gateway=gateway)

    flw_ref = gateway_ref or payment.gateway_reference
    if not flw_ref:
        raise ValidationError("flwRef is required to validate this payment")

    gw = gateway or get_gateway()
    actor = principal.user_id if principal else None
    try:
        validation = gw.validate_charge(gateway_ref=flw_ref, otp=otp, token_id=token_id)
    except GatewayUnavailableError:
        raise
    except GatewayError as e:
        _fail(payment, e, actor=actor, action="PAYMENT_FAILED")
        raise

    if validation.status is TransactionStatus.FAILED:
        changed = _apply_result(payment, validation, actor=actor)
        return VerificationResult.from_payment(payment, changed=changed, message=validation.message)

    # Confirm the amount and final status through the verify endpoint.
    result = gw.verify(payment.transaction_ref)
    if not result.gateway_reference:
        result.gateway_reference = flw_ref
    changed = _apply_result(payment, result, actor=actor)
    if changed:
        store.record_audit(actor, "PAYMENT_VERIFIED", payment, {"status": payment.status, "via": "otp"})
    return VerificationResult.from_payment(payment, changed=changed, message=validation.message or result.message)


def authorize_3ds_card_payment(principal: Principal, transaction_ref: str, gateway_ref: Optional[str],
                               authorization: AuthorizationData, *,
                               gateway: Optional[PaymentGateway] = None) -> dict:
    payment = store.get_for_user(transaction_ref, principal.user_id)
    if payment.payment_method != PaymentMethod.CARD.value:
        raise ValidationError("Only CARD payments can be authorized")
    if TransactionStatus(payment.status).is_terminal:
        raise StateConflictError(
            f"Payment is already finalized with status {payment.status}", current_status=payment.status
        )

    flw_ref = gateway_ref or payment.gateway_reference
    if not flw_ref:
        raise ValidationError("No gateway reference found for this payment")

    gw = gateway or get_gateway()
    try:
        result = gw.authorize_card(
            tx_ref=payment.transaction_ref,
            amount=to_money(payment.amount),
            currency=payment.currency or "NGN",
            customer=_customer(principal),
            card=authorization,
            gateway_ref=flw_ref,
        )
    except GatewayUnavailableError:
        raise
    except GatewayError as e:
        _fail(payment, e, actor=principal.user_id, action="PAYMENT_FAILED")
        raise

    changed = _apply_result(payment, result, actor=principal.user_id)
    out = VerificationResult.from_payment(payment, changed=changed, message=result.message).to_dict()
    out["authMode"] = payment.gateway_auth_mode
    out["redirectUrl"] = result.redirect_url
    return out


# -------------------------
# refunds & cancellation
# -------------------------
def process_refund(principal: Principal, transaction_ref: str, amount, payment_reference: Optional[str] = None, *,
                   gateway: Optional[PaymentGateway] = None) -> dict:
    """Refund part or all of a COMPLETED payment.

    Refunds are a side ledger: the payment keeps its COMPLETED status and
    the sum of non-failed refunds can never exceed the payment amount.
    """
    payment = store.get_for_user(transaction_ref, principal.user_id)
    if payment.status != TransactionStatus.COMPLETED.value:
        raise StateConflictError(
            f"Only COMPLETED payments can be refunded (current status: {payment.status})",
            current_status=payment.status,
        )

    amount = to_money(amount)
    # Row lock serialises concurrent refunds on backends that support it.
    payment = Payment.query.filter_by(id=payment.id).with_for_update().one()
    remaining = to_money(payment.amount) - payment.refunded_total()
    if amount > remaining:
        db.session.rollback()
        raise ValidationError(f"Refund amount exceeds refundable balance of {remaining}")

    refund = PaymentRefund(
        payment_id=payment.id,
        user_id=principal.user_id,
        amount=amount,
        gateway_reference=payment_reference,
        status=RefundStatus.PENDING.value,
    )
    db.session.add(refund)
    db.session.commit()

    if PaymentMethod(payment.payment_method) in GATEWAY_METHODS:
        gw = gateway or get_gateway()
        try:
            gateway_id = payment.gateway_transaction_id or gw.verify(payment.transaction_ref).gateway_transaction_id
            if not gateway_id:
                raise GatewayError("Gateway transaction id unknown for this payment")
            result = gw.refund(gateway_transaction_id=gateway_id, amount=amount)
        except GatewayUnavailableError:
            # Outcome unknown; the refund stays PENDING and keeps its reservation.
            logger.warning("gateway unavailable during refund %s", _log_context(payment))
            raise
        except GatewayError as e:
            refund.status = RefundStatus.FAILED.value
            db.session.commit()
            store.record_audit(principal.user_id, "REFUND_FAILED", payment, {"amount": amount, "error": e.message})
            raise
        if result.status is TransactionStatus.FAILED:
            refund.status = RefundStatus.FAILED.value
        elif result.status is TransactionStatus.COMPLETED:
            refund.status = RefundStatus.COMPLETED.value
        if result.gateway_reference:
            refund.gateway_reference = result.gateway_reference
    else:
        # Cash/offline settlement: the refund is recorded as done.
        refund.status = RefundStatus.COMPLETED.value
    db.session.commit()

    store.record_audit(principal.user_id, "REFUND_INITIATED", payment, {
        "amount": amount, "refundReference": refund.refund_reference, "status": refund.status,
    })
    notifications.refund_processed(payment, refund)

    out = refund.to_dict()
    out["transactionId"] = payment.transaction_ref
    out["paymentStatus"] = payment.status
    out["refundableBalance"] = float(to_money(payment.amount) - payment.refunded_total())
    return out


def cancel_payment(principal: Principal, transaction_ref: str) -> Payment:
    payment = store.get_for_user(transaction_ref, principal.user_id)
    if TransactionStatus(payment.status).is_terminal:
        raise StateConflictError(
            f"Payment is already finalized with status {payment.status}", current_status=payment.status
        )
    if not store.apply_status(payment, TransactionStatus.CANCELLED, details={"cancelledBy": principal.user_id}):
        raise StateConflictError(
            f"Payment is already finalized with status {payment.status}", current_status=payment.status
        )
    store.record_audit(principal.user_id, "PAYMENT_CANCELLED", payment)
    notifications.payment_status_changed(payment)
    return payment


# -------------------------
# queries
# -------------------------
def get_transaction_history(user_id: int, query: TransactionHistoryQuery) -> dict:
    q = Payment.query.filter(Payment.user_id == int(user_id))
    if query.start_date:
        q = q.filter(Payment.created_at >= query.start_date)
    if query.end_date:
        q = q.filter(Payment.created_at <= query.end_date)
    if query.status:
        q = q.filter(Payment.status == query.status.value)
    if query.payment_method:
        q = q.filter(Payment.payment_method == query.payment_method)

    total = q.count()
    rows = (
        q.order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset((query.page - 1) * query.limit)
        .limit(query.limit)
        .all()
    )
    return {
        "transactions": [p.to_dict() for p in rows],
        "total": total,
        "page": query.page,
        "limit": query.limit,
        "totalPages": math.ceil(total / query.limit) if total else 0,
    }


def check_payment_method_status(method: PaymentMethod, *, gateway: Optional[PaymentGateway] = None) -> dict:
    enabled, gateway_name, row = method_config(method)
    gateway_ready = False
    if gateway_name:
        try:
            gw = gateway or get_gateway()
            gateway_ready = gw.name == gateway_name and gw.supports(method)
        except GatewayError:
            gateway_ready = False
    elif method is PaymentMethod.PAY_ON_DELIVERY:
        gateway_ready = True

    out = {
        "paymentMethod": method.value,
        "isEnabled": enabled,
        "gateway": gateway_name,
        "available": bool(enabled and gateway_ready),
        "lastUpdated": None,
        "updatedBy": None,
    }
    if row is not None:
        out.update({"lastUpdated": row.to_dict()["lastUpdated"], "updatedBy": row.updated_by})
    return out


def get_payment_stats(user_id: int) -> dict:
    rows = (
        db.session.query(Payment.status, func.count(Payment.id))
        .filter(Payment.user_id == int(user_id))
        .group_by(Payment.status)
        .all()
    )
    counts = {s.value: 0 for s in TransactionStatus}
    for status, n in rows:
        counts[status] = int(n)
    total = sum(counts.values())

    completed_amount = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.user_id == int(user_id), Payment.status == TransactionStatus.COMPLETED.value)
        .scalar()
    )
    successful = counts[TransactionStatus.COMPLETED.value]
    return {
        "total": total,
        "byStatus": counts,
        "totalCompletedAmount": float(to_money(completed_amount or 0)),
        "successRate": round(successful / total * 100, 2) if total else 0,
    }


# -------------------------
# BVN
# -------------------------
def verify_bvn(principal: Principal, req: BvnVerificationRequest, *,
               gateway: Optional[PaymentGateway] = None) -> dict:
    user = db.session.get(User, principal.user_id)
    if user is None:
        raise NotFoundError("User not found")

    record = BvnVerification(
        user_id=user.id,
        transaction_ref=req.transaction_ref,
        bvn=mask(req.bvn),
        bank_name=req.bank_name,
        account_number=req.account_number,
        status="PENDING",
    )

    gw = gateway or get_gateway()
    try:
        data = gw.resolve_bvn(req.bvn)
    except GatewayUnavailableError:
        raise
    except GatewayError as e:
        record.status = "FAILED"
        record.response_details = json.dumps({"error": e.message})
        db.session.add(record)
        db.session.commit()
        store.record_audit(user.id, "BVN_VERIFICATION_FAILED", None, {"bvn": record.bvn, "error": e.message},
                           target_type="bvn_verification", target_id=req.transaction_ref)
        raise

    def _same(a, b) -> bool:
        return bool(a) and bool(b) and str(a).strip().casefold() == str(b).strip().casefold()

    name_match = _same(data.get("firstName"), user.first_name) and _same(data.get("lastName"), user.last_name)
    linked = name_match and _same(data.get("accountNumber"), req.account_number) and _same(data.get("bankName"), req.bank_name)

    record.status = "COMPLETED" if name_match else "FAILED"
    record.bank_account_linked = linked
    record.response_details = json.dumps({
        "firstName": data.get("firstName"),
        "lastName": data.get("lastName"),
        "bvn": record.bvn,
        "nameMatch": name_match,
    })
    db.session.add(record)
    if name_match:
        user.bvn_verified = True
    db.session.commit()

    if not name_match:
        store.record_audit(user.id, "BVN_VERIFICATION_FAILED", None, {"bvn": record.bvn, "reason": "name mismatch"},
                           target_type="bvn_verification", target_id=req.transaction_ref)

    return {
        "transactionRef": req.transaction_ref,
        "bvn": record.bvn,
        "status": record.status,
        "nameMatch": name_match,
        "bankAccountLinked": linked,
        "bankName": req.bank_name,
        "accountNumber": mask(req.account_number),
    }


# -------------------------
# webhooks & reconciliation
# -------------------------
def _webhook_event_id(payload: dict) -> tuple[str, Optional[str], str]:
    data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
    tx_ref = data.get("tx_ref") or data.get("txRef") or payload.get("txRef")
    event_type = str(payload.get("event") or payload.get("event.type") or "charge.completed")
    event_id = f"{data.get('id') or tx_ref}:{event_type}:{data.get('status') or ''}"
    return event_id[:128], tx_ref, event_type[:64]


def process_webhook_event(payload: Dict[str, Any]) -> dict:
    """Apply a signature-verified gateway webhook.

    The event body is only used to find the payment; the status written
    comes from `verify_payment`. Redeliveries of a processed event are
    acknowledged without another gateway call.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")
    event_id, tx_ref, event_type = _webhook_event_id(payload)
    if not tx_ref:
        raise ValidationError("Webhook payload has no tx_ref")

    seen = WebhookEvent.query.filter_by(event_id=event_id).first()
    if seen is not None and seen.status == "processed":
        return {"transactionId": tx_ref, "duplicate": True}

    try:
        result = verify_payment(tx_ref)
    except Exception as e:
        db.session.rollback()
        _record_webhook(seen, event_id, event_type, tx_ref, status="failed", error=str(e))
        store.record_audit(None, "WEBHOOK_FAILED", None, {"eventId": event_id, "error": str(e)},
                           target_type="payment", target_id=tx_ref)
        raise

    _record_webhook(seen, event_id, event_type, tx_ref, status="processed")
    if result.changed:
        store.record_audit(None, "WEBHOOK_UPDATE", None, {"eventId": event_id, "status": result.status},
                           target_type="payment", target_id=tx_ref)
    return {"transactionId": tx_ref, "duplicate": False, "status": result.status}


def _record_webhook(row: Optional[WebhookEvent], event_id: str, event_type: str, tx_ref: str, *,
                    status: str, error: Optional[str] = None) -> None:
    try:
        if row is None:
            row = WebhookEvent(provider="flutterwave", event_id=event_id, event_type=event_type, reference=tx_ref)
            db.session.add(row)
        row.status = status
        row.error = (error or "")[:255] or None
        db.session.commit()
    except Exception:
        # A concurrent delivery registered the same event first.
        db.session.rollback()
        logger.info("webhook event %s already registered", event_id)
