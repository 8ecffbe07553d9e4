"""Gateway-facing entry points: the signed webhook and the browser redirects.

None of these routes take a bearer token. The webhook is authenticated by
its HMAC signature; the redirects only ever read state through
`verify_payment` and always answer with a 302 to the frontend.
"""

from __future__ import annotations

import json
from typing import Optional
from urllib.parse import unquote, urlencode

from flask import Blueprint, current_app, jsonify, redirect, request

from app.errors import PaymentError, SignatureError, ValidationError
from app.extensions import db
from app.payments import service, store
from app.payments.constants import PaymentMethod, TransactionStatus
from app.payments.gateway import SANDBOX_CALLBACK_OTP, SANDBOX_CALLBACK_TOKEN_ID, callback_requires_otp
from app.payments.signature import SIGNATURE_HEADER, verify_webhook_signature

webhooks_bp = Blueprint("webhooks_bp", __name__, url_prefix="/api/payments")


def _frontend(path: str, **params) -> str:
    base = current_app.config.get("FRONTEND_URL", "").rstrip("/")
    query = urlencode({k: v for k, v in params.items() if v is not None})
    return f"{base}{path}?{query}" if query else f"{base}{path}"


def _public_message(e: Exception) -> str:
    # Never leak internals into a URL.
    return e.message if isinstance(e, PaymentError) else "Payment processing failed"


def _callback_target(result: service.VerificationResult) -> str:
    ref = result.transaction_ref
    if result.status == TransactionStatus.COMPLETED.value:
        return _frontend("/payment-success", tx_ref=ref)
    if result.status == TransactionStatus.FAILED.value:
        return _frontend("/payment-failed", tx_ref=ref, status=result.status)
    if result.status == TransactionStatus.CANCELLED.value:
        return _frontend("/payment-cancelled", tx_ref=ref, status=result.status)
    if result.payment_method == PaymentMethod.TRANSFER.value:
        return _frontend("/payment-bank-transfer-pending", tx_ref=ref, status=result.status)
    if result.payment_method == PaymentMethod.VIRTUAL_ACCOUNT.value:
        return _frontend("/payment-virtual-account-pending", tx_ref=ref, status=result.status)
    return _frontend("/payment-pending", tx_ref=ref, status=result.status)


def _response_blob() -> Optional[dict]:
    raw = request.args.get("response")
    if not raw:
        return None
    try:
        blob = json.loads(unquote(raw))
    except ValueError:
        current_app.logger.warning("callback response blob is not valid JSON")
        return None
    return blob if isinstance(blob, dict) else None


@webhooks_bp.post("/webhook")
def flutterwave_webhook():
    # Signature is computed over the exact bytes received, before any parsing.
    raw = request.get_data(cache=True) or b""
    secret = current_app.config.get("FLUTTERWAVE_WEBHOOK_SECRET")
    if not verify_webhook_signature(raw, request.headers.get(SIGNATURE_HEADER), secret):
        current_app.logger.warning("webhook rejected: invalid signature from %s", request.remote_addr)
        return jsonify(SignatureError().to_dict()), 400

    try:
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise ValidationError("Webhook body is not valid JSON") from e
        outcome = service.process_webhook_event(payload)
    except Exception as e:
        # The gateway retries anything but 2xx; a retry will not fix these.
        db.session.rollback()
        current_app.logger.error("webhook processing failed: %s", e, exc_info=not isinstance(e, PaymentError))
        return jsonify({"message": "Webhook processed with error", "error": _public_message(e)}), 200

    current_app.logger.info("webhook processed %s", outcome)
    return jsonify({"message": "Webhook processed successfully", **outcome}), 200


@webhooks_bp.get("/callback")
def payment_callback():
    blob = _response_blob()
    tx_ref = request.args.get("tx_ref") or request.args.get("transaction_id")
    if not tx_ref and blob:
        tx_ref = blob.get("txRef") or blob.get("tx_ref")

    try:
        if not tx_ref:
            raise ValidationError("Missing transaction reference")
        if callback_requires_otp(blob):
            current_app.logger.info("callback %s: pending OTP challenge, validating", tx_ref)
            result = service.validate_card_payment(
                tx_ref, blob.get("flwRef"), SANDBOX_CALLBACK_TOKEN_ID, SANDBOX_CALLBACK_OTP, otp_reported=True
            )
        else:
            result = service.verify_payment(tx_ref)
        return redirect(_callback_target(result), code=302)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error("payment callback failed for %s: %s", tx_ref or "unknown", e)
        return redirect(_frontend("/payment-failed", tx_ref=tx_ref or "unknown", error=_public_message(e)), code=302)


@webhooks_bp.get("/callback/cod")
def pay_on_delivery_callback():
    tx_ref = request.args.get("tx_ref") or request.args.get("transaction_id")
    if not tx_ref:
        return jsonify({"error": "Missing transaction ID or tx_ref"}), 400

    payment = store.find_by_ref(tx_ref)
    if payment is None or payment.payment_method != PaymentMethod.PAY_ON_DELIVERY.value:
        current_app.logger.warning("POD callback rejected for %s", tx_ref)
        return jsonify({"error": "Invalid payment method for POD callback"}), 400

    current_app.logger.info("POD callback %s reported status=%s", tx_ref, request.args.get("status"))
    try:
        result = service.verify_payment(tx_ref)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error("POD callback failed for %s: %s", tx_ref, e)
        return redirect(_frontend("/payment/error", tx_ref=tx_ref, error=_public_message(e)), code=302)

    if result.status == TransactionStatus.COMPLETED.value:
        return redirect(_frontend("/payment/pod/success", tx_ref=tx_ref), code=302)
    if result.status in (TransactionStatus.FAILED.value, TransactionStatus.CANCELLED.value):
        return redirect(_frontend("/payment/pod/failed", tx_ref=tx_ref, status=result.status), code=302)
    return redirect(_frontend("/payment/pod/pending", tx_ref=tx_ref, status=result.status), code=302)


@webhooks_bp.get("/callback/error")
def payment_error_callback():
    tx_ref = request.args.get("tx_ref") or request.args.get("transaction_id")
    error = unquote(request.args.get("error") or "") or "Payment failed"

    if tx_ref:
        try:
            service.verify_payment(tx_ref)
        except Exception as e:
            db.session.rollback()
            current_app.logger.warning("error callback verification for %s failed: %s", tx_ref, e)

    return redirect(_frontend("/payment-failed", tx_ref=tx_ref or "unknown", error=error), code=302)
