from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.auth import auth_required, current_principal
from app.errors import GatewayError
from app.payments import service
from app.payments.constants import PaymentMethod
from app.payments.schemas import (
    AuthorizePaymentRequest,
    BvnVerificationRequest,
    CancelPaymentRequest,
    PaymentMethodStatusQuery,
    PaymentRequest,
    RefundRequest,
    TransactionHistoryQuery,
    VerifyPaymentRequest,
)
from app.utils.idempotency import lookup_response, release_key, store_response

payments_bp = Blueprint("payments_bp", __name__, url_prefix="/api/payments")


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@payments_bp.post("/initiate")
@auth_required
def initiate_payment():
    principal = current_principal()
    req = PaymentRequest.model_validate(_body())

    idem = lookup_response(principal.user_id, "/api/payments/initiate", req.fingerprint())
    if idem and idem[0] == "hit":
        return jsonify(idem[1]), idem[2]
    idem_row = idem[1] if idem else None

    try:
        payment, created = service.initiate_payment(principal, req)
    except GatewayError as e:
        if idem_row is not None:
            if e.transaction_ref:
                # A payment row exists and the charge may have gone through:
                # the key stays bound to it so a retry cannot charge again.
                store_response(idem_row, e.to_dict(), e.status_code)
            else:
                release_key(idem_row)
        raise
    except Exception:
        if idem_row is not None:
            release_key(idem_row)
        raise

    current_app.logger.info(
        "payment initiated ref=%s user=%s method=%s created=%s",
        payment.transaction_ref, principal.user_id, payment.payment_method, created,
    )
    if created:
        resp, status = {"message": "Payment initiated successfully", "payment": payment.to_dict()}, 201
    else:
        resp, status = {"message": "Payment already initiated", "payment": payment.to_dict()}, 200
    if idem_row is not None:
        store_response(idem_row, resp, status)
    return jsonify(resp), status


@payments_bp.post("/verify")
@auth_required
def verify_payment():
    principal = current_principal()
    req = VerifyPaymentRequest.model_validate(_body())

    if req.otp and req.flw_ref and req.token_id:
        result = service.validate_card_payment(
            req.transaction_ref, req.flw_ref, req.token_id, req.otp, principal=principal
        )
        return jsonify({"message": "Card payment validation result", "result": result.to_dict()}), 200

    result = service.verify_payment(req.transaction_ref, principal=principal)
    return jsonify({"message": "Payment verification result", "result": result.to_dict()}), 200


@payments_bp.post("/authorize")
@auth_required
def authorize_payment():
    principal = current_principal()
    req = AuthorizePaymentRequest.model_validate(_body())
    result = service.authorize_3ds_card_payment(principal, req.transaction_ref, req.flw_ref, req.authorization_data)
    return jsonify({"message": "Payment authorization processed successfully", "result": result}), 200


@payments_bp.post("/refund")
@auth_required
def refund_payment():
    principal = current_principal()
    req = RefundRequest.model_validate(_body())
    refund = service.process_refund(principal, req.transaction_ref, req.amount, req.payment_reference)
    current_app.logger.info("refund ref=%s user=%s amount=%s status=%s",
                            req.transaction_ref, principal.user_id, req.amount, refund["status"])
    return jsonify({"message": "Refund processed successfully", "refund": refund}), 200


@payments_bp.get("/transaction-history")
@auth_required
def transaction_history():
    principal = current_principal()
    query = TransactionHistoryQuery.model_validate(request.args.to_dict())
    history = service.get_transaction_history(principal.user_id, query)
    return jsonify({"message": "Transaction history retrieved successfully", **history}), 200


@payments_bp.post("/cancel")
@auth_required
def cancel_payment():
    principal = current_principal()
    req = CancelPaymentRequest.model_validate(_body())
    payment = service.cancel_payment(principal, req.transaction_ref)
    return jsonify({"message": "Payment cancelled successfully", "payment": payment.to_dict()}), 200


@payments_bp.get("/method-status")
@auth_required
def method_status():
    query = PaymentMethodStatusQuery.model_validate(request.args.to_dict())
    status = service.check_payment_method_status(PaymentMethod(query.payment_method))
    return jsonify({"message": "Payment method status retrieved successfully", "status": status}), 200


@payments_bp.post("/verify-bvn")
@auth_required
def verify_bvn():
    principal = current_principal()
    req = BvnVerificationRequest.model_validate(_body())
    result = service.verify_bvn(principal, req)
    return jsonify({"message": "BVN verification completed", "result": result}), 200


@payments_bp.get("/stats")
@auth_required
def payment_stats():
    principal = current_principal()
    return jsonify({"message": "Payment statistics retrieved successfully", "stats": service.get_payment_stats(principal.user_id)}), 200
