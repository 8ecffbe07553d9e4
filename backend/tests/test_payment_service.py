from decimal import Decimal

import pytest

from app.errors import (
    GatewayError,
    GatewayUnavailableError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.extensions import db
from app.models import AdminSettings, AuditLog, FraudAlert, Notification, Payment, PaymentConfig, PaymentRefund
from app.payments import service, store
from app.payments.constants import TransactionStatus
from app.payments.gateway import GatewayResult
from app.payments.schemas import PaymentRequest

CARD = {"cardno": "5531886652142950", "cvv": "564", "expirymonth": "09", "expiryyear": "32", "pin": "3310"}


def card_request(**kw):
    data = {"amount": 5000, "paymentMethod": "CARD", "productType": "product", "cardDetails": dict(CARD)}
    data.update(kw)
    return PaymentRequest.model_validate(data)


def method_request(method, **kw):
    data = {"amount": 2500, "paymentMethod": method, "serviceType": "gas"}
    data.update(kw)
    return PaymentRequest.model_validate(data)


def reload(payment):
    return db.session.get(Payment, payment.id)


# -------------------------
# initiation
# -------------------------
def test_card_payment_scenario_end_to_end(ctx, gateway, principal):
    payment, created = service.initiate_payment(principal, card_request())
    assert created
    assert payment.status == "PENDING"
    assert payment.amount == Decimal("5000.00")
    assert payment.gateway_reference == f"FLW-{payment.transaction_ref}"
    assert payment.gateway_auth_mode == "otp"
    assert gateway.count("charge_card") == 1

    gateway.complete(payment.transaction_ref, "5000")
    first = service.verify_payment(payment.transaction_ref)
    assert first.status == "COMPLETED"
    assert first.amount == Decimal("5000.00")
    assert first.changed

    second = service.verify_payment(payment.transaction_ref)
    assert second.status == "COMPLETED"
    assert second.amount == Decimal("5000.00")
    assert not second.changed
    # terminal payments are answered from the store
    assert gateway.count("verify") == 1


def test_card_data_is_never_persisted(ctx, principal):
    payment, _ = service.initiate_payment(principal, card_request())
    assert CARD["cardno"] not in (payment.payment_details or "")
    details = payment.to_dict()["paymentDetails"]
    assert "cardDetails" not in details and "cvv" not in details


def test_generated_references(ctx, principal):
    p1, _ = service.initiate_payment(principal, card_request())
    p2, _ = service.initiate_payment(principal, method_request(
        "TRANSFER", serviceType="electricity", meterNumber="45700123456",
        destinationBankCode="044", destinationAccountNumber="0690000031",
    ))
    assert p1.transaction_ref.startswith("TRX-")
    assert p2.transaction_ref.startswith("BILL-")


def test_repeated_transaction_ref_returns_existing_payment(ctx, gateway, principal):
    p1, created1 = service.initiate_payment(principal, card_request(transactionRef="CLIENT-REF-1"))
    p2, created2 = service.initiate_payment(principal, card_request(transactionRef="CLIENT-REF-1"))
    assert created1 and not created2
    assert p1.id == p2.id
    assert gateway.count("charge_card") == 1
    assert Payment.query.filter_by(transaction_ref="CLIENT-REF-1").count() == 1


def test_transaction_ref_of_another_user_is_rejected(ctx, gateway, principal, other_principal):
    service.initiate_payment(principal, card_request(transactionRef="CLIENT-REF-2"))
    with pytest.raises(StateConflictError):
        service.initiate_payment(other_principal, card_request(transactionRef="CLIENT-REF-2"))
    assert gateway.count("charge_card") == 1


def test_definitive_gateway_failure_marks_payment_failed(ctx, gateway, principal):
    gateway.charge_error = GatewayError("Payment gateway declined the request")
    with pytest.raises(GatewayError):
        service.initiate_payment(principal, card_request(transactionRef="DECLINED-1"))
    p = Payment.query.filter_by(transaction_ref="DECLINED-1").one()
    assert p.status == "FAILED"
    assert p.details_dict()["failureReason"] == "Payment gateway declined the request"
    assert AuditLog.query.filter_by(action="PAYMENT_FAILED", target_id="DECLINED-1").count() == 1


def test_unreachable_gateway_leaves_payment_pending(ctx, gateway, principal):
    gateway.charge_error = GatewayUnavailableError()
    with pytest.raises(GatewayUnavailableError) as exc:
        service.initiate_payment(principal, card_request(transactionRef="TIMEOUT-1"))
    assert exc.value.retryable
    assert exc.value.transaction_ref == "TIMEOUT-1"
    assert Payment.query.filter_by(transaction_ref="TIMEOUT-1").one().status == "PENDING"


def test_transfer_and_virtual_account_store_instructions(ctx, gateway, principal):
    transfer, _ = service.initiate_payment(principal, method_request("TRANSFER"))
    va, _ = service.initiate_payment(principal, method_request("VIRTUAL_ACCOUNT"))
    assert transfer.details_dict()["bankTransfer"]["accountNumber"] == "0123456789"
    assert va.details_dict()["virtualAccount"]["bankName"] == "Wema Bank"
    assert gateway.count("charge_bank_transfer") == 1
    assert gateway.count("create_virtual_account") == 1


def test_pay_on_delivery_skips_the_gateway(ctx, gateway, principal):
    payment, _ = service.initiate_payment(principal, method_request("PAY_ON_DELIVERY"))
    assert payment.status == "PENDING"
    assert payment.gateway is None
    result = service.verify_payment(payment.transaction_ref)
    assert result.status == "PENDING"
    assert gateway.calls == []


def test_voucher_code_is_recorded_without_discount(ctx, gateway, principal):
    payment, _ = service.initiate_payment(principal, method_request("PAY_ON_DELIVERY", voucherCode="SAVE10"))
    assert payment.voucher_code == "SAVE10"
    assert payment.details_dict()["voucherCode"] == "SAVE10"
    assert payment.to_dict()["voucherCode"] == "SAVE10"
    assert payment.amount == Decimal("2500.00")


def test_electricity_routes_to_bill_payment(ctx, principal):
    payment, _ = service.initiate_payment(principal, method_request(
        "TRANSFER", serviceType="electricity", meterNumber="45700123456",
        destinationBankCode="044", destinationAccountNumber="0690000031",
    ))
    bill = payment.details_dict()["billDetails"]
    assert bill["meterNumber"] == "45700123456"
    assert bill["destinationAccountNumber"] == "****0031"
    assert AuditLog.query.filter_by(action="BILL_PAYMENT_INITIATED", target_id=payment.transaction_ref).count() == 1


@pytest.mark.parametrize("method", ["PAY_ON_DELIVERY", "WALLET"])
def test_bill_payment_rejects_offline_methods(ctx, principal, method):
    with pytest.raises(ValidationError, match="not supported for bill payments"):
        service.initiate_payment(principal, method_request(
            method, serviceType="electricity", meterNumber="45700123456",
            destinationBankCode="044", destinationAccountNumber="0690000031",
        ))


def test_wallet_cannot_fund_wallet_top_up(ctx, principal):
    req = PaymentRequest.model_validate({"amount": 1000, "paymentMethod": "WALLET", "isWalletTopUp": True})
    with pytest.raises(ValidationError, match="wallet top-ups"):
        service.initiate_payment(principal, req)


@pytest.mark.parametrize("method", ["WALLET", "MONNIFY"])
def test_disabled_methods_are_rejected(ctx, principal, method):
    with pytest.raises(ValidationError, match="currently disabled"):
        service.initiate_payment(principal, method_request(method))


def test_payment_config_overrides_defaults(ctx, gateway, principal):
    db.session.add(PaymentConfig(payment_method="CARD", is_enabled=False, gateway="flutterwave", updated_by="ops"))
    db.session.commit()
    with pytest.raises(ValidationError, match="CARD is currently disabled"):
        service.initiate_payment(principal, card_request())
    assert gateway.calls == []


def test_fees_from_admin_settings(ctx, principal):
    db.session.add(AdminSettings(default_service_charge=Decimal("100"), default_topup_charge=Decimal("50"),
                                 default_vat_rate=Decimal("0.075")))
    db.session.commit()

    purchase, _ = service.initiate_payment(principal, card_request(amount=1000))
    assert purchase.amount == Decimal("1175.00")
    assert purchase.requested_amount == Decimal("1000.00")
    fees = purchase.details_dict()
    assert fees["serviceFee"] == "100.00" and fees["vat"] == "75.00" and fees["topupCharge"] == "0.00"

    top_up, _ = service.initiate_payment(principal, PaymentRequest.model_validate({
        "amount": 1000, "paymentMethod": "TRANSFER", "isWalletTopUp": True,
    }))
    assert top_up.amount == Decimal("1125.00")


# -------------------------
# verification & state machine
# -------------------------
def test_terminal_state_is_immutable(ctx, gateway, principal):
    payment, _ = service.initiate_payment(principal, card_request())
    gateway.complete(payment.transaction_ref, "5000")
    service.verify_payment(payment.transaction_ref)

    gateway.complete(payment.transaction_ref, "5000", status=TransactionStatus.FAILED)
    result = service.verify_payment(payment.transaction_ref)
    assert result.status == "COMPLETED"
    assert reload(payment).status == "COMPLETED"


def test_conditional_write_lets_only_first_writer_win(ctx, make_payment):
    make_payment("RACE-1")
    payment = Payment.query.filter_by(transaction_ref="RACE-1").one()
    assert store.apply_status(payment, TransactionStatus.COMPLETED)
    assert not store.apply_status(payment, TransactionStatus.FAILED)
    assert not store.apply_status(payment, TransactionStatus.CANCELLED)
    assert payment.status == "COMPLETED"
    assert payment.finalized_at is not None


def test_gateway_pending_keeps_payment_pending(ctx, gateway, principal):
    payment, _ = service.initiate_payment(principal, method_request("TRANSFER"))
    result = service.verify_payment(payment.transaction_ref)
    assert result.status == "PENDING"
    assert not result.changed


def test_gateway_failure_result_finalizes_as_failed(ctx, gateway, principal):
    payment, _ = service.initiate_payment(principal, method_request("TRANSFER"))
    gateway.complete(payment.transaction_ref, "2500", status=TransactionStatus.FAILED)
    assert service.verify_payment(payment.transaction_ref).status == "FAILED"


def test_verify_surfaces_unreachable_gateway_as_retryable(ctx, gateway, principal):
    payment, _ = service.initiate_payment(principal, card_request())
    gateway.verify_errors[payment.transaction_ref] = GatewayUnavailableError()
    with pytest.raises(GatewayUnavailableError):
        service.verify_payment(payment.transaction_ref)
    assert reload(payment).status == "PENDING"


def test_amount_mismatch_raises_fraud_alert(ctx, gateway, principal):
    payment, _ = service.initiate_payment(principal, card_request())
    gateway.complete(payment.transaction_ref, "4000")
    result = service.verify_payment(payment.transaction_ref)
    assert result.status == "PENDING"
    alert = FraudAlert.query.filter_by(entity_id=payment.transaction_ref).one()
    assert alert.alert_type == "AMOUNT_MISMATCH"


def test_repeated_verification_keeps_one_open_mismatch_alert(ctx, gateway, make_payment):
    make_payment("MISMATCH-1", amount="5000.00")
    gateway.complete("MISMATCH-1", "4000")
    for _ in range(3):
        assert service.verify_payment("MISMATCH-1").status == "PENDING"

    assert FraudAlert.query.filter_by(entity_id="MISMATCH-1").count() == 1
    assert AuditLog.query.filter_by(action="PAYMENT_AMOUNT_MISMATCH", target_id="MISMATCH-1").count() == 1

    FraudAlert.query.filter_by(entity_id="MISMATCH-1").update({"resolved": True})
    db.session.commit()
    service.verify_payment("MISMATCH-1")
    assert FraudAlert.query.filter_by(entity_id="MISMATCH-1", resolved=False).count() == 1


def test_verify_unknown_or_foreign_payment(ctx, principal, other_principal):
    with pytest.raises(NotFoundError):
        service.verify_payment("NOPE")
    payment, _ = service.initiate_payment(principal, card_request())
    with pytest.raises(NotFoundError):
        service.verify_payment(payment.transaction_ref, principal=other_principal)


def test_completion_notifies_customer_once(ctx, gateway, principal):
    payment, _ = service.initiate_payment(principal, card_request())
    gateway.complete(payment.transaction_ref, "5000")
    service.verify_payment(payment.transaction_ref)
    service.verify_payment(payment.transaction_ref)

    rows = Notification.query.filter_by(user_id=principal.user_id).all()
    assert sorted(n.channel for n in rows) == ["email", "in_app", "sms"]
    assert {(n.reference, n.event) for n in rows} == {(payment.transaction_ref, "payment.completed")}
    by_channel = {n.channel: n for n in rows}
    assert by_channel["in_app"].delivery_status == "sent"
    assert by_channel["sms"].body.startswith("Quicrefill: ")
    # no mail or SMS credentials configured in tests
    assert by_channel["email"].delivery_status == "failed"
    assert by_channel["sms"].delivery_status == "failed"


def test_refund_notification_is_keyed_by_payment_reference(ctx, gateway, principal):
    payment = _completed_card_payment(gateway, principal)
    service.process_refund(principal, payment.transaction_ref, "1000")
    refund_rows = Notification.query.filter_by(reference=payment.transaction_ref, event="refund.completed").all()
    assert sorted(n.channel for n in refund_rows) == ["email", "in_app", "sms"]
    assert all(n.subject == "Refund update" for n in refund_rows)



# -------------------------
# OTP / 3-D Secure
# -------------------------
def test_validate_card_payment_submits_otp_when_pending_otp(ctx, gateway, principal):
    payment, _ = service.initiate_payment(principal, card_request())
    gateway.complete(payment.transaction_ref, "5000")
    result = service.validate_card_payment(payment.transaction_ref, None, "tok-1", "12345", principal=principal)
    assert result.status == "COMPLETED"
    assert ("validate_charge", f"FLW-{payment.transaction_ref}", "12345") in gateway.calls
    assert reload(payment).gateway_auth_mode is None


def test_validate_card_payment_without_otp_state_is_plain_verification(ctx, gateway, principal):
    gateway.charge_auth_mode = None
    payment, _ = service.initiate_payment(principal, card_request())
    service.validate_card_payment(payment.transaction_ref, "FLW-x", "tok-1", "12345", principal=principal)
    assert gateway.count("validate_charge") == 0
    assert gateway.count("verify") == 1


def test_failed_otp_marks_payment_failed(ctx, gateway, principal):
    payment, _ = service.initiate_payment(principal, card_request())
    gateway.validate_result = GatewayResult(status=TransactionStatus.FAILED, message="Invalid OTP")
    result = service.validate_card_payment(payment.transaction_ref, None, None, "00000", principal=principal)
    assert result.status == "FAILED"


def test_authorize_looks_up_gateway_reference(ctx, gateway, principal):
    from app.payments.schemas import AuthorizationData

    payment, _ = service.initiate_payment(principal, card_request())
    auth = AuthorizationData.model_validate(CARD)
    out = service.authorize_3ds_card_payment(principal, payment.transaction_ref, None, auth)
    assert ("authorize_card", payment.transaction_ref, f"FLW-{payment.transaction_ref}") in gateway.calls
    assert out["authMode"] == "redirect"
    assert out["redirectUrl"] == "https://checkout.example.test/3ds"
    assert out["status"] == "PENDING"


def test_authorize_rejects_finalized_payment(ctx, principal, make_payment):
    from app.payments.schemas import AuthorizationData

    make_payment("AUTH-DONE", status="COMPLETED")
    with pytest.raises(StateConflictError):
        service.authorize_3ds_card_payment(principal, "AUTH-DONE", "FLW-1", AuthorizationData.model_validate(CARD))


# -------------------------
# cancellation
# -------------------------
def test_cancel_pending_payment(ctx, principal, make_payment):
    make_payment("CANCEL-1")
    payment = service.cancel_payment(principal, "CANCEL-1")
    assert payment.status == "CANCELLED"
    assert AuditLog.query.filter_by(action="PAYMENT_CANCELLED", target_id="CANCEL-1").count() == 1


@pytest.mark.parametrize("status", ["COMPLETED", "FAILED", "CANCELLED"])
def test_cancel_finalized_payment_is_rejected(ctx, principal, make_payment, status):
    make_payment(f"CANCEL-{status}", status=status)
    with pytest.raises(StateConflictError) as exc:
        service.cancel_payment(principal, f"CANCEL-{status}")
    assert exc.value.current_status == status
    assert "already finalized" in exc.value.message
    assert Payment.query.filter_by(transaction_ref=f"CANCEL-{status}").one().status == status


def test_cancelled_payment_ignores_later_gateway_success(ctx, gateway, principal):
    payment, _ = service.initiate_payment(principal, card_request())
    service.cancel_payment(principal, payment.transaction_ref)
    gateway.complete(payment.transaction_ref, "5000")
    assert service.verify_payment(payment.transaction_ref).status == "CANCELLED"


# -------------------------
# refunds
# -------------------------
def _completed_card_payment(gateway, principal, amount=5000):
    payment, _ = service.initiate_payment(principal, card_request(amount=amount))
    gateway.complete(payment.transaction_ref, amount)
    service.verify_payment(payment.transaction_ref)
    return payment


@pytest.mark.parametrize("status", ["PENDING", "FAILED", "CANCELLED"])
def test_refund_requires_completed_payment(ctx, principal, make_payment, status):
    make_payment(f"REFUND-{status}", status=status)
    with pytest.raises(StateConflictError):
        service.process_refund(principal, f"REFUND-{status}", "100")


def test_partial_refunds_are_capped_at_payment_amount(ctx, gateway, principal):
    payment = _completed_card_payment(gateway, principal)

    first = service.process_refund(principal, payment.transaction_ref, Decimal("2000"))
    assert first["status"] == "COMPLETED"
    assert first["refundableBalance"] == 3000.0
    assert ("refund", "9001", Decimal("2000.00")) in gateway.calls

    service.process_refund(principal, payment.transaction_ref, "3000")
    with pytest.raises(ValidationError, match="refundable balance"):
        service.process_refund(principal, payment.transaction_ref, "0.01")

    assert reload(payment).status == "COMPLETED"
    assert PaymentRefund.query.filter_by(payment_id=payment.id).count() == 2


def test_refund_above_amount_is_rejected_before_gateway(ctx, gateway, principal):
    payment = _completed_card_payment(gateway, principal)
    with pytest.raises(ValidationError):
        service.process_refund(principal, payment.transaction_ref, "5000.01")
    assert gateway.count("refund") == 0


def test_failed_gateway_refund_releases_the_amount(ctx, gateway, principal):
    payment = _completed_card_payment(gateway, principal)
    gateway.refund_error = GatewayError("Payment gateway declined the request")
    with pytest.raises(GatewayError):
        service.process_refund(principal, payment.transaction_ref, "5000")
    assert PaymentRefund.query.filter_by(payment_id=payment.id).one().status == "FAILED"

    gateway.refund_error = None
    out = service.process_refund(principal, payment.transaction_ref, "5000")
    assert out["refundableBalance"] == 0.0


def test_refund_of_foreign_payment_is_not_found(ctx, gateway, principal, other_principal):
    payment = _completed_card_payment(gateway, principal)
    with pytest.raises(NotFoundError):
        service.process_refund(other_principal, payment.transaction_ref, "100")


# -------------------------
# queries
# -------------------------
def test_history_pagination_and_filters(ctx, principal, other_principal, make_payment):
    for i in range(23):
        make_payment(f"HIST-{i:02d}", status="COMPLETED" if i % 2 else "PENDING",
                     method="CARD" if i < 20 else "TRANSFER")
    make_payment("HIST-OTHER", owner=other_principal.user_id)

    from app.payments.schemas import TransactionHistoryQuery

    page1 = service.get_transaction_history(principal.user_id, TransactionHistoryQuery.model_validate({}))
    assert (page1["page"], page1["limit"], page1["total"], page1["totalPages"]) == (1, 10, 23, 3)
    assert len(page1["transactions"]) == 10

    page3 = service.get_transaction_history(principal.user_id, TransactionHistoryQuery.model_validate({"page": 3}))
    assert len(page3["transactions"]) == 3

    completed = service.get_transaction_history(
        principal.user_id, TransactionHistoryQuery.model_validate({"status": "COMPLETED"})
    )
    assert completed["total"] == 11
    transfers = service.get_transaction_history(
        principal.user_id, TransactionHistoryQuery.model_validate({"paymentMethod": "transfer"})
    )
    assert transfers["total"] == 3

    refs = {t["transactionId"] for t in page1["transactions"]}
    assert "HIST-OTHER" not in refs


def test_history_empty(ctx, principal):
    from app.payments.schemas import TransactionHistoryQuery

    out = service.get_transaction_history(principal.user_id, TransactionHistoryQuery.model_validate({}))
    assert out == {"transactions": [], "total": 0, "page": 1, "limit": 10, "totalPages": 0}


def test_stats_success_rate(ctx, principal, make_payment):
    assert service.get_payment_stats(principal.user_id)["successRate"] == 0

    make_payment("ST-1", status="COMPLETED", amount="1000.00")
    make_payment("ST-2", status="COMPLETED", amount="500.50")
    make_payment("ST-3", status="FAILED")
    make_payment("ST-4")
    stats = service.get_payment_stats(principal.user_id)
    assert stats["total"] == 4
    assert stats["byStatus"]["COMPLETED"] == 2
    assert stats["successRate"] == 50.0
    assert stats["totalCompletedAmount"] == 1500.5


def test_method_status(ctx):
    from app.payments.constants import PaymentMethod

    card = service.check_payment_method_status(PaymentMethod.CARD)
    assert card["isEnabled"] and card["available"] and card["gateway"] == "flutterwave"

    wallet = service.check_payment_method_status(PaymentMethod.WALLET)
    assert not wallet["isEnabled"] and not wallet["available"]

    pod = service.check_payment_method_status(PaymentMethod.PAY_ON_DELIVERY)
    assert pod["available"] and pod["gateway"] is None

    db.session.add(PaymentConfig(payment_method="TRANSFER", is_enabled=False, gateway="flutterwave", updated_by="ops"))
    db.session.commit()
    transfer = service.check_payment_method_status(PaymentMethod.TRANSFER)
    assert not transfer["isEnabled"] and transfer["updatedBy"] == "ops"


# -------------------------
# BVN
# -------------------------
def _bvn_request(**kw):
    from app.payments.schemas import BvnVerificationRequest

    data = {"bvn": "12345678901", "bankName": "GTBank", "accountNumber": "0123456789", "transactionRef": "BVN-1"}
    data.update(kw)
    return BvnVerificationRequest.model_validate(data)


def test_bvn_name_match_verifies_user(ctx, gateway, principal):
    from app.models import BvnVerification, User

    out = service.verify_bvn(principal, _bvn_request())
    assert out["status"] == "COMPLETED" and out["nameMatch"]
    assert out["bvn"] == "****8901"
    assert out["accountNumber"] == "****6789"
    assert not out["bankAccountLinked"]
    assert db.session.get(User, principal.user_id).bvn_verified
    row = BvnVerification.query.filter_by(transaction_ref="BVN-1").one()
    assert "12345678901" not in (row.bvn + (row.response_details or ""))


def test_bvn_name_mismatch_fails(ctx, gateway, principal):
    from app.models import User

    gateway.bvn = {"firstName": "Chidi", "lastName": "Eze"}
    out = service.verify_bvn(principal, _bvn_request())
    assert out["status"] == "FAILED"
    assert not db.session.get(User, principal.user_id).bvn_verified
    assert AuditLog.query.filter_by(action="BVN_VERIFICATION_FAILED").count() == 1


def test_bvn_bank_account_link(ctx, gateway, principal):
    gateway.bvn = {"firstName": "ada", "lastName": "OBI", "bankName": "gtbank", "accountNumber": "0123456789"}
    assert service.verify_bvn(principal, _bvn_request())["bankAccountLinked"]


# -------------------------
# reconciliation job
# -------------------------
def test_reconciler_finalizes_stale_pending_payments(ctx, gateway, make_payment):
    from datetime import datetime, timedelta

    from app.jobs.payment_reconciler import reconcile_pending_payments

    old = datetime.utcnow() - timedelta(hours=2)
    make_payment("STALE-1", created_at=old)
    make_payment("STALE-2", created_at=old)
    make_payment("STALE-POD", method="PAY_ON_DELIVERY", created_at=old)
    make_payment("FRESH-1")
    gateway.complete("STALE-1", "5000")
    gateway.verify_errors["STALE-2"] = GatewayUnavailableError()

    out = reconcile_pending_payments(older_than_minutes=30)
    assert out == {"checked": 2, "finalized": 1, "errors": 1}
    assert Payment.query.filter_by(transaction_ref="STALE-1").one().status == "COMPLETED"
    assert Payment.query.filter_by(transaction_ref="STALE-2").one().status == "PENDING"
    assert ("verify", "FRESH-1") not in gateway.calls
