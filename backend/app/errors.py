"""Error taxonomy for the payment API.

Every error raised by the service layer carries the HTTP status it maps to,
so the route handlers only need to decide *where* an error is surfaced
(JSON envelope, 200-with-error for webhooks, or a redirect).
"""

from __future__ import annotations

from typing import Any, Optional

from flask import current_app, jsonify
from pydantic import ValidationError as SchemaValidationError


class PaymentError(Exception):
    status_code = 500
    default_message = "Payment processing failed"

    def __init__(self, message: Optional[str] = None, *, details: Any = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(PaymentError):
    status_code = 400
    default_message = "Validation failed"


class AuthenticationError(PaymentError):
    status_code = 401
    default_message = "Unauthorized - No user authenticated"


class SignatureError(PaymentError):
    # There is no principal behind a webhook, so a bad signature is a bad
    # request rather than a 401.
    status_code = 400
    default_message = "Invalid webhook signature"


class NotFoundError(PaymentError):
    status_code = 404
    default_message = "Payment not found"


class StateConflictError(PaymentError):
    status_code = 400
    default_message = "Operation not allowed in the current payment state"

    def __init__(self, message: Optional[str] = None, *, current_status: Optional[str] = None, details: Any = None):
        super().__init__(message, details=details)
        self.current_status = current_status

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.current_status:
            body["currentStatus"] = self.current_status
        return body


class IdempotencyConflictError(PaymentError):
    status_code = 409
    default_message = "Idempotency key reuse with different payload"


class GatewayError(PaymentError):
    """The gateway answered, but not with something we can use."""

    status_code = 502
    default_message = "Payment gateway error"
    retryable = False

    def __init__(self, message: Optional[str] = None, *, gateway_status: Optional[int] = None, details: Any = None):
        super().__init__(message, details=details)
        self.gateway_status = gateway_status
        # Set once a payment row exists for the failed call.
        self.transaction_ref: Optional[str] = None

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.transaction_ref:
            body["transactionRef"] = self.transaction_ref
        body["retryable"] = self.retryable
        return body


class GatewayUnavailableError(GatewayError):
    """Timeout or connection failure: the outcome is unknown, retry later."""

    status_code = 503
    default_message = "Payment gateway unavailable, please retry"
    retryable = True


def schema_error_details(exc: SchemaValidationError) -> list:
    details = []
    for err in exc.errors():
        details.append({
            "path": [str(p) for p in err.get("loc", ())],
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        })
    return details


def register_error_handlers(app) -> None:
    @app.errorhandler(PaymentError)
    def _payment_error(e: PaymentError):
        if e.status_code >= 500:
            current_app.logger.error("payment error: %s", e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SchemaValidationError)
    def _schema_error(e: SchemaValidationError):
        return jsonify({"error": "Validation failed", "details": schema_error_details(e)}), 400

    @app.errorhandler(404)
    def _not_found(_e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def _method_not_allowed(_e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def _internal(_e):
        return jsonify({"error": "Internal server error"}), 500
