"""
Payment-specific exceptions.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentValidationError - Malformed request/callback fields (400)
    ├── SignatureError - Inbound callback failed authentication (403)
    ├── TransactionNotFoundError - Callback for an unknown transaction/session (404)
    ├── AlreadyProcessedError - Idempotency short-circuit, treated as success
    └── GatewayError - Outbound provider call failed (provider code preserved)
        └── GatewayAuthError - Token could not be obtained or was rejected twice

    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Usage:
    from payments.exceptions import GatewayError, SignatureError

    # Provider returned {"success": false, "error": {"code": "...", ...}}
    raise GatewayError(
        "Invoice creation rejected",
        code="ERROR_FIELDS",
        details={"field": "amount"},
        http_status=400,
        raw_response=response_body,
    )

    # Callback digest mismatch
    raise SignatureError(
        "Callback signature mismatch",
        details={"gateway": "card_checkout", "invoice_id": invoice_id},
    )

Note:
    GatewayError.raw_response is for logs only. It is never part of
    to_dict(), so the provider's payload does not leak to API callers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    Example:
        try:
            PaymentService().initiate_payment(user, plan="pro", duration_months=1)
        except PaymentError as e:
            logger.error(f"Payment operation failed: {e}")
            return Response(e.to_dict(), status=e.http_status)
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentValidationError(PaymentError, ValidationError):
    """
    Raised when a payment request or inbound callback is malformed.

    Use for:
    - Missing invoice_id / status / amount on a callback
    - Provider status values outside the known mapping table
    - Unknown plan or billing tier on a payment request

    No side effect is performed when this is raised.
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"
    http_status: int = 400


class SignatureError(PaymentError):
    """
    Raised when an inbound callback fails signature verification.

    Always logged on the ``payments.security`` logger. The transaction row
    is never read for update once this is raised.
    """

    default_error_code: str = "SIGNATURE_INVALID"
    http_status: int = 403


class TransactionNotFoundError(PaymentError, NotFoundError):
    """
    Raised when a callback references a Transaction or CardBindingSession
    we do not have.

    Webhook views answer it with 200 or 404 depending on the gateway's
    ACK_UNKNOWN_INVOICES setting. No row is touched.
    """

    default_error_code: str = "TRANSACTION_NOT_FOUND"
    http_status: int = 404


class AlreadyProcessedError(PaymentError):
    """
    Raised when a transition loses the race for its row.

    This is an idempotency short-circuit: TransactionProcessor converts it
    into the ``already_processed`` outcome, which callers treat as success.
    """

    default_error_code: str = "ALREADY_PROCESSED"
    http_status: int = 200


class GatewayError(PaymentError, ExternalServiceError):
    """
    Raised when an outbound gateway call fails.

    Covers transport failures (timeouts, connection errors), non-2xx HTTP
    answers and provider-level ``success: false`` envelopes. The provider's
    own error code becomes ``error_code`` so callers can branch on it.

    Attributes:
        code: Provider or transport error code (same as error_code)
        http_status: Status to surface; the provider's status when it sent one
        raw_response: Provider payload, kept for logging only
        gateway: Gateway name the call was made against
    """

    default_error_code: str = "GATEWAY_ERROR"
    http_status: int = 502

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        http_status: int | None = None,
        raw_response: Any = None,
        gateway: str | None = None,
    ):
        super().__init__(message, error_code=code, details=details)
        if http_status is not None:
            self.http_status = http_status
        self.raw_response = raw_response
        self.gateway = gateway

    @property
    def code(self) -> str:
        return self.error_code


class GatewayAuthError(GatewayError):
    """
    Raised when a gateway bearer token cannot be obtained, or when a call
    is still rejected with 401/403 after one forced token refresh.
    """

    default_error_code: str = "GATEWAY_AUTH_FAILED"
    http_status: int = 502


# =============================================================================
# State Machine Exceptions
# =============================================================================


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    PaymentService reports it through ServiceResult.from_exception() when a
    cancel, refund or OTP request targets a row in the wrong state.

    Example:
        if txn.status != TransactionStatus.PAID:
            return ServiceResult.from_exception(
                InvalidStateTransitionError(
                    f"Cannot refund transaction in '{txn.status}' state",
                    details={"current_state": txn.status, "target_state": "refunded"},
                )
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "PaymentError",
    "PaymentValidationError",
    "SignatureError",
    "TransactionNotFoundError",
    "AlreadyProcessedError",
    "GatewayError",
    "GatewayAuthError",
    "InvalidStateTransitionError",
]
