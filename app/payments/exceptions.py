"""
Payment-specific exceptions for payment operations.

This module provides a hierarchy of exceptions for the reconciliation
workflow, the mobile-money gateway and the manual verification queue.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentNotFoundError - Order/attempt/claim lookup failures (also NotFoundError)
    ├── PaymentValidationError - Bad input shape or range (also ValidationError)
    │   ├── InvalidAmountError - Non-positive amount
    │   ├── UnsupportedCurrencyError - Currency not accepted
    │   └── InvalidPhoneNumberError - Phone cannot be normalized
    └── PaymentProcessingError - Payment processing failures (also ExternalServiceError)
        └── GatewayError - Base for mobile-money gateway errors
            ├── GatewayUnavailableError - Unconfigured or unreachable (transient)
            └── GatewayRejectedError - Synchronous rejection (permanent)

    ConcurrentAttemptExistsError - Another attempt/write won (inherits ConflictError)
    AlreadyReviewedError - Manual payment no longer pending (inherits ConflictError)
    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)
    ReviewerNotAuthorizedError - Missing review capability (inherits PermissionDeniedError)

Usage:
    from payments.exceptions import GatewayError, ConcurrentAttemptExistsError

    try:
        attempt = ReconciliationService.begin_gateway_payment(order.id, phone)
    except GatewayError as e:
        if e.fallback_recommended:
            offer_manual_payment(order)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
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

    All payment-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent API error responses.
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError, NotFoundError):
    """
    Raised when a payment entity cannot be found.

    Example:
        order = Order.objects.filter(id=order_id).first()
        if not order:
            raise PaymentNotFoundError(
                f"Order {order_id} not found",
                details={"order_id": str(order_id)}
            )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"
    http_status: int = 404


class PaymentValidationError(PaymentError, ValidationError):
    """
    Raised when payment input validation fails.

    Validation always happens before any write, so a caller that sees this
    error knows nothing was persisted.
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class InvalidAmountError(PaymentValidationError):
    """Raised when an amount is zero or negative."""

    default_error_code: str = "INVALID_AMOUNT"


class UnsupportedCurrencyError(PaymentValidationError):
    """Raised when a currency is not in PAYMENT_SUPPORTED_CURRENCIES."""

    default_error_code: str = "UNSUPPORTED_CURRENCY"


class InvalidPhoneNumberError(PaymentValidationError):
    """
    Raised when a phone number cannot be normalized to 2547XXXXXXXX/2541XXXXXXXX.

    Surfaced to the customer for correction.
    """

    default_error_code: str = "INVALID_PHONE_NUMBER"


class PaymentProcessingError(PaymentError, ExternalServiceError):
    """Raised when payment processing fails."""

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"
    http_status: int = 502


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(PaymentProcessingError):
    """
    Base exception for mobile-money gateway errors.

    Attributes:
        is_retryable: Whether repeating the push payment may succeed
        fallback_recommended: Whether the caller should offer the manual
            Paybill/bank-transfer path
        gateway_code: Response code reported by the gateway, if any
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False
    fallback_recommended: bool = True

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        details.setdefault("fallback_recommended", self.fallback_recommended)
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code


class GatewayUnavailableError(GatewayError):
    """
    Gateway is unconfigured, unreachable or returned a server error.

    Transient from the caller's point of view: the push payment can be
    retried later, or the customer can pay manually right away.
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    http_status: int = 503
    is_retryable: bool = True


class GatewayRejectedError(GatewayError):
    """
    Gateway synchronously rejected the request.

    Covers invalid merchant configuration, missing permissions and
    non-zero response codes. Repeating the same request will not help.
    """

    default_error_code: str = "GATEWAY_REJECTED"


# =============================================================================
# Concurrency & Workflow Exceptions
# =============================================================================


class ConcurrentAttemptExistsError(ConflictError):
    """
    Raised when another payment attempt or write already holds the order.

    The caller should wait and poll the existing attempt rather than retry
    blindly.
    """

    default_error_code: str = "CONCURRENT_ATTEMPT_EXISTS"


class AlreadyReviewedError(ConflictError):
    """
    Raised when a manual payment is no longer pending.

    A benign idempotency collision: two reviewers acted on the same claim.
    """

    default_error_code: str = "ALREADY_REVIEWED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a workflow transition is not allowed from the current state.

    Example:
        raise InvalidStateTransitionError(
            "Cannot submit a manual payment for a settled order",
            details={"current_state": "settled", "action": "submit_manual_payment"}
        )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class ReviewerNotAuthorizedError(PermissionDeniedError):
    """Raised when the caller's capability does not grant payment review."""

    default_error_code: str = "REVIEWER_NOT_AUTHORIZED"
