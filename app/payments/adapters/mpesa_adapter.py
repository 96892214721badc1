"""
M-Pesa (Safaricom Daraja) adapter for push payments.

This module provides the MpesaAdapter class which encapsulates all Daraja
API interactions. All gateway calls go through this adapter to ensure
consistent error handling, timeouts and observability.

The gateway talks to us over two channels:
- Synchronous: the STK push request returns a CheckoutRequestID
  (our correlation id) or a rejection.
- Asynchronous: Safaricom posts the outcome to our callback URL. The
  callback is parsed by parse_callback() and written onto the
  PaymentAttempt row; check_status() reads it back from there.

Configuration (via settings):
- MPESA_ENVIRONMENT: "sandbox" or "production"
- MPESA_CONSUMER_KEY / MPESA_CONSUMER_SECRET: OAuth client credentials
- MPESA_PASSKEY: Lipa na M-Pesa Online passkey
- MPESA_SHORTCODE: Paybill / till number (default: 174379)
- MPESA_CALLBACK_URL: Where Safaricom posts payment results
- MPESA_API_TIMEOUT_SECONDS: HTTP timeout (default: 20)

Usage:
    from payments.adapters import MpesaAdapter, StkPushParams

    result = MpesaAdapter.initiate(
        StkPushParams(
            amount_cents=400_000,
            phone_number="0712345678",
            reference=str(order.id),
        )
    )
    result.correlation_id   # "ws_CO_..."
"""

from __future__ import annotations

import base64
import logging
import re
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

import requests
from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from payments.exceptions import (
    GatewayError,
    GatewayRejectedError,
    GatewayUnavailableError,
    InvalidPhoneNumberError,
    PaymentValidationError,
)
from payments.state_machines import PaymentAttemptStatus

if TYPE_CHECKING:
    from datetime import datetime


# =============================================================================
# Constants
# =============================================================================

BASE_URLS = {
    "sandbox": "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}

OAUTH_PATH = "/oauth/v1/generate?grant_type=client_credentials"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"

TRANSACTION_TYPE = "CustomerPayBillOnline"
ACCOUNT_REFERENCE_MAX_LENGTH = 12
TRANSACTION_DESC_MAX_LENGTH = 13

# Safaricom MSISDNs: 2547XXXXXXXX or 2541XXXXXXXX
PHONE_PATTERN = re.compile(r"^254[17]\d{8}$")

TOKEN_CACHE_KEY = "payments:mpesa:access_token"
# Refresh the cached token this many seconds before Daraja expires it.
TOKEN_EXPIRY_MARGIN_SECONDS = 60


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class StkPushParams:
    """
    Parameters for an STK push request.

    Attributes:
        amount_cents: Amount in smallest currency unit
        phone_number: Customer phone, raw or already normalized
        reference: Purpose reference (order id); truncated to 12 chars
        description: Short description shown on the phone; truncated to 13 chars
    """

    amount_cents: int
    phone_number: str
    reference: str
    description: str = "Payment"

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.reference:
            raise ValueError("reference is required")


@dataclass
class StkPushResult:
    """
    Synchronous result of an accepted STK push.

    Attributes:
        correlation_id: CheckoutRequestID used to match the callback
        merchant_request_id: MerchantRequestID
        customer_message: Message to show the customer
        phone_number: Normalized phone the push was sent to
    """

    correlation_id: str
    merchant_request_id: str
    customer_message: str
    phone_number: str


@dataclass
class GatewayCallback:
    """
    Normalized STK callback payload.

    Attributes:
        correlation_id: CheckoutRequestID
        merchant_request_id: MerchantRequestID
        result_code: 0 on success, anything else is a failure
        result_description: Gateway's human-readable outcome
        receipt_number: M-Pesa receipt (success only)
        amount_cents: Amount paid (success only)
        phone_number: Paying phone (success only)
    """

    correlation_id: str
    merchant_request_id: str
    result_code: int
    result_description: str
    receipt_number: str = ""
    amount_cents: int | None = None
    phone_number: str = ""

    @property
    def succeeded(self) -> bool:
        return self.result_code == 0


# =============================================================================
# Adapter
# =============================================================================


class MpesaAdapter:
    """
    Adapter for Safaricom Daraja push payments.

    All methods are class or static methods; the only shared state is the
    OAuth token kept in Django's cache.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @staticmethod
    def is_configured() -> bool:
        """Credentials and passkey are all present."""
        return all(
            [
                getattr(settings, "MPESA_CONSUMER_KEY", ""),
                getattr(settings, "MPESA_CONSUMER_SECRET", ""),
                getattr(settings, "MPESA_PASSKEY", ""),
            ]
        )

    @staticmethod
    def base_url() -> str:
        environment = getattr(settings, "MPESA_ENVIRONMENT", "sandbox")
        return BASE_URLS.get(environment, BASE_URLS["sandbox"])

    @staticmethod
    def _timeout() -> int:
        return getattr(settings, "MPESA_API_TIMEOUT_SECONDS", 20)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def normalize_phone_number(raw: str) -> str:
        """
        Normalize a Kenyan phone number to 2547XXXXXXXX / 2541XXXXXXXX.

        Accepts local ("0712345678"), international ("+254712345678",
        "254712345678") and bare ("712345678") forms with any separators.

        Raises:
            InvalidPhoneNumberError: If the result is not a valid MSISDN
        """
        digits = re.sub(r"\D", "", raw or "")
        if digits.startswith("0"):
            digits = "254" + digits[1:]
        elif not digits.startswith("254"):
            digits = "254" + digits

        if not PHONE_PATTERN.match(digits):
            raise InvalidPhoneNumberError(
                "Enter a valid Safaricom number, e.g. 0712345678",
                details={"phone_number": raw},
            )
        return digits

    @staticmethod
    def amount_in_shillings(amount_cents: int) -> int:
        """Daraja takes whole shillings; round half-up, never below 1."""
        shillings = (Decimal(amount_cents) / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return max(int(shillings), 1)

    @staticmethod
    def timestamp(now: datetime | None = None) -> str:
        """Daraja request timestamp (YYYYMMDDHHMMSS)."""
        return (now or timezone.now()).strftime("%Y%m%d%H%M%S")

    @staticmethod
    def password(timestamp: str) -> str:
        """base64(shortcode + passkey + timestamp)."""
        raw = f"{settings.MPESA_SHORTCODE}{settings.MPESA_PASSKEY}{timestamp}"
        return base64.b64encode(raw.encode()).decode()

    # =========================================================================
    # Core Operations
    # =========================================================================

    @classmethod
    def get_access_token(cls) -> str:
        """
        Fetch (or reuse) an OAuth access token.

        Raises:
            GatewayUnavailableError: Network failure or server error
            GatewayRejectedError: Credentials rejected
        """
        token = cache.get(TOKEN_CACHE_KEY)
        if token:
            return token

        logger = cls.get_logger()
        log_context = {"operation": "oauth_token"}
        start_time = time.time()

        try:
            response = requests.get(
                cls.base_url() + OAUTH_PATH,
                auth=(settings.MPESA_CONSUMER_KEY, settings.MPESA_CONSUMER_SECRET),
                timeout=cls._timeout(),
            )
        except requests.RequestException as e:
            cls._handle_request_error(e, log_context, (time.time() - start_time) * 1000)
            raise  # Never reached, but satisfies type checker

        duration_ms = (time.time() - start_time) * 1000
        if response.status_code >= 500:
            logger.error(
                "M-Pesa OAuth server error",
                extra={**log_context, "status_code": response.status_code, "duration_ms": duration_ms},
            )
            raise GatewayUnavailableError(
                "M-Pesa is temporarily unavailable. Please retry or pay manually.",
                details={"status_code": response.status_code},
            )

        data = cls._json(response)
        token = data.get("access_token")
        if response.status_code >= 400 or not token:
            logger.critical(
                "M-Pesa rejected merchant credentials - check consumer key/secret",
                extra={**log_context, "status_code": response.status_code, "duration_ms": duration_ms},
            )
            raise GatewayRejectedError(
                "M-Pesa rejected the merchant credentials",
                error_code="GATEWAY_AUTH_FAILED",
                gateway_code=str(data.get("errorCode", "")) or None,
            )

        expires_in = int(data.get("expires_in", 3599))
        cache.set(TOKEN_CACHE_KEY, token, timeout=max(expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 1))
        logger.debug("M-Pesa OAuth token refreshed", extra={**log_context, "duration_ms": duration_ms})
        return token

    @classmethod
    def initiate(cls, params: StkPushParams, trace_id: str | None = None) -> StkPushResult:
        """
        Send an STK push to the customer's phone.

        Args:
            params: Push parameters
            trace_id: Optional trace ID for log correlation

        Returns:
            StkPushResult with the correlation id

        Raises:
            GatewayUnavailableError: Integration unconfigured, network failure, 5xx
            InvalidPhoneNumberError: Phone cannot be normalized
            GatewayRejectedError: Any synchronous rejection
        """
        logger = cls.get_logger()

        if not cls.is_configured():
            logger.warning("M-Pesa push requested but integration is not configured")
            raise GatewayUnavailableError(
                "M-Pesa payments are not configured. Please pay manually.",
                error_code="GATEWAY_NOT_CONFIGURED",
            )

        phone_number = cls.normalize_phone_number(params.phone_number)
        timestamp = cls.timestamp()
        payload = {
            "BusinessShortCode": settings.MPESA_SHORTCODE,
            "Password": cls.password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": TRANSACTION_TYPE,
            "Amount": cls.amount_in_shillings(params.amount_cents),
            "PartyA": phone_number,
            "PartyB": settings.MPESA_SHORTCODE,
            "PhoneNumber": phone_number,
            "CallBackURL": settings.MPESA_CALLBACK_URL,
            "AccountReference": params.reference[:ACCOUNT_REFERENCE_MAX_LENGTH],
            "TransactionDesc": (params.description or "Payment")[:TRANSACTION_DESC_MAX_LENGTH],
        }

        log_context = {
            "operation": "stk_push",
            "amount_cents": params.amount_cents,
            "reference": params.reference,
            "trace_id": trace_id,
        }

        token = cls.get_access_token()

        start_time = time.time()
        logger.info("Starting M-Pesa operation", extra=log_context)

        try:
            response = requests.post(
                cls.base_url() + STK_PUSH_PATH,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=cls._timeout(),
            )
        except requests.RequestException as e:
            cls._handle_request_error(e, log_context, (time.time() - start_time) * 1000)
            raise  # Never reached, but satisfies type checker

        duration_ms = (time.time() - start_time) * 1000

        if response.status_code >= 500:
            logger.error(
                "M-Pesa API error",
                extra={**log_context, "status_code": response.status_code, "duration_ms": duration_ms},
            )
            raise GatewayUnavailableError(
                "M-Pesa is temporarily unavailable. Please retry or pay manually.",
                details={"status_code": response.status_code},
            )

        data = cls._json(response)
        response_code = str(data.get("ResponseCode", ""))
        if response.status_code >= 400 or data.get("errorMessage") or response_code != "0":
            message = (
                data.get("errorMessage")
                or data.get("ResponseDescription")
                or data.get("CustomerMessage")
                or "M-Pesa rejected the payment request"
            )
            if response.status_code == 401:
                # Token revoked early; next call fetches a new one.
                cache.delete(TOKEN_CACHE_KEY)
            logger.warning(
                "M-Pesa rejected STK push",
                extra={
                    **log_context,
                    "status_code": response.status_code,
                    "response_code": response_code or data.get("errorCode"),
                    "duration_ms": duration_ms,
                },
            )
            raise GatewayRejectedError(
                message,
                gateway_code=response_code or str(data.get("errorCode", "")) or None,
            )

        if not data.get("CheckoutRequestID"):
            logger.error(
                "M-Pesa accepted STK push without a CheckoutRequestID",
                extra={**log_context, "duration_ms": duration_ms},
            )
            raise GatewayUnavailableError(
                "M-Pesa returned an incomplete response. Please retry or pay manually.",
            )

        logger.info(
            "M-Pesa operation completed",
            extra={
                **log_context,
                "correlation_id": data.get("CheckoutRequestID"),
                "duration_ms": duration_ms,
            },
        )

        return StkPushResult(
            correlation_id=data["CheckoutRequestID"],
            merchant_request_id=data.get("MerchantRequestID", ""),
            customer_message=data.get("CustomerMessage", ""),
            phone_number=phone_number,
        )

    @classmethod
    def check_status(cls, correlation_id: str) -> str:
        """
        Read the recorded status of an attempt.

        A correlation id that has not been recorded yet reads as INITIATED:
        the asynchronous confirmation may simply not have landed.
        """
        from payments.models import PaymentAttempt

        status = (
            PaymentAttempt.objects.filter(correlation_id=correlation_id)
            .values_list("status", flat=True)
            .first()
        )
        return status or PaymentAttemptStatus.INITIATED

    @classmethod
    def parse_callback(cls, payload: dict[str, Any]) -> GatewayCallback:
        """
        Normalize an STK callback body.

        Expected shape:
            {"Body": {"stkCallback": {
                "MerchantRequestID": "...", "CheckoutRequestID": "...",
                "ResultCode": 0, "ResultDesc": "...",
                "CallbackMetadata": {"Item": [{"Name": "Amount", "Value": 1}, ...]}
            }}}

        Raises:
            PaymentValidationError: If the payload is not an STK callback
        """
        try:
            callback = payload["Body"]["stkCallback"]
            correlation_id = callback["CheckoutRequestID"]
            result_code = int(callback["ResultCode"])
        except (KeyError, TypeError, ValueError) as e:
            raise PaymentValidationError(
                "Malformed M-Pesa callback",
                error_code="INVALID_CALLBACK",
            ) from e

        items = {
            item.get("Name"): item.get("Value")
            for item in (callback.get("CallbackMetadata") or {}).get("Item", [])
            if isinstance(item, dict)
        }
        amount = items.get("Amount")

        return GatewayCallback(
            correlation_id=correlation_id,
            merchant_request_id=callback.get("MerchantRequestID", ""),
            result_code=result_code,
            result_description=callback.get("ResultDesc", ""),
            receipt_number=str(items.get("MpesaReceiptNumber") or ""),
            amount_cents=int(Decimal(str(amount)) * 100) if amount is not None else None,
            phone_number=str(items.get("PhoneNumber") or ""),
        )

    # =========================================================================
    # Error Handling
    # =========================================================================

    @staticmethod
    def _json(response) -> dict[str, Any]:
        """Decode a response body, treating non-JSON as an empty payload."""
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @classmethod
    def _handle_request_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate requests exceptions to domain exceptions.

        Raises:
            GatewayUnavailableError: Timeouts and connection failures
            GatewayError: Anything else requests raised
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, requests.Timeout):
            logger.error("M-Pesa request timed out", extra=log_context)
            raise GatewayUnavailableError(
                "M-Pesa did not respond in time. Please retry or pay manually.",
                error_code="GATEWAY_TIMEOUT",
            ) from error

        if isinstance(error, requests.ConnectionError):
            logger.error("Connection error to M-Pesa", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Could not connect to M-Pesa. Please retry or pay manually.",
            ) from error

        logger.error(
            f"Unexpected M-Pesa request error: {error}",
            extra=log_context,
            exc_info=True,
        )
        raise GatewayError(
            "M-Pesa request failed",
            details={"error_type": type(error).__name__},
        ) from error
