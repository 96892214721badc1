"""
Tests for MpesaAdapter.

Tests cover:
- Phone normalization, amount conversion, password and timestamp helpers
- OAuth token fetch and caching
- STK push success and every error mapping
- Callback parsing
- Reading attempt status back from the ledger

All HTTP calls are mocked at payments.adapters.mpesa_adapter.requests.
"""

import base64
from datetime import datetime
from unittest.mock import patch

import pytest
import requests
from django.core.cache import cache

from payments.adapters import MpesaAdapter, StkPushParams
from payments.adapters.mpesa_adapter import TOKEN_CACHE_KEY
from payments.adapters.tests.conftest import mock_response
from payments.exceptions import (
    GatewayError,
    GatewayRejectedError,
    GatewayUnavailableError,
    InvalidPhoneNumberError,
    PaymentValidationError,
)
from payments.state_machines import PaymentAttemptStatus


# =============================================================================
# Helpers
# =============================================================================


class TestNormalizePhoneNumber:
    """Tests for MpesaAdapter.normalize_phone_number."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("0712345678", "254712345678"),
            ("+254712345678", "254712345678"),
            ("254712345678", "254712345678"),
            ("712345678", "254712345678"),
            ("0110 123 456", "254110123456"),
            ("+254-712-345-678", "254712345678"),
        ],
    )
    def test_valid_numbers(self, raw, expected):
        assert MpesaAdapter.normalize_phone_number(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "12345", "0212345678", "2547123456789", "abc"])
    def test_invalid_numbers(self, raw):
        with pytest.raises(InvalidPhoneNumberError):
            MpesaAdapter.normalize_phone_number(raw)


class TestAmountInShillings:
    @pytest.mark.parametrize(
        "cents,shillings",
        [(400_000, 4000), (150, 2), (149, 1), (50, 1), (1, 1), (12_345, 123)],
    )
    def test_rounds_half_up_with_minimum_of_one(self, cents, shillings):
        assert MpesaAdapter.amount_in_shillings(cents) == shillings


class TestPassword:
    def test_password_and_timestamp(self, mpesa_settings):
        stamp = MpesaAdapter.timestamp(datetime(2026, 5, 1, 14, 22, 33))

        assert stamp == "20260501142233"
        decoded = base64.b64decode(MpesaAdapter.password(stamp)).decode()
        assert decoded == "174379test-passkey20260501142233"


class TestStkPushParams:
    def test_rejects_non_positive_amount(self):
        with pytest.raises(ValueError):
            StkPushParams(amount_cents=0, phone_number="0712345678", reference="X")

    def test_requires_reference(self):
        with pytest.raises(ValueError):
            StkPushParams(amount_cents=100, phone_number="0712345678", reference="")


# =============================================================================
# OAuth
# =============================================================================


class TestGetAccessToken:
    """Tests for MpesaAdapter.get_access_token."""

    def test_fetches_and_caches_token(self, mpesa_settings, mock_get):
        assert MpesaAdapter.get_access_token() == "token-abc123"
        assert MpesaAdapter.get_access_token() == "token-abc123"

        assert mock_get.call_count == 1
        assert mock_get.call_args[1]["auth"] == ("test-consumer-key", "test-consumer-secret")
        assert mock_get.call_args[0][0].startswith("https://sandbox.safaricom.co.ke/oauth/")
        assert cache.get(TOKEN_CACHE_KEY) == "token-abc123"

    def test_production_base_url(self, mpesa_settings, mock_get):
        mpesa_settings.MPESA_ENVIRONMENT = "production"

        MpesaAdapter.get_access_token()

        assert mock_get.call_args[0][0].startswith("https://api.safaricom.co.ke/")

    def test_rejected_credentials(self, mpesa_settings):
        with patch(
            "payments.adapters.mpesa_adapter.requests.get",
            return_value=mock_response(400, {"errorCode": "400.008.01", "errorMessage": "Invalid"}),
        ):
            with pytest.raises(GatewayRejectedError) as exc_info:
                MpesaAdapter.get_access_token()

        assert exc_info.value.error_code == "GATEWAY_AUTH_FAILED"
        assert exc_info.value.gateway_code == "400.008.01"
        assert cache.get(TOKEN_CACHE_KEY) is None

    def test_server_error(self, mpesa_settings):
        with patch(
            "payments.adapters.mpesa_adapter.requests.get",
            return_value=mock_response(503),
        ):
            with pytest.raises(GatewayUnavailableError):
                MpesaAdapter.get_access_token()


# =============================================================================
# STK Push
# =============================================================================


class TestInitiate:
    """Tests for MpesaAdapter.initiate."""

    def test_accepted_push(self, mpesa_settings, mock_get, mock_post, push_params, trace_id):
        result = MpesaAdapter.initiate(push_params, trace_id=trace_id)

        assert result.correlation_id == "ws_CO_191220191020363925"
        assert result.merchant_request_id == "29115-34620561-1"
        assert result.customer_message == "Success. Request accepted for processing"
        assert result.phone_number == "254712345678"

        payload = mock_post.call_args[1]["json"]
        assert payload["Amount"] == 4000
        assert payload["PartyA"] == "254712345678"
        assert payload["PhoneNumber"] == "254712345678"
        assert payload["BusinessShortCode"] == "174379"
        assert payload["PartyB"] == "174379"
        assert payload["TransactionType"] == "CustomerPayBillOnline"
        assert payload["CallBackURL"] == "https://example.com/mpesa/callback"
        assert payload["AccountReference"] == "A1B2C3D4E5F6"
        assert payload["TransactionDesc"] == "Studio Bookin"
        assert mock_post.call_args[1]["headers"] == {"Authorization": "Bearer token-abc123"}
        assert mock_post.call_args[1]["timeout"] == 5

    def test_not_configured(self, settings, push_params):
        settings.MPESA_CONSUMER_KEY = ""

        with patch("payments.adapters.mpesa_adapter.requests.post") as post:
            with pytest.raises(GatewayUnavailableError) as exc_info:
                MpesaAdapter.initiate(push_params)

        assert exc_info.value.error_code == "GATEWAY_NOT_CONFIGURED"
        assert exc_info.value.details["fallback_recommended"] is True
        post.assert_not_called()

    def test_invalid_phone_never_calls_gateway(self, mpesa_settings, mock_get, mock_post):
        with pytest.raises(InvalidPhoneNumberError):
            MpesaAdapter.initiate(
                StkPushParams(amount_cents=100, phone_number="999", reference="REF")
            )

        mock_post.assert_not_called()

    def test_timeout(self, mpesa_settings, mock_get, push_params):
        with patch(
            "payments.adapters.mpesa_adapter.requests.post",
            side_effect=requests.Timeout("read timed out"),
        ):
            with pytest.raises(GatewayUnavailableError) as exc_info:
                MpesaAdapter.initiate(push_params)

        assert exc_info.value.error_code == "GATEWAY_TIMEOUT"
        assert exc_info.value.is_retryable is True

    def test_connection_error(self, mpesa_settings, mock_get, push_params):
        with patch(
            "payments.adapters.mpesa_adapter.requests.post",
            side_effect=requests.ConnectionError("refused"),
        ):
            with pytest.raises(GatewayUnavailableError) as exc_info:
                MpesaAdapter.initiate(push_params)

        assert exc_info.value.error_code == "GATEWAY_UNAVAILABLE"

    def test_other_request_error(self, mpesa_settings, mock_get, push_params):
        with patch(
            "payments.adapters.mpesa_adapter.requests.post",
            side_effect=requests.TooManyRedirects("loop"),
        ):
            with pytest.raises(GatewayError) as exc_info:
                MpesaAdapter.initiate(push_params)

        assert not isinstance(exc_info.value, GatewayUnavailableError)
        assert exc_info.value.details["error_type"] == "TooManyRedirects"

    def test_server_error(self, mpesa_settings, mock_get, push_params):
        with patch(
            "payments.adapters.mpesa_adapter.requests.post",
            return_value=mock_response(500, {"errorMessage": "Internal error"}),
        ):
            with pytest.raises(GatewayUnavailableError) as exc_info:
                MpesaAdapter.initiate(push_params)

        assert exc_info.value.details["status_code"] == 500

    def test_error_message_is_rejection(self, mpesa_settings, mock_get, push_params):
        with patch(
            "payments.adapters.mpesa_adapter.requests.post",
            return_value=mock_response(
                400,
                {
                    "requestId": "1-2",
                    "errorCode": "400.002.02",
                    "errorMessage": "Bad Request - Invalid PhoneNumber",
                },
            ),
        ):
            with pytest.raises(GatewayRejectedError) as exc_info:
                MpesaAdapter.initiate(push_params)

        assert exc_info.value.message == "Bad Request - Invalid PhoneNumber"
        assert exc_info.value.gateway_code == "400.002.02"
        assert exc_info.value.is_retryable is False

    def test_non_zero_response_code_is_rejection(self, mpesa_settings, mock_get, push_params):
        with patch(
            "payments.adapters.mpesa_adapter.requests.post",
            return_value=mock_response(
                200,
                {"ResponseCode": "1", "ResponseDescription": "Rejected by merchant rules"},
            ),
        ):
            with pytest.raises(GatewayRejectedError) as exc_info:
                MpesaAdapter.initiate(push_params)

        assert exc_info.value.gateway_code == "1"

    def test_unauthorized_drops_cached_token(self, mpesa_settings, mock_get, push_params):
        with patch(
            "payments.adapters.mpesa_adapter.requests.post",
            return_value=mock_response(401, {"errorCode": "404.001.03", "errorMessage": "Invalid Access Token"}),
        ):
            with pytest.raises(GatewayRejectedError):
                MpesaAdapter.initiate(push_params)

        assert cache.get(TOKEN_CACHE_KEY) is None

    def test_missing_checkout_request_id(self, mpesa_settings, mock_get, push_params):
        with patch(
            "payments.adapters.mpesa_adapter.requests.post",
            return_value=mock_response(200, {"ResponseCode": "0"}),
        ):
            with pytest.raises(GatewayUnavailableError):
                MpesaAdapter.initiate(push_params)

    def test_non_json_body(self, mpesa_settings, mock_get, push_params):
        with patch(
            "payments.adapters.mpesa_adapter.requests.post",
            return_value=mock_response(200),
        ):
            with pytest.raises(GatewayRejectedError):
                MpesaAdapter.initiate(push_params)


# =============================================================================
# Callbacks & Status
# =============================================================================


class TestParseCallback:
    """Tests for MpesaAdapter.parse_callback."""

    def test_success(self):
        callback = MpesaAdapter.parse_callback(
            {
                "Body": {
                    "stkCallback": {
                        "MerchantRequestID": "29115-34620561-1",
                        "CheckoutRequestID": "ws_CO_191220191020363925",
                        "ResultCode": 0,
                        "ResultDesc": "The service request is processed successfully.",
                        "CallbackMetadata": {
                            "Item": [
                                {"Name": "Amount", "Value": 1.0},
                                {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
                                {"Name": "Balance"},
                                {"Name": "TransactionDate", "Value": 20191219102115},
                                {"Name": "PhoneNumber", "Value": 254708374149},
                            ]
                        },
                    }
                }
            }
        )

        assert callback.succeeded is True
        assert callback.correlation_id == "ws_CO_191220191020363925"
        assert callback.receipt_number == "NLJ7RT61SV"
        assert callback.amount_cents == 100
        assert callback.phone_number == "254708374149"

    def test_cancelled(self):
        callback = MpesaAdapter.parse_callback(
            {
                "Body": {
                    "stkCallback": {
                        "MerchantRequestID": "29115-34620561-1",
                        "CheckoutRequestID": "ws_CO_191220191020363925",
                        "ResultCode": 1032,
                        "ResultDesc": "Request cancelled by user",
                    }
                }
            }
        )

        assert callback.succeeded is False
        assert callback.result_code == 1032
        assert callback.amount_cents is None
        assert callback.receipt_number == ""

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"Body": None},
            {"Body": {"stkCallback": {"ResultCode": 0}}},
            {"Body": {"stkCallback": {"CheckoutRequestID": "x", "ResultCode": "abc"}}},
        ],
    )
    def test_malformed(self, payload):
        with pytest.raises(PaymentValidationError) as exc_info:
            MpesaAdapter.parse_callback(payload)

        assert exc_info.value.error_code == "INVALID_CALLBACK"


class TestCheckStatus:
    """Tests for MpesaAdapter.check_status."""

    def test_unknown_id_reads_as_initiated(self, db):
        assert MpesaAdapter.check_status("ws_CO_UNKNOWN") == PaymentAttemptStatus.INITIATED

    def test_reads_recorded_status(self, db):
        from payments.tests.factories import PaymentAttemptFactory

        attempt = PaymentAttemptFactory(status=PaymentAttemptStatus.COMPLETED)

        assert MpesaAdapter.check_status(attempt.correlation_id) == PaymentAttemptStatus.COMPLETED
