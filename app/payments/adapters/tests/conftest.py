"""
Pytest fixtures for M-Pesa adapter tests.

This module provides fixtures for testing the M-Pesa adapter, including
mock Daraja HTTP responses and configured credentials.

Sections:
    - Configuration Fixtures
    - Mock HTTP Fixtures
    - Test Data Fixtures
"""

import uuid
from unittest.mock import MagicMock, patch

import pytest
from django.core.cache import cache

from payments.adapters import StkPushParams


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def mpesa_settings(settings):
    """Sandbox credentials for the adapter."""
    settings.MPESA_ENVIRONMENT = "sandbox"
    settings.MPESA_CONSUMER_KEY = "test-consumer-key"
    settings.MPESA_CONSUMER_SECRET = "test-consumer-secret"
    settings.MPESA_PASSKEY = "test-passkey"
    settings.MPESA_SHORTCODE = "174379"
    settings.MPESA_CALLBACK_URL = "https://example.com/mpesa/callback"
    settings.MPESA_API_TIMEOUT_SECONDS = 5
    return settings


@pytest.fixture(autouse=True)
def clear_token_cache():
    """Every test starts without a cached OAuth token."""
    cache.clear()
    yield
    cache.clear()


# =============================================================================
# Mock HTTP Fixtures
# =============================================================================


def mock_response(status_code=200, json_data=None):
    """Build a requests.Response stand-in."""
    response = MagicMock()
    response.status_code = status_code
    if json_data is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def token_response():
    return mock_response(200, {"access_token": "token-abc123", "expires_in": "3599"})


@pytest.fixture
def accepted_response():
    """Daraja response for an accepted STK push."""
    return mock_response(
        200,
        {
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": "ws_CO_191220191020363925",
            "ResponseCode": "0",
            "ResponseDescription": "Success. Request accepted for processing",
            "CustomerMessage": "Success. Request accepted for processing",
        },
    )


@pytest.fixture
def mock_get(token_response):
    """Patch requests.get (OAuth) in the adapter module."""
    with patch("payments.adapters.mpesa_adapter.requests.get", return_value=token_response) as mock:
        yield mock


@pytest.fixture
def mock_post(accepted_response):
    """Patch requests.post (STK push) in the adapter module."""
    with patch(
        "payments.adapters.mpesa_adapter.requests.post", return_value=accepted_response
    ) as mock:
        yield mock


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def trace_id():
    """Generate a trace ID for testing."""
    return f"trace-{uuid.uuid4().hex[:16]}"


@pytest.fixture
def push_params():
    """A KES 4,000 push to a local-format number."""
    return StkPushParams(
        amount_cents=400_000,
        phone_number="0712345678",
        reference="A1B2C3D4E5F6A7B8",
        description="Studio Booking",
    )
