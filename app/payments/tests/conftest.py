"""
Pytest fixtures for payment tests.

This module provides fixtures for creating payment-related test data in
the states the reconciliation workflow passes through, plus a configured
M-Pesa gateway and signal capture.

Usage:
    def test_poll_settles(awaiting_order, open_attempt):
        open_attempt.complete(receipt_number="QK123")
        open_attempt.save()
        ReconciliationService.poll_gateway_outcome(open_attempt.correlation_id)
"""

from datetime import time, timedelta

import pytest
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone

from payments import signals
from payments.services import BookingDetails
from payments.state_machines import OrderPurpose, OrderState
from payments.tests.factories import (
    BookingFactory,
    ManualPaymentFactory,
    OrderFactory,
    PaymentAttemptFactory,
    ProducerSettingsFactory,
    StaffUserFactory,
    UserFactory,
)


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a test user (the payer)."""
    return UserFactory()


@pytest.fixture
def other_user(db):
    """A second, unrelated user."""
    return UserFactory()


@pytest.fixture
def producer(db):
    """Producer with a 70% commission rate."""
    settings = ProducerSettingsFactory()
    return settings.producer


@pytest.fixture
def reviewer(db):
    """Staff superuser who may review manual payments."""
    return StaffUserFactory()


# =============================================================================
# Order State Fixtures
# =============================================================================


@pytest.fixture
def draft_order(db, user):
    """DRAFT order owned by user."""
    return OrderFactory(payer=user)


@pytest.fixture
def awaiting_order(db, user):
    """Order waiting for a push payment."""
    return OrderFactory(
        payer=user,
        state=OrderState.AWAITING_PAYMENT,
        awaiting_payment_at=timezone.now(),
    )


@pytest.fixture
def open_attempt(db, awaiting_order):
    """Attempt awaiting confirmation for awaiting_order."""
    return PaymentAttemptFactory(order=awaiting_order)


@pytest.fixture
def booking_order(db, user, producer):
    """Booking order in DRAFT with its pending booking."""
    order = OrderFactory(payer=user, purpose=OrderPurpose.BOOKING)
    BookingFactory(client=user, producer=producer, order=order, total_price_cents=order.amount_cents)
    return order


@pytest.fixture
def manual_review_order(db, user):
    """Order in MANUAL_REVIEW with one pending claim."""
    order = OrderFactory(payer=user, state=OrderState.MANUAL_REVIEW)
    ManualPaymentFactory(order=order)
    return order


@pytest.fixture
def pending_claim(db, manual_review_order):
    """The pending claim of manual_review_order."""
    return manual_review_order.manual_payments.get()


@pytest.fixture
def booking_details(producer):
    """Valid booking details for a session next week."""
    return BookingDetails(
        session_type="recording",
        session_date=(timezone.now() + timedelta(days=7)).date(),
        start_time=time(14, 0),
        duration_hours=2,
        producer=producer,
    )


# =============================================================================
# Gateway Fixtures
# =============================================================================


@pytest.fixture
def mpesa_settings(settings):
    """Configure M-Pesa credentials for the test."""
    settings.MPESA_ENVIRONMENT = "sandbox"
    settings.MPESA_CONSUMER_KEY = "test-consumer-key"
    settings.MPESA_CONSUMER_SECRET = "test-consumer-secret"
    settings.MPESA_PASSKEY = "test-passkey"
    settings.MPESA_SHORTCODE = "174379"
    settings.MPESA_CALLBACK_URL = "https://example.com/mpesa/callback"
    settings.MPESA_API_TIMEOUT_SECONDS = 5
    return settings


@pytest.fixture(autouse=True)
def clear_cache():
    """The OAuth token lives in the cache; start every test without it."""
    cache.clear()
    yield
    cache.clear()


def stk_callback(correlation_id, result_code=0, amount=4000, receipt="QKA1B2C3D4"):
    """Build a Daraja STK callback body."""
    body = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": correlation_id,
        "ResultCode": result_code,
        "ResultDesc": (
            "The service request is processed successfully."
            if result_code == 0
            else "Request cancelled by user"
        ),
    }
    if result_code == 0:
        body["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": amount},
                {"Name": "MpesaReceiptNumber", "Value": receipt},
                {"Name": "TransactionDate", "Value": 20260501142233},
                {"Name": "PhoneNumber", "Value": 254712345678},
            ]
        }
    return {"Body": {"stkCallback": body}}


@pytest.fixture
def callback_payload():
    """Factory fixture for STK callback bodies."""
    return stk_callback


# =============================================================================
# Signal Fixtures
# =============================================================================


class SignalRecorder:
    """Collects (signal name, kwargs) for every payment signal sent."""

    NAMES = (
        "order_confirmed",
        "order_failed",
        "order_settled",
        "manual_payment_submitted",
        "manual_payment_reviewed",
    )

    def __init__(self):
        self.events = []
        self._receivers = []

    def connect(self):
        for name in self.NAMES:
            def receiver(sender, _name=name, **kwargs):
                kwargs.pop("signal", None)
                self.events.append((_name, kwargs))

            getattr(signals, name).connect(receiver, weak=False)
            self._receivers.append((name, receiver))

    def disconnect(self):
        for name, receiver in self._receivers:
            getattr(signals, name).disconnect(receiver)

    def names(self):
        return [name for name, _ in self.events]

    def of(self, name):
        return [kwargs for event, kwargs in self.events if event == name]


@pytest.fixture
def captured_signals():
    """Record payment signals sent during the test."""
    recorder = SignalRecorder()
    recorder.connect()
    yield recorder
    recorder.disconnect()


# =============================================================================
# Proof Upload Fixtures
# =============================================================================

# Smallest headers libmagic identifies by content
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n"
    b"\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x02\x00\x00\x00\x90wS\xde"
    b"\x00\x00\x00\x0cIDATx\x9cc\xf8\xcf\xc0\x00\x00\x03\x01\x01\x00\xc9\xfe\x92\xef"
    b"\x00\x00\x00\x00IEND\xaeB`\x82"
)
JPEG_BYTES = (
    b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    + b"\x00" * 64
    + b"\xff\xd9"
)
PDF_BYTES = b"""%PDF-1.4
1 0 obj << /Type /Catalog /Pages 2 0 R >> endobj
2 0 obj << /Type /Pages /Kids [] /Count 0 >> endobj
trailer << /Size 3 /Root 1 0 R >>
%%EOF"""


@pytest.fixture
def proof_upload():
    """Factory for proof uploads; a PNG screenshot by default."""

    def make(name="mpesa-message.png", content=PNG_BYTES, content_type="image/png"):
        return SimpleUploadedFile(name, content, content_type=content_type)

    return make


@pytest.fixture
def proof_bytes():
    """Real file headers keyed by format."""
    return {"png": PNG_BYTES, "jpeg": JPEG_BYTES, "pdf": PDF_BYTES}
