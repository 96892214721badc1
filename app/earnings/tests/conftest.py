"""Pytest fixtures for earnings tests."""

from decimal import Decimal

import pytest

from bookings.models import BookingStatus
from payments.tests.factories import BookingFactory, ProducerSettingsFactory, UserFactory


@pytest.fixture
def producer(db):
    """Producer on a 70% commission with a KES 1,000 minimum payout."""
    return ProducerSettingsFactory(
        commission_rate=Decimal("70.00"),
        minimum_payout_cents=100_000,
    ).producer


@pytest.fixture
def producer_without_settings(db):
    return UserFactory()


@pytest.fixture
def make_booking(producer):
    def make(total_price_cents=400_000, status=BookingStatus.CONFIRMED, **kwargs):
        kwargs.setdefault("producer", producer)
        return BookingFactory(total_price_cents=total_price_cents, status=status, **kwargs)

    return make
