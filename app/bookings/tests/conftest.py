"""Pytest fixtures for booking tests."""

import pytest

from bookings.models import BookingStatus
from payments.tests.factories import BookingFactory, ProducerSettingsFactory


@pytest.fixture
def producer(db):
    return ProducerSettingsFactory().producer


@pytest.fixture
def pending_booking(db, producer):
    return BookingFactory(producer=producer)


@pytest.fixture
def confirmed_booking(db, producer):
    return BookingFactory(producer=producer, status=BookingStatus.CONFIRMED)
