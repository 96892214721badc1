"""
Celery tasks for the payment workflow.

This module provides async tasks for:
- Polling a push payment on behalf of a client that went away
- Periodic expiry of push payments nobody timed out

Usage:
    from payments.tasks import poll_gateway_payment

    # Queue a poll for one push payment
    poll_gateway_payment.delay(attempt.correlation_id)

    # Expire stale push payments (scheduled via CELERY_BEAT_SCHEDULE)
    from payments.tasks import expire_stale_gateway_payments
    expire_stale_gateway_payments.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.exceptions import BaseApplicationError
from payments.models import Order
from payments.services import ReconciliationService
from payments.state_machines import OrderState

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Orders handled per sweep; the next run picks up the rest.
EXPIRY_BATCH_SIZE = 100


# =============================================================================
# Gateway Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(ConnectionError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def poll_gateway_payment(self, correlation_id: str) -> dict:
    """
    Apply the recorded outcome of a push payment.

    Args:
        correlation_id: Gateway CheckoutRequestID

    Returns:
        Dict with the attempt status and order state
    """
    try:
        outcome = ReconciliationService.poll_gateway_outcome(correlation_id)
    except BaseApplicationError as e:
        logger.warning(
            f"Gateway poll failed: {e}",
            extra={"correlation_id": correlation_id, "error_code": e.error_code},
        )
        return {"status": "error", "error_code": e.error_code, "correlation_id": correlation_id}

    return {
        "status": outcome.status,
        "order_id": str(outcome.order.id),
        "order_state": outcome.order.state,
        "correlation_id": correlation_id,
    }


@shared_task
def expire_stale_gateway_payments() -> dict:
    """
    Time out orders stuck in AWAITING_PAYMENT past the deadline.

    Clients are expected to call the timeout themselves; this sweep covers
    the ones that never came back.

    Returns:
        Dict with counts of expired and failed orders
    """
    deadline_seconds = getattr(settings, "GATEWAY_PAYMENT_TIMEOUT_SECONDS", 120)
    cutoff = timezone.now() - timedelta(seconds=deadline_seconds)

    order_ids = list(
        Order.objects.filter(
            state=OrderState.AWAITING_PAYMENT,
            awaiting_payment_at__lt=cutoff,
        )
        .order_by("awaiting_payment_at")
        .values_list("id", flat=True)[:EXPIRY_BATCH_SIZE]
    )

    expired = 0
    errors = 0
    for order_id in order_ids:
        try:
            order = ReconciliationService.timeout_gateway_payment(order_id)
        except BaseApplicationError as e:
            errors += 1
            logger.warning(
                f"Could not expire order: {e}",
                extra={"order_id": str(order_id), "error_code": e.error_code},
            )
            continue
        if order.state == OrderState.FAILED:
            expired += 1

    if order_ids:
        logger.info(
            "Stale push payment sweep finished",
            extra={"candidates": len(order_ids), "expired": expired, "errors": errors},
        )

    return {"candidates": len(order_ids), "expired": expired, "errors": errors}
