"""
Concurrency control utilities for payment operations.

Every mutable payment entity (Order, PaymentAttempt, ManualPayment, Booking,
EarningsRecord) uses django-fsm's ConcurrentTransitionMixin. Its saves are
conditional updates:

    UPDATE ... SET ... WHERE id = %s AND state = <state read from the database>

When another process changed the state in between, no row matches and
django-fsm raises ConcurrentTransition. transition_with_retry() re-reads the
row once, lets the caller re-decide against the fresh state, and gives up
with ConcurrentAttemptExistsError if the second write also loses.

Usage:

    from payments.locks import transition_with_retry

    def apply(order):
        if order.state != OrderState.AWAITING_PAYMENT:
            return False        # nothing to do on the fresh state
        order.fail(code=FailureCode.TIMEOUT)
        return True

    transition_with_retry(order, apply, action="timeout")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from django.db import models, transaction

from django_fsm import ConcurrentTransition

from payments.exceptions import ConcurrentAttemptExistsError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

# Type variable for model classes
T = TypeVar("T", bound=models.Model)

# A conflicting write is retried this many times after a fresh read.
MAX_CONFLICT_RETRIES = 1


def transition_with_retry(
    instance: T,
    apply: Callable[[T], bool],
    *,
    action: str,
) -> T:
    """
    Apply a state change and save it as a compare-and-swap write.

    Args:
        instance: Model instance using ConcurrentTransitionMixin
        apply: Mutates the instance (FSM transitions) and returns True to
            save, or False when the current state needs no change
        action: Short name used in logs and error details

    Returns:
        The saved (or unchanged) instance

    Raises:
        ConcurrentAttemptExistsError: If the write still conflicts after
            one fresh read
    """
    for attempt in range(MAX_CONFLICT_RETRIES + 1):
        try:
            with transaction.atomic():
                if not apply(instance):
                    return instance
                instance.save()
            return instance
        except ConcurrentTransition:
            logger.info(
                "Conditional update lost a race, re-reading",
                extra={
                    "model": instance.__class__.__name__,
                    "pk": str(instance.pk),
                    "action": action,
                    "attempt": attempt + 1,
                },
            )
            instance.refresh_from_db()

    logger.warning(
        "Conditional update kept conflicting",
        extra={
            "model": instance.__class__.__name__,
            "pk": str(instance.pk),
            "action": action,
        },
    )
    raise ConcurrentAttemptExistsError(
        f"{instance.__class__.__name__} {instance.pk} is being changed by another request",
        details={"pk": str(instance.pk), "action": action},
    )
