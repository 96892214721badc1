"""
Django signals for payment workflow transitions.

The reconciliation service emits these after the database write that caused
them has committed. Delivery is fire-and-forget: receivers run through
send_robust(), and a failing receiver is logged, never raised to the caller.

Signals:
    order_confirmed(order, source)           Money arrived (source: gateway|manual)
    order_failed(order, failure_code, reason)
    order_settled(order, booking, earnings_record)
    manual_payment_submitted(manual_payment)
    manual_payment_reviewed(manual_payment, decision)

Usage:
    from django.dispatch import receiver
    from payments.signals import order_failed

    @receiver(order_failed)
    def offer_manual_payment(sender, order, failure_code, reason, **kwargs):
        ...
"""

from __future__ import annotations

import logging

from django.dispatch import Signal

logger = logging.getLogger(__name__)


order_confirmed = Signal()
order_failed = Signal()
order_settled = Signal()
manual_payment_submitted = Signal()
manual_payment_reviewed = Signal()


def emit(signal: Signal, sender, **kwargs) -> None:
    """Send a signal to all receivers, logging any receiver that raised."""
    for receiver, response in signal.send_robust(sender=sender, **kwargs):
        if isinstance(response, Exception):
            logger.error(
                f"Signal receiver failed: {response}",
                extra={
                    "receiver": getattr(receiver, "__qualname__", repr(receiver)),
                    "error_type": type(response).__name__,
                },
                exc_info=response,
            )
