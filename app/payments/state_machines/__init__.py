"""
State machine enums and helpers for payment models.

This module defines the state enums used by payment models with django-fsm.
"""

from payments.state_machines.states import (
    OPEN_ATTEMPT_STATUSES,
    ORDER_STATE_TO_STATUS,
    FailureCode,
    ManualPaymentStatus,
    OrderPurpose,
    OrderState,
    OrderStatus,
    PaymentAttemptStatus,
    ReviewDecision,
)

__all__ = [
    "OPEN_ATTEMPT_STATUSES",
    "ORDER_STATE_TO_STATUS",
    "FailureCode",
    "ManualPaymentStatus",
    "OrderPurpose",
    "OrderState",
    "OrderStatus",
    "PaymentAttemptStatus",
    "ReviewDecision",
]
