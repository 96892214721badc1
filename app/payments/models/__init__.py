"""
Payment domain models.

This module contains all payment-related models:
- Order: Monetary intent driven through the reconciliation workflow
- PaymentAttempt: One push-payment try against the mobile-money gateway
- ManualPayment: Out-of-band payment claim verified by a reviewer
"""

from payments.models.manual_payment import (
    ManualPayment,
    ManualPaymentQuerySet,
    normalize_reference_code,
)
from payments.models.order import Order
from payments.models.payment_attempt import PaymentAttempt

__all__ = [
    "ManualPayment",
    "ManualPaymentQuerySet",
    "Order",
    "PaymentAttempt",
    "normalize_reference_code",
]
