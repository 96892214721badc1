"""
Payment services for the reconciliation workflow.

This module provides:
- ReconciliationService: Order intake, gateway and manual payment paths, settlement
- ManualPaymentQueue: Reviewer inbox over manual payment claims

Usage:
    from payments.services import ReconciliationService

    intent = ReconciliationService.create_intent(
        payer=user,
        purpose=OrderPurpose.BEAT,
        amount_cents=150_000,
    )
    attempt = ReconciliationService.begin_gateway_payment(intent.order.id, "0712345678")

    # Later, from the client's polling loop
    outcome = ReconciliationService.poll_gateway_outcome(attempt.correlation_id)

    # Reviewing a manual claim
    from payments.services import ManualPaymentQueue, ReviewerCapability

    ManualPaymentQueue.review(
        record_id,
        ReviewerCapability.for_user(request.user),
        decision="verify",
    )
"""

from payments.services.manual_queue import ManualPaymentQueue
from payments.services.reconciliation import (
    BookingDetails,
    GatewayOutcome,
    IntentResult,
    ReconciliationService,
    ReviewerCapability,
    SettlementResult,
)

__all__ = [
    "BookingDetails",
    "GatewayOutcome",
    "IntentResult",
    "ManualPaymentQueue",
    "ReconciliationService",
    "ReviewerCapability",
    "SettlementResult",
]
