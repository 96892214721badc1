"""
Payments app for studio payment reconciliation.

This app handles:
- Orders and their reconciliation state machine
- M-Pesa STK push payments (initiate, callback, poll, timeout)
- Manual Paybill/bank-transfer claims and the reviewer queue
- Settlement: booking confirmation and earnings allocation

Related apps:
    - bookings: Studio sessions confirmed by a settled order
    - earnings: Producer share allocated at settlement

Usage:
    from payments.services import ReconciliationService

    # Send a push payment
    attempt = ReconciliationService.begin_gateway_payment(order.id, "0712345678")

    # Apply its outcome
    outcome = ReconciliationService.poll_gateway_outcome(attempt.correlation_id)
"""
