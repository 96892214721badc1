"""
Tests for payments app.

This package contains test modules for:
- test_state_transitions.py: Order, PaymentAttempt and ManualPayment FSMs
- test_models.py: Derived status, constraints and query helpers
- test_locks.py: Conditional-update retry helper
- test_reconciliation.py: ReconciliationService workflows
- test_manual_queue.py: Manual payment verification queue
- test_storage.py: Proof upload storage
- test_tasks.py: Celery tasks
- test_views.py: API endpoint tests
- test_integration.py: End-to-end payment journeys

Usage:
    pytest payments/tests/
    pytest payments/tests/test_reconciliation.py
"""
