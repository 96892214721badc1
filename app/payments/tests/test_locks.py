"""
Tests for the conditional-update retry helper.

transition_with_retry() saves through django-fsm's ConcurrentTransitionMixin,
so a stale in-memory copy loses against a row another request changed.
"""

from unittest.mock import patch

import pytest
from django_fsm import ConcurrentTransition

from payments.exceptions import ConcurrentAttemptExistsError
from payments.locks import transition_with_retry
from payments.models import Order
from payments.state_machines import FailureCode, OrderState
from payments.tests.factories import OrderFactory


class TestTransitionWithRetry:
    """Tests for transition_with_retry."""

    def test_applies_and_saves(self, db):
        order = OrderFactory()

        def apply(o):
            o.await_payment()
            return True

        transition_with_retry(order, apply, action="await")

        assert Order.objects.get(pk=order.pk).state == OrderState.AWAITING_PAYMENT

    def test_no_op_does_not_save(self, db):
        """Returning False leaves the row untouched."""
        order = OrderFactory()

        with patch.object(Order, "save") as mock_save:
            transition_with_retry(order, lambda o: False, action="noop")

        mock_save.assert_not_called()

    def test_stale_copy_re_decides_on_fresh_state(self, db):
        """A lost race re-reads the row and lets the caller decide again."""
        order = OrderFactory(state=OrderState.AWAITING_PAYMENT)
        stale = Order.objects.get(pk=order.pk)

        # Another request fails the order first.
        order.fail(code=FailureCode.TIMEOUT)
        order.save()

        seen_states = []

        def apply(o):
            seen_states.append(o.state)
            if o.state != OrderState.AWAITING_PAYMENT:
                return False
            o.fail(code=FailureCode.GATEWAY_FAILED)
            return True

        transition_with_retry(stale, apply, action="fail")

        assert seen_states == [OrderState.AWAITING_PAYMENT, OrderState.FAILED]
        stale.refresh_from_db()
        assert stale.failure_code == FailureCode.TIMEOUT

    def test_gives_up_after_one_retry(self, db):
        """A write that keeps conflicting raises ConcurrentAttemptExistsError."""
        order = OrderFactory()

        def apply(o):
            o.await_payment()
            return True

        with patch.object(Order, "save", side_effect=ConcurrentTransition("lost")):
            with pytest.raises(ConcurrentAttemptExistsError) as exc_info:
                transition_with_retry(order, apply, action="await")

        assert exc_info.value.details["action"] == "await"
        assert exc_info.value.details["pk"] == str(order.pk)
