"""Tests for billing period and invoice state machines."""

import pytest

from locum_billing.services.state_machine import (
    BillingPeriodStateMachine,
    BillingPeriodStatus,
    InvalidTransitionError,
    InvoiceStateMachine,
    InvoiceStatus,
)


class TestBillingPeriodStateMachine:
    def test_open_to_closed(self):
        assert BillingPeriodStateMachine.can_transition("open", "closed")

    def test_closed_to_open_requires_override(self):
        assert not BillingPeriodStateMachine.can_transition("closed", "open")
        assert BillingPeriodStateMachine.can_transition("closed", "open", override=True)

    def test_closed_to_closed_invalid(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            BillingPeriodStateMachine.validate_transition("closed", "closed")
        assert exc_info.value.from_status == "closed"

    def test_override_does_not_allow_open_to_open(self):
        assert not BillingPeriodStateMachine.can_transition("open", "open", override=True)

    def test_can_generate_only_when_open(self):
        assert BillingPeriodStateMachine.can_generate(BillingPeriodStatus.OPEN)
        assert not BillingPeriodStateMachine.can_generate("closed")


class TestInvoiceStateMachine:
    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            ("draft", "sent"),
            ("draft", "cancelled"),
            ("sent", "paid"),
            ("sent", "overdue"),
            ("sent", "cancelled"),
            ("overdue", "paid"),
            ("overdue", "cancelled"),
        ],
    )
    def test_valid_transitions(self, from_status, to_status):
        assert InvoiceStateMachine.can_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            ("draft", "paid"),
            ("paid", "cancelled"),
            ("cancelled", "draft"),
            ("paid", "sent"),
        ],
    )
    def test_invalid_transitions(self, from_status, to_status):
        with pytest.raises(InvalidTransitionError):
            InvoiceStateMachine.validate_transition(from_status, to_status)

    def test_terminal_states(self):
        assert InvoiceStateMachine.get_next_statuses(InvoiceStatus.PAID) == []
        assert InvoiceStateMachine.get_next_statuses(InvoiceStatus.CANCELLED) == []

    def test_cancelled_is_not_active(self):
        assert InvoiceStateMachine.is_active("sent")
        assert not InvoiceStateMachine.is_active("cancelled")
