"""Billing period and invoice state machines with transition validation."""

from __future__ import annotations

from enum import Enum


class BillingPeriodStatus(str, Enum):
    """Billing period status values."""

    OPEN = "open"
    CLOSED = "closed"


class InvoiceStatus(str, Enum):
    """Invoice status values."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class BillingPeriodStateMachine:
    """State machine for billing periods.

    Normal flow is one-way: open → closed. The only way back is the
    administrative override (closed → open), which callers must request
    explicitly with ``override=True``.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        BillingPeriodStatus.OPEN: [BillingPeriodStatus.CLOSED],
        BillingPeriodStatus.CLOSED: [],
    }

    OVERRIDE_TRANSITIONS: dict[str, list[str]] = {
        BillingPeriodStatus.CLOSED: [BillingPeriodStatus.OPEN],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str, override: bool = False) -> bool:
        """Check if a transition is valid."""
        if to_status in cls.VALID_TRANSITIONS.get(from_status, []):
            return True
        return override and to_status in cls.OVERRIDE_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str, override: bool = False) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status, override):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_generate(cls, status: str) -> bool:
        """Invoice generation and cancellation only happen on open periods."""
        return status == BillingPeriodStatus.OPEN


class InvoiceStateMachine:
    """State machine for invoice status transitions.

    Allowed transitions:
    - draft → sent
    - draft → cancelled
    - sent → paid
    - sent → overdue
    - sent → cancelled
    - overdue → paid
    - overdue → cancelled
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        InvoiceStatus.DRAFT: [InvoiceStatus.SENT, InvoiceStatus.CANCELLED],
        InvoiceStatus.SENT: [InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED],
        InvoiceStatus.OVERDUE: [InvoiceStatus.PAID, InvoiceStatus.CANCELLED],
        InvoiceStatus.PAID: [],  # Terminal state
        InvoiceStatus.CANCELLED: [],  # Terminal state
    }

    # Invoices that count towards period totals and generated flags
    ACTIVE = {
        InvoiceStatus.DRAFT,
        InvoiceStatus.SENT,
        InvoiceStatus.PAID,
        InvoiceStatus.OVERDUE,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_active(cls, status: str) -> bool:
        return status in cls.ACTIVE

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
