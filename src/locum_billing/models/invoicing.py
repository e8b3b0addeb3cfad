"""Billing period, invoice, line item, counter and claim models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from locum_billing.models.base import Base, JSONType, TimestampMixin, UpdatedAtMixin, utcnow


# ===== Billing Periods =====


class BillingPeriod(Base, TimestampMixin, UpdatedAtMixin):
    """Date range over which shifts are aggregated into invoices."""

    __tablename__ = "billing_period"

    billing_period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period_name: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="open")
    client_invoices_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payroll_invoices_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total_shifts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    total_client_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    total_payroll_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    # Items rejected during the last generation run: [{"source_type", "source_id", ...}]
    pending_errors: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    reopened_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("status IN ('open', 'closed')", name="billing_period_status_check"),
        CheckConstraint("end_date >= start_date", name="billing_period_dates_check"),
        UniqueConstraint("start_date", "end_date", name="billing_period_dates_unique"),
    )

    def is_generated(self, invoice_type: str) -> bool:
        """Whether invoices of the given type have been generated."""
        if invoice_type == "client":
            return self.client_invoices_generated
        return self.payroll_invoices_generated

    def set_generated(self, invoice_type: str, value: bool) -> None:
        """Set the generated flag for an invoice type."""
        if invoice_type == "client":
            self.client_invoices_generated = value
        else:
            self.payroll_invoices_generated = value

    def contains(self, day: date) -> bool:
        """Inclusive date containment."""
        return self.start_date <= day <= self.end_date


# ===== Invoice Numbering =====


class InvoiceCounter(Base, UpdatedAtMixin):
    """Persisted sequence for invoice numbers, one row per invoice type.

    Always read with ``FOR UPDATE`` inside the generating transaction.
    """

    __tablename__ = "invoice_counter"

    invoice_type: Mapped[str] = mapped_column(String, primary_key=True)
    next_number: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("invoice_type IN ('client', 'payroll')", name="invoice_counter_type_check"),
    )


# ===== Invoices =====


class Invoice(Base, TimestampMixin, UpdatedAtMixin):
    """Client or self-billing payroll invoice.

    Recipient details are copied at generation time so later edits to the
    practice or staff record do not change historical invoices.
    """

    __tablename__ = "invoice"

    invoice_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    invoice_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    invoice_type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    billing_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("billing_period.billing_period_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Recipient snapshot
    recipient_type: Mapped[str] = mapped_column(String, nullable=False)  # 'practice' | 'staff'
    recipient_id: Mapped[UUID] = mapped_column(nullable=False)
    recipient_name: Mapped[str] = mapped_column(String, nullable=False)
    recipient_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    recipient_postcode: Mapped[str | None] = mapped_column(String, nullable=True)
    recipient_vat_number: Mapped[str | None] = mapped_column(String, nullable=True)
    recipient_email: Mapped[str | None] = mapped_column(String, nullable=True)

    # Dates
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    # Totals
    subtotal_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    vat_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Self-billing
    is_self_billed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    self_billing_reference: Mapped[str | None] = mapped_column(String, nullable=True)

    rates_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    generated_by: Mapped[UUID | None] = mapped_column(nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("invoice_type IN ('client', 'payroll')", name="invoice_type_check"),
        CheckConstraint(
            "status IN ('draft', 'sent', 'paid', 'overdue', 'cancelled')",
            name="invoice_status_check",
        ),
        CheckConstraint("recipient_type IN ('practice', 'staff')", name="invoice_recipient_check"),
        CheckConstraint("due_date >= invoice_date", name="invoice_due_date_check"),
    )

    # Relationships
    line_items: Mapped[list[InvoiceLineItem]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceLineItem.line_number",
    )


class InvoiceLineItem(Base, TimestampMixin):
    """One billed shift or timesheet day. Never edited after generation."""

    __tablename__ = "invoice_line_item"

    invoice_line_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoice.invoice_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Source
    source_type: Mapped[str] = mapped_column(String, nullable=False)  # 'shift' | 'timesheet'
    shift_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("shift.shift_id", ondelete="SET NULL"), nullable=True, index=True
    )
    timesheet_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("timesheet.timesheet_id", ondelete="SET NULL"), nullable=True
    )
    shift_ref: Mapped[str | None] = mapped_column(String, nullable=True)

    # Staff / location snapshot
    staff_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)
    staff_name: Mapped[str] = mapped_column(String, nullable=False)
    # Self-billing identifiers, payroll lines only
    staff_payroll_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    staff_ni_number: Mapped[str | None] = mapped_column(String, nullable=True)
    practice_id: Mapped[UUID | None] = mapped_column(nullable=True)
    location_name: Mapped[str | None] = mapped_column(String, nullable=True)
    location_type: Mapped[str | None] = mapped_column(String, nullable=True)

    # Time
    shift_date: Mapped[date] = mapped_column(Date, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False)
    start_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)
    billable_hours: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)

    # Rates snapshot
    internal_rate: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    external_rate: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    rate_used: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    applied_multipliers: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    rate_calculation_log_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("rate_calculation_log.rate_calculation_log_id", ondelete="SET NULL"),
        nullable=True,
    )

    # Unrounded: billable_hours * rate_used, rounded only at invoice level
    line_total: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)

    __table_args__ = (
        UniqueConstraint("invoice_id", "line_number", name="invoice_line_item_number_unique"),
        CheckConstraint("source_type IN ('shift', 'timesheet')", name="invoice_line_source_check"),
        CheckConstraint("billable_hours >= 0", name="invoice_line_hours_check"),
    )

    # Relationships
    invoice: Mapped[Invoice] = relationship(back_populates="line_items")


# ===== Double-billing guard =====


class BillingClaim(Base):
    """Marks a shift (or timesheet day) as billed for one invoice type.

    The unique key means a source can be claimed by only one in-flight or
    committed generation per invoice type. Cancelling the owning invoice
    deletes the claim so the source can be billed again.
    """

    __tablename__ = "billing_claim"

    billing_claim_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    source_type: Mapped[str] = mapped_column(String, nullable=False)
    source_id: Mapped[UUID] = mapped_column(nullable=False)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    invoice_type: Mapped[str] = mapped_column(String, nullable=False)
    billing_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("billing_period.billing_period_id", ondelete="RESTRICT"),
        nullable=False,
    )
    invoice_line_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("invoice_line_item.invoice_line_item_id", ondelete="CASCADE"),
        nullable=True,
    )
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "source_type",
            "source_id",
            "work_date",
            "invoice_type",
            name="billing_claim_source_unique",
        ),
        CheckConstraint("source_type IN ('shift', 'timesheet')", name="billing_claim_source_check"),
    )
