"""Practices, staff, shifts and timesheets.

These rows are owned by the scheduling side of the platform. The billing
engine only reads them; the one thing it records against a shift is a
billing claim (see ``models.invoicing.BillingClaim``).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from locum_billing.models.base import Base, JSONType, TimestampMixin

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class Practice(Base, TimestampMixin):
    """Client facility (GP practice or care home) that is invoiced."""

    __tablename__ = "practice"

    practice_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    facility_type: Mapped[str | None] = mapped_column(String, nullable=True)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    postcode: Mapped[str] = mapped_column(String, nullable=False)
    billing_contact_email: Mapped[str | None] = mapped_column(String, nullable=True)
    vat_number: Mapped[str | None] = mapped_column(String, nullable=True)
    region: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_terms_days: Mapped[int | None] = mapped_column(Integer, nullable=True)


class StaffMember(Base, TimestampMixin):
    """Locum or agency worker; the supplier on self-billing invoices."""

    __tablename__ = "staff_member"

    staff_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    postcode: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    payroll_reference: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    ni_number: Mapped[str | None] = mapped_column(String, nullable=True)
    vat_registered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    vat_number: Mapped[str | None] = mapped_column(String, nullable=True)


class Shift(Base, TimestampMixin):
    """A posted shift; billable once completed by an assigned staff member."""

    __tablename__ = "shift"

    shift_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    shift_ref: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    practice_id: Mapped[UUID] = mapped_column(
        ForeignKey("practice.practice_id", ondelete="RESTRICT"),
        nullable=False,
    )
    staff_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("staff_member.staff_id", ondelete="SET NULL"),
        nullable=True,
    )
    role: Mapped[str] = mapped_column(String, nullable=False)
    shift_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(8), nullable=False)
    end_time: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="open")

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'pending', 'confirmed', 'declined', 'completed', 'cancelled')",
            name="shift_status_check",
        ),
    )


class Timesheet(Base, TimestampMixin):
    """Weekly timesheet with hours per weekday."""

    __tablename__ = "timesheet"

    timesheet_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    staff_id: Mapped[UUID] = mapped_column(
        ForeignKey("staff_member.staff_id", ondelete="RESTRICT"),
        nullable=False,
    )
    practice_id: Mapped[UUID] = mapped_column(
        ForeignKey("practice.practice_id", ondelete="RESTRICT"),
        nullable=False,
    )
    week_start: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    week_end: Mapped[date] = mapped_column(Date, nullable=False)
    # {"monday": "8", "tuesday": "7.5", ...}
    daily_hours: Mapped[dict[str, str]] = mapped_column(JSONType, nullable=False, default=dict)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")

    __table_args__ = (
        CheckConstraint("week_end >= week_start", name="timesheet_dates_check"),
        CheckConstraint(
            "status IN ('draft', 'pending_manager_approval', 'approved', 'rejected')",
            name="timesheet_status_check",
        ),
    )
