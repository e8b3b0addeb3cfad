"""Rate card, multiplier, calendar and rate audit models."""

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
)
from sqlalchemy.orm import Mapped, mapped_column

from locum_billing.models.base import Base, JSONType, TimestampMixin, UpdatedAtMixin, utcnow


class RoleBaseRate(Base, TimestampMixin, UpdatedAtMixin):
    """Base pay/bill rate card for a role.

    Rows are never deleted, only deactivated, because rate calculation logs
    and invoice lines refer back to the role name.
    """

    __tablename__ = "role_base_rate"

    role_base_rate_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    role: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    worker_pay_rate_min: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    worker_pay_rate_max: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    client_bill_rate_min: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    client_bill_rate_max: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    markup_percent_min: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    markup_percent_max: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "worker_pay_rate_min <= worker_pay_rate_max", name="role_base_rate_pay_range_check"
        ),
        CheckConstraint(
            "client_bill_rate_min <= client_bill_rate_max", name="role_base_rate_bill_range_check"
        ),
        CheckConstraint(
            "markup_percent_min IS NULL OR markup_percent_max IS NULL "
            "OR markup_percent_min <= markup_percent_max",
            name="role_base_rate_markup_range_check",
        ),
    )


class RateMultiplier(Base, TimestampMixin, UpdatedAtMixin):
    """Named conditional multiplier (night_shift, weekend, bank_holiday, overtime)."""

    __tablename__ = "rate_multiplier"

    rate_multiplier_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    # Higher priority resolves first
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (CheckConstraint("multiplier > 0", name="rate_multiplier_positive"),)


class BankHoliday(Base, TimestampMixin):
    """Bank holiday, either a single date or a recurring pattern."""

    __tablename__ = "bank_holiday"

    bank_holiday_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    # None applies to every region
    region: Mapped[str | None] = mapped_column(String, nullable=True, default="england-and-wales")
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_pattern: Mapped[str | None] = mapped_column(String, nullable=True)


class ShiftTimeWindow(Base, TimestampMixin, UpdatedAtMixin):
    """Clock-time window defining a shift type (day/night/evening)."""

    __tablename__ = "shift_time_window"

    shift_time_window_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    shift_type: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    start_time: Mapped[str] = mapped_column(String(8), nullable=False)  # 'HH:MM'
    end_time: Mapped[str] = mapped_column(String(8), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class RateCalculationLog(Base):
    """Append-only snapshot of one rate computation.

    Recomputing a shift writes a new row; existing rows are never updated.
    """

    __tablename__ = "rate_calculation_log"

    rate_calculation_log_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    shift_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("shift.shift_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    timesheet_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("timesheet.timesheet_id", ondelete="SET NULL"),
        nullable=True,
    )
    role: Mapped[str] = mapped_column(String, nullable=False)
    shift_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    shift_type: Mapped[str | None] = mapped_column(String, nullable=True)
    duration_hours: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)
    base_internal_rate: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    base_external_rate: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    applied_multipliers: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    final_internal_rate: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    final_external_rate: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    total_internal_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_external_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("duration_hours > 0", name="rate_calculation_log_duration_positive"),
    )
