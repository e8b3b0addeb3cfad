"""Type definitions for the rate and invoice calculation pipeline."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class InvoiceType(str, Enum):
    """Invoice audiences."""

    CLIENT = "client"  # billed to the practice at external (bill) rates
    PAYROLL = "payroll"  # self-billed on behalf of staff at internal (pay) rates


class SourceType(str, Enum):
    """Where a billable item comes from."""

    SHIFT = "shift"
    TIMESHEET = "timesheet"


@dataclass(frozen=True)
class ShiftInput:
    """What the rate calculator needs to know about a shift."""

    role: str
    work_date: date
    start_time: str
    end_time: str
    region: str | None = None
    shift_id: UUID | None = None


@dataclass(frozen=True)
class AppliedMultiplier:
    """A multiplier that matched a shift, kept for the audit trail."""

    name: str
    factor: Decimal
    reason: str
    priority: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "multiplier": str(self.factor),
            "reason": self.reason,
            "priority": self.priority,
        }


@dataclass(frozen=True)
class RateCalculationResult:
    """Outcome of pricing one shift (or one timesheet day)."""

    role: str
    work_date: date
    start_time: str | None
    end_time: str | None
    shift_type: str | None
    duration_hours: Decimal
    base_internal_rate: Decimal
    base_external_rate: Decimal
    applied_multipliers: tuple[AppliedMultiplier, ...]
    final_internal_rate: Decimal
    final_external_rate: Decimal
    total_internal_cost: Decimal
    total_external_cost: Decimal
    warnings: tuple[str, ...] = ()

    @property
    def multiplier_names(self) -> list[str]:
        return [m.name for m in self.applied_multipliers]

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "role": self.role,
            "work_date": self.work_date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "shift_type": self.shift_type,
            "duration_hours": str(self.duration_hours),
            "base_internal_rate": str(self.base_internal_rate),
            "base_external_rate": str(self.base_external_rate),
            "applied_multipliers": [m.to_dict() for m in self.applied_multipliers],
            "final_internal_rate": str(self.final_internal_rate),
            "final_external_rate": str(self.final_external_rate),
            "total_internal_cost": str(self.total_internal_cost),
            "total_external_cost": str(self.total_external_cost),
        }

    @property
    def fingerprint(self) -> str:
        """SHA-256 of the canonical representation."""
        json_str = json.dumps(self.to_canonical_dict(), sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()


@dataclass
class AggregatedLine:
    """A billable item priced and ready to become an invoice line."""

    source_type: SourceType
    source_id: UUID
    work_date: date
    practice_id: UUID
    staff_id: UUID
    staff_name: str
    location_name: str
    calculation: RateCalculationResult
    billable_hours: Decimal
    rate_used: Decimal
    line_total: Decimal  # unrounded
    shift_ref: str | None = None
    location_type: str | None = None
    staff_payroll_reference: str | None = None
    staff_ni_number: str | None = None

    @property
    def claim_key(self) -> tuple[str, UUID, date]:
        return (self.source_type.value, self.source_id, self.work_date)

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "source_type": self.source_type.value,
            "source_id": str(self.source_id),
            "work_date": self.work_date.isoformat(),
            "billable_hours": str(self.billable_hours),
            "rate_used": str(self.rate_used),
            "line_total": str(self.line_total),
            "calculation": self.calculation.fingerprint,
        }


@dataclass
class RecipientGroup:
    """All lines for one invoice recipient (practice or staff member)."""

    recipient_id: UUID
    recipient_name: str
    lines: list[AggregatedLine] = field(default_factory=list)

    @property
    def billable_hours(self) -> Decimal:
        return sum((line.billable_hours for line in self.lines), Decimal("0"))

    @property
    def line_total(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))


@dataclass(frozen=True)
class LineError:
    """A billable item that could not be priced."""

    source_type: SourceType
    source_id: UUID
    work_date: date
    error_type: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_type": self.source_type.value,
            "source_id": str(self.source_id),
            "work_date": self.work_date.isoformat(),
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass
class AggregationResult:
    """Priced, grouped, not-yet-invoiced items for one period and invoice type."""

    billing_period_id: UUID
    invoice_type: InvoiceType
    groups: dict[UUID, RecipientGroup] = field(default_factory=dict)
    errors: list[LineError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def line_count(self) -> int:
        return sum(len(g.lines) for g in self.groups.values())

    def all_lines(self) -> list[AggregatedLine]:
        return [line for group in self.groups.values() for line in group.lines]

    def ordered_groups(self) -> list[RecipientGroup]:
        """Groups in invoice numbering order (recipient name, then id)."""
        return sorted(self.groups.values(), key=lambda g: (g.recipient_name, str(g.recipient_id)))


@dataclass(frozen=True)
class InvoiceTotals:
    """Invoice-level money, rounded once."""

    subtotal: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total: Decimal
