"""
Billing Domain Models (``settlement_modules.billing.models``).

Responsibility
--------------
Frozen value objects for meter readings, charge lines, the statement
breakdown, statements and payments.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``StatementBreakdown.to_json()`` / ``from_json()`` are exact inverses;
  amounts are carried as strings in JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class StatementStatus(str, Enum):
    """Billing statement states."""
    DRAFT = "draft"
    UNPAID = "unpaid"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentStatus(str, Enum):
    CONFIRMED = "confirmed"


@dataclass(frozen=True)
class MeterReading:
    """Previous and current reading of one metered utility."""
    utility: str
    previous: Decimal
    current: Decimal


@dataclass(frozen=True)
class ChargeLine:
    """An additional charge or a discount."""
    type: str
    amount: Decimal
    description: str | None = None

    def to_json(self) -> dict[str, Any]:
        return {"type": self.type, "amount": str(self.amount), "description": self.description}

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ChargeLine:
        return cls(
            type=data["type"],
            amount=Decimal(data["amount"]),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class UtilityLine:
    """One priced utility line of a statement."""
    utility: str
    previous: Decimal
    current: Decimal
    consumption: Decimal
    rate: Decimal
    amount: Decimal
    rolled_over: bool = False

    def to_json(self) -> dict[str, Any]:
        return {
            "utility": self.utility,
            "previous": str(self.previous),
            "current": str(self.current),
            "consumption": str(self.consumption),
            "rate": str(self.rate),
            "amount": str(self.amount),
            "rolled_over": self.rolled_over,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> UtilityLine:
        return cls(
            utility=data["utility"],
            previous=Decimal(data["previous"]),
            current=Decimal(data["current"]),
            consumption=Decimal(data["consumption"]),
            rate=Decimal(data["rate"]),
            amount=Decimal(data["amount"]),
            rolled_over=bool(data["rolled_over"]),
        )


@dataclass(frozen=True)
class PdcCredit:
    """A check credit folded into a statement."""
    pdc_id: str
    amount: Decimal

    def to_json(self) -> dict[str, Any]:
        return {"pdc_id": self.pdc_id, "amount": str(self.amount)}

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> PdcCredit:
        return cls(pdc_id=data["pdc_id"], amount=Decimal(data["amount"]))


@dataclass(frozen=True)
class StatementBreakdown:
    """
    Everything a statement total is derived from.

    ``total_amount_due`` and ``unapplied_credit`` are outputs; every other
    field is an input.  Recomputing from the inputs must reproduce them.
    """
    period_start: date
    period_end: date
    monthly_rent: Decimal
    rent: Decimal
    utilities: tuple[UtilityLine, ...]
    utility_subtotal: Decimal
    additional_charges: tuple[ChargeLine, ...]
    discounts: tuple[ChargeLine, ...]
    charge_subtotal: Decimal
    late_fee: Decimal
    overdue_balance: Decimal
    advance_credit: Decimal
    pdc_credits: tuple[PdcCredit, ...]
    pdc_credit: Decimal
    unapplied_credit: Decimal
    total_amount_due: Decimal

    @property
    def advance_credit_applied(self) -> bool:
        return self.advance_credit > 0

    def to_json(self) -> dict[str, Any]:
        return {
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "monthly_rent": str(self.monthly_rent),
            "rent": str(self.rent),
            "utilities": [u.to_json() for u in self.utilities],
            "utility_subtotal": str(self.utility_subtotal),
            "additional_charges": [c.to_json() for c in self.additional_charges],
            "discounts": [d.to_json() for d in self.discounts],
            "charge_subtotal": str(self.charge_subtotal),
            "late_fee": str(self.late_fee),
            "overdue_balance": str(self.overdue_balance),
            "advance_credit": str(self.advance_credit),
            "pdc_credits": [p.to_json() for p in self.pdc_credits],
            "pdc_credit": str(self.pdc_credit),
            "unapplied_credit": str(self.unapplied_credit),
            "total_amount_due": str(self.total_amount_due),
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> StatementBreakdown:
        return cls(
            period_start=date.fromisoformat(data["period_start"]),
            period_end=date.fromisoformat(data["period_end"]),
            monthly_rent=Decimal(data["monthly_rent"]),
            rent=Decimal(data["rent"]),
            utilities=tuple(UtilityLine.from_json(u) for u in data["utilities"]),
            utility_subtotal=Decimal(data["utility_subtotal"]),
            additional_charges=tuple(ChargeLine.from_json(c) for c in data["additional_charges"]),
            discounts=tuple(ChargeLine.from_json(d) for d in data["discounts"]),
            charge_subtotal=Decimal(data["charge_subtotal"]),
            late_fee=Decimal(data["late_fee"]),
            overdue_balance=Decimal(data["overdue_balance"]),
            advance_credit=Decimal(data["advance_credit"]),
            pdc_credits=tuple(PdcCredit.from_json(p) for p in data["pdc_credits"]),
            pdc_credit=Decimal(data["pdc_credit"]),
            unapplied_credit=Decimal(data["unapplied_credit"]),
            total_amount_due=Decimal(data["total_amount_due"]),
        )


@dataclass(frozen=True)
class StatementInputs:
    """Inputs of ``compute_breakdown``."""
    monthly_rent: Decimal
    lease_start: date
    lease_end: date
    period_start: date
    period_end: date
    meter_readings: tuple[MeterReading, ...] = ()
    rates: dict[str, Decimal] = field(default_factory=dict)
    meter_rollover: dict[str, Decimal] = field(default_factory=dict)
    additional_charges: tuple[ChargeLine, ...] = ()
    discounts: tuple[ChargeLine, ...] = ()
    prorate: bool = False
    late_fee: Decimal = Decimal("0")
    overdue_balance: Decimal = Decimal("0")
    advance_credit: Decimal = Decimal("0")
    pdc_credits: tuple[PdcCredit, ...] = ()


@dataclass(frozen=True)
class BillingStatement:
    """A persisted billing statement."""
    id: UUID
    lease_id: UUID
    period_start: date
    period_end: date
    due_date: date
    status: StatementStatus
    breakdown: StatementBreakdown
    breakdown_hash: str
    total_amount_due: Decimal
    amount_paid: Decimal = Decimal("0")
    paid_at: datetime | None = None

    @property
    def balance(self) -> Decimal:
        return max(self.total_amount_due - self.amount_paid, Decimal("0"))


@dataclass(frozen=True)
class Payment:
    """A confirmed payment recorded against a statement."""
    id: UUID
    billing_statement_id: UUID
    lease_id: UUID
    amount: Decimal
    reference: str
    status: PaymentStatus
    paid_at: datetime
