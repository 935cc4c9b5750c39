"""
Billing Pure Calculation Functions.

Statement math with zero I/O:
- Utility consumption and pricing (with optional meter rollover)
- Charge and discount netting
- Rent for a period (with optional daily proration)
- Late fee from a property policy
- Statement total and the full breakdown
- Per-unit rate derivation from a utility provider's bill
- Period and due-date helpers

Every money figure passes through ``round_money`` (0.01, ROUND_HALF_UP).
"""

from __future__ import annotations

import dataclasses
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Sequence

from settlement_config.schema import LateFeePolicy, LateFeeType
from settlement_kernel.db.types import ZERO, round_money
from settlement_kernel.domain.period import BillingPeriod
from settlement_kernel.exceptions import (
    ConfigurationMissingError,
    InvalidAmountError,
    InvalidReadingError,
    RateMissingError,
    ValidationError,
)
from settlement_modules.billing.models import (
    ChargeLine,
    MeterReading,
    PdcCredit,
    StatementBreakdown,
    StatementInputs,
    UtilityLine,
)

RATE_QUANTUM = Decimal("0.0001")
MAX_DUE_DAY = 28


def utility_consumption(
    reading: MeterReading,
    rollover_max: Decimal | None = None,
) -> Decimal:
    """
    Units consumed between two readings.

    A current reading below the previous one is a meter reset.  Without a
    rollover ceiling it is rejected; with one, the meter is assumed to have
    wrapped once: ``(ceiling - previous) + current``.
    """
    if reading.previous < 0 or reading.current < 0:
        raise InvalidReadingError(reading.utility, reading.previous, reading.current)
    if reading.current >= reading.previous:
        return reading.current - reading.previous
    if rollover_max is None or reading.previous > rollover_max:
        raise InvalidReadingError(reading.utility, reading.previous, reading.current)
    return (rollover_max - reading.previous) + reading.current


def utility_lines(
    readings: Sequence[MeterReading],
    rates: Mapping[str, Decimal],
    rollovers: Mapping[str, Decimal] | None = None,
) -> tuple[UtilityLine, ...]:
    """Price each reading; one line per utility, rounded to 0.01."""
    rollovers = rollovers or {}
    lines = []
    seen: set[str] = set()
    for reading in readings:
        if reading.utility in seen:
            raise InvalidReadingError(reading.utility, reading.previous, reading.current)
        seen.add(reading.utility)
        if reading.utility not in rates:
            raise RateMissingError(reading.utility)
        rate = rates[reading.utility]
        consumption = utility_consumption(reading, rollovers.get(reading.utility))
        lines.append(UtilityLine(
            utility=reading.utility,
            previous=reading.previous,
            current=reading.current,
            consumption=consumption,
            rate=rate,
            amount=round_money(consumption * rate),
            rolled_over=reading.current < reading.previous,
        ))
    return tuple(lines)


def utility_subtotal(
    readings: Sequence[MeterReading],
    rates: Mapping[str, Decimal],
    rollovers: Mapping[str, Decimal] | None = None,
) -> Decimal:
    """Sum of priced utility lines."""
    return sum((line.amount for line in utility_lines(readings, rates, rollovers)), ZERO)


def charge_subtotal(
    charges: Sequence[ChargeLine],
    discounts: Sequence[ChargeLine],
) -> Decimal:
    """Charges minus discounts, never below zero."""
    for line in (*charges, *discounts):
        if line.amount < 0:
            raise InvalidAmountError(line.type, line.amount)
    total_charges = sum((c.amount for c in charges), ZERO)
    total_discounts = sum((d.amount for d in discounts), ZERO)
    return round_money(max(total_charges - total_discounts, ZERO))


def rent_for_period(
    rent: Decimal,
    lease_start: date,
    lease_end: date,
    period: BillingPeriod,
    prorate: bool = False,
) -> Decimal:
    """
    Rent billed for ``period``.

    Full monthly rent unless ``prorate`` is set and the lease covers only
    part of the period, in which case rent is scaled by covered calendar
    days over period days.
    """
    if not prorate:
        return round_money(rent)
    covered = period.overlap_days(lease_start, lease_end)
    if covered >= period.days:
        return round_money(rent)
    return round_money(rent * Decimal(covered) / Decimal(period.days))


def late_fee_amount(
    policy: LateFeePolicy,
    overdue_balance: Decimal,
    days_late: int = 1,
) -> Decimal:
    """
    Late fee for an overdue balance.

    Zero when nothing is overdue.  ``fixed`` charges the amount once,
    ``daily`` charges it per day past the grace period (at least one day),
    ``percentage`` charges that share of the overdue balance.
    """
    if overdue_balance <= 0 or policy.fee_type == LateFeeType.NONE:
        return ZERO
    if policy.fee_type == LateFeeType.FIXED:
        return round_money(policy.amount)
    if policy.fee_type == LateFeeType.DAILY:
        return round_money(policy.amount * max(days_late, 1))
    return round_money(overdue_balance * policy.amount / Decimal("100"))


def net_amount_due(
    rent: Decimal,
    charges: Decimal,
    advance_credit: Decimal,
    late_fee: Decimal,
    pdc_credit: Decimal,
    utilities: Decimal,
) -> tuple[Decimal, Decimal]:
    """
    Returns (total_amount_due, unapplied_credit).

    rent + charges - advance + late fee - pdc + utilities, clamped at zero.
    The clamped excess is returned as unapplied credit.
    """
    net = round_money(rent + charges - advance_credit + late_fee - pdc_credit + utilities)
    if net < 0:
        return ZERO, -net
    return net, ZERO


def total_amount_due(breakdown: StatementBreakdown) -> Decimal:
    """Re-derive the total from a breakdown's recorded inputs."""
    utilities = sum((line.amount for line in breakdown.utilities), ZERO)
    pdc = sum((credit.amount for credit in breakdown.pdc_credits), ZERO)
    charges = charge_subtotal(breakdown.additional_charges, breakdown.discounts)
    total, _ = net_amount_due(
        breakdown.rent,
        charges,
        breakdown.advance_credit,
        breakdown.late_fee,
        pdc,
        utilities,
    )
    return total


def compute_breakdown(inputs: StatementInputs) -> StatementBreakdown:
    """
    Assemble a statement breakdown.

    Deterministic: identical inputs produce an identical breakdown.
    """
    period = BillingPeriod(inputs.period_start, inputs.period_end)
    lines = utility_lines(inputs.meter_readings, inputs.rates, inputs.meter_rollover)
    utilities = sum((line.amount for line in lines), ZERO)
    charges = charge_subtotal(inputs.additional_charges, inputs.discounts)
    rent = rent_for_period(
        inputs.monthly_rent, inputs.lease_start, inputs.lease_end, period, inputs.prorate
    )
    advance = round_money(inputs.advance_credit)
    late_fee = round_money(inputs.late_fee)
    pdc = round_money(sum((c.amount for c in inputs.pdc_credits), ZERO))
    total, unapplied = net_amount_due(rent, charges, advance, late_fee, pdc, utilities)

    return StatementBreakdown(
        period_start=period.start,
        period_end=period.end,
        monthly_rent=round_money(inputs.monthly_rent),
        rent=rent,
        utilities=lines,
        utility_subtotal=utilities,
        additional_charges=tuple(inputs.additional_charges),
        discounts=tuple(inputs.discounts),
        charge_subtotal=charges,
        late_fee=late_fee,
        overdue_balance=round_money(inputs.overdue_balance),
        advance_credit=advance,
        pdc_credits=tuple(inputs.pdc_credits),
        pdc_credit=pdc,
        unapplied_credit=unapplied,
        total_amount_due=total,
    )


def add_pdc_credit(breakdown: StatementBreakdown, credit: PdcCredit) -> StatementBreakdown:
    """A copy of ``breakdown`` with one more check credit and a new total."""
    credits = (*breakdown.pdc_credits, credit)
    pdc = round_money(sum((c.amount for c in credits), ZERO))
    total, unapplied = net_amount_due(
        breakdown.rent,
        breakdown.charge_subtotal,
        breakdown.advance_credit,
        breakdown.late_fee,
        pdc,
        breakdown.utility_subtotal,
    )
    return dataclasses.replace(
        breakdown,
        pdc_credits=credits,
        pdc_credit=pdc,
        unapplied_credit=unapplied,
        total_amount_due=total,
    )


def derive_rate(total_bill: Decimal, total_consumption: Decimal) -> Decimal:
    """
    Per-unit rate from a utility provider's bill for the whole property.

    Raises:
        ConfigurationMissingError: If there is no consumption to spread the
            bill over.
    """
    if total_consumption <= 0:
        raise ConfigurationMissingError(
            f"Cannot derive a rate from zero consumption (bill {total_bill})"
        )
    if total_bill < 0:
        raise InvalidAmountError("total_bill", total_bill)
    return (total_bill / total_consumption).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)


def billing_period_for(day: date) -> BillingPeriod:
    """The calendar-month billing period containing ``day``."""
    return BillingPeriod.month_of(day)


def due_date_for(period: BillingPeriod, due_day: int) -> date:
    """
    Due date of a statement: ``due_day`` of the period's first month, or of
    the following month when that day falls before the period starts.
    """
    if not 1 <= due_day <= MAX_DUE_DAY:
        raise ValidationError(f"due_day must be within 1..{MAX_DUE_DAY}, got {due_day!r}")
    due = period.start.replace(day=due_day)
    if due < period.start:
        year, month = (due.year + 1, 1) if due.month == 12 else (due.year, due.month + 1)
        due = date(year, month, due_day)
    return due
