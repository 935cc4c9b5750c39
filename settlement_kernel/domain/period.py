"""
Billing period value object.

A period is an inclusive calendar-date range, normally one calendar month.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date

from settlement_kernel.exceptions import InvalidPeriodError


@dataclass(frozen=True)
class BillingPeriod:
    """Inclusive date range ``start..end``."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise InvalidPeriodError(self.start, self.end)

    @classmethod
    def month_of(cls, day: date) -> BillingPeriod:
        """The calendar month containing ``day``."""
        last = calendar.monthrange(day.year, day.month)[1]
        return cls(day.replace(day=1), day.replace(day=last))

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def overlap_days(self, start: date, end: date) -> int:
        """Days of ``start..end`` (inclusive) that fall inside this period."""
        lo = max(self.start, start)
        hi = min(self.end, end)
        if lo > hi:
            return 0
        return (hi - lo).days + 1

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"
