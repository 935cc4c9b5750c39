"""
Post-Dated Check Domain Models (``settlement_modules.pdc.models``).

Frozen value objects for post-dated checks.  Pure data, ZERO I/O.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class PDCStatus(str, Enum):
    """Per-check states.  ``cleared`` and ``bounced`` are terminal."""
    RECEIVED = "received"
    CLEARED = "cleared"
    BOUNCED = "bounced"


@dataclass(frozen=True)
class CheckDetails:
    """Input for registering or replacing a check."""
    check_number: str
    bank_name: str
    amount: Decimal
    due_date: date
    notes: str | None = None


@dataclass(frozen=True)
class PostDatedCheck:
    """A post-dated check held against a lease."""
    id: UUID
    lease_id: UUID
    check_number: str
    bank_name: str
    amount: Decimal
    due_date: date
    status: PDCStatus
    notes: str | None = None
    billing_statement_id: UUID | None = None
    replaced_by_pdc_id: UUID | None = None
    cleared_at: datetime | None = None
    bounced_at: datetime | None = None

    @property
    def is_bound(self) -> bool:
        return self.billing_statement_id is not None
