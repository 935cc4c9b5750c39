"""
Lease Agreement Domain Models (``settlement_modules.lease.models``).

Frozen dataclass value objects for the lease agreement and its lifecycle
status.  Pure data, ZERO I/O.  Monetary fields use ``Decimal``.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class LeaseStatus(str, Enum):
    """Lease lifecycle states."""
    DRAFT = "draft"
    PENDING_SIGNATURE = "pending_signature"
    ACTIVE = "active"
    EXPIRED = "expired"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses under which a unit is billed.
BILLABLE_STATUSES = frozenset(
    {LeaseStatus.ACTIVE, LeaseStatus.EXPIRED, LeaseStatus.COMPLETED}
)

# Statuses from which a signature may still be requested.
SIGNABLE_STATUSES = frozenset({LeaseStatus.DRAFT, LeaseStatus.PENDING_SIGNATURE})


@dataclass(frozen=True)
class LeaseTerms:
    """Input for creating a lease agreement."""
    unit_id: UUID
    property_id: UUID
    tenant_id: UUID
    landlord_id: UUID
    start_date: date
    end_date: date
    rent_amount: Decimal
    security_deposit_amount: Decimal = Decimal("0")
    advance_payment_amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class LeaseAgreement:
    """A lease agreement."""
    id: UUID
    unit_id: UUID
    property_id: UUID
    tenant_id: UUID
    landlord_id: UUID
    start_date: date
    end_date: date
    rent_amount: Decimal
    security_deposit_amount: Decimal
    advance_payment_amount: Decimal
    advance_payment_consumed: bool
    status: LeaseStatus
    activated_at: datetime | None = None

    @property
    def is_billable(self) -> bool:
        return self.status in BILLABLE_STATUSES
