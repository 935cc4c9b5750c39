"""
Lease Agreement Module (``settlement_modules.lease``).

Responsibility
--------------
The lease agreement record, its lifecycle workflow, lease setup and the
external lifecycle entry point.  The lease row is the serialization point
for every lease-scoped mutation (signatures, PDC binding, statements).
"""

from settlement_modules.lease.models import (
    BILLABLE_STATUSES,
    LeaseAgreement,
    LeaseStatus,
    LeaseTerms,
)
from settlement_modules.lease.workflows import LEASE_LIFECYCLE_WORKFLOW

__all__ = [
    "BILLABLE_STATUSES",
    "LEASE_LIFECYCLE_WORKFLOW",
    "LeaseAgreement",
    "LeaseStatus",
    "LeaseTerms",
]
