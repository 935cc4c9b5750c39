"""
PDC Ledger Module (``settlement_modules.pdc``).

Responsibility
--------------
Post-dated checks held against a lease: ``received -> cleared | bounced``,
append-only replacement, and the cleared credit the billing service
consumes.  A cleared check credits exactly one statement.
"""

from settlement_modules.pdc.models import CheckDetails, PDCStatus, PostDatedCheck
from settlement_modules.pdc.workflows import PDC_WORKFLOW

__all__ = [
    "CheckDetails",
    "PDCStatus",
    "PDC_WORKFLOW",
    "PostDatedCheck",
]
