"""
Billing Module (``settlement_modules.billing``).

Responsibility
--------------
Computes a unit's periodic statement from rent, utility consumption,
additional charges and discounts, advance-payment credit, post-dated check
credit and late fees, and reconciles confirmed payments against it.

Pure math lives in ``calculations``; ``BillingService`` and
``PaymentReconciliationService`` own persistence and locking.
"""

from settlement_modules.billing.models import (
    BillingStatement,
    ChargeLine,
    MeterReading,
    Payment,
    StatementBreakdown,
    StatementStatus,
)
from settlement_modules.billing.workflows import STATEMENT_WORKFLOW

__all__ = [
    "BillingStatement",
    "ChargeLine",
    "MeterReading",
    "Payment",
    "STATEMENT_WORKFLOW",
    "StatementBreakdown",
    "StatementStatus",
]
