"""
Module: settlement_modules.billing.orm
Responsibility:
    SQLAlchemy ORM persistence models for billing statements and the
    payments reconciled against them.

Invariants enforced:
    - (lease_id, period_start) is unique (uq_billing_lease_period): one
      statement per lease per period.
    - ``breakdown`` is frozen once the statement leaves ``draft``;
      ``breakdown_hash`` is the SHA-256 of its canonical JSON.
    - ``payments.reference`` is unique (uq_payment_reference).
    - Payment rows are insert-only.

Failure modes:
    - IntegrityError on duplicate period or payment reference.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase, UUIDString


class BillingStatementModel(TrackedBase):
    """
    A periodic billing statement for a lease.

    Guarantees:
        - ``status`` is one of: draft, unpaid, paid, overdue.
        - Summary columns mirror the breakdown and are kept for querying.
    """

    __tablename__ = "billing_statements"

    __table_args__ = (
        UniqueConstraint("lease_id", "period_start", name="uq_billing_lease_period"),
        Index("idx_billing_status_due", "status", "due_date"),
    )

    lease_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("lease_agreements.id"),
        nullable=False,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    breakdown: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    breakdown_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    utility_subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    charge_subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    late_fee: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    advance_credit_applied: Mapped[bool] = mapped_column(Boolean, default=False)
    advance_credit_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    pdc_credit_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount_due: Mapped[Decimal] = mapped_column(nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(50), default="unpaid")
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self):
        from settlement_modules.billing.models import (
            BillingStatement,
            StatementBreakdown,
            StatementStatus,
        )

        return BillingStatement(
            id=self.id,
            lease_id=self.lease_id,
            period_start=self.period_start,
            period_end=self.period_end,
            due_date=self.due_date,
            status=StatementStatus(self.status),
            breakdown=StatementBreakdown.from_json(self.breakdown),
            breakdown_hash=self.breakdown_hash,
            total_amount_due=self.total_amount_due,
            amount_paid=self.amount_paid,
            paid_at=self.paid_at,
        )

    def __repr__(self) -> str:
        return (
            f"<BillingStatementModel {self.lease_id} {self.period_start} "
            f"({self.status}, {self.total_amount_due})>"
        )


class PaymentModel(TrackedBase):
    """
    A confirmed payment from the payment collaborator.

    Guarantees:
        - ``reference`` is unique across all statements.
        - Never updated after insert.
    """

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("reference", name="uq_payment_reference"),
        Index("idx_payment_statement", "billing_statement_id"),
    )

    billing_statement_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("billing_statements.id"),
        nullable=False,
    )
    lease_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("lease_agreements.id"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    reference: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="confirmed")
    paid_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self):
        from settlement_modules.billing.models import Payment, PaymentStatus

        return Payment(
            id=self.id,
            billing_statement_id=self.billing_statement_id,
            lease_id=self.lease_id,
            amount=self.amount,
            reference=self.reference,
            status=PaymentStatus(self.status),
            paid_at=self.paid_at,
        )

    def __repr__(self) -> str:
        return f"<PaymentModel {self.reference} {self.amount}>"
