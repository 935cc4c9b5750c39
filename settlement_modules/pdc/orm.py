"""
Module: settlement_modules.pdc.orm
Responsibility:
    SQLAlchemy ORM persistence model for post-dated checks.

Invariants enforced:
    - (lease_id, bank_name, check_number) is unique (uq_pdc_check).
    - Rows are never deleted.  A bad check is superseded through
      ``replaced_by_pdc_id``.
    - ``billing_statement_id`` is written once; it is the single record of
      which statement consumed the check's credit.

Failure modes:
    - IntegrityError on duplicate check numbers (raced registrations).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase, UUIDString


class PostDatedCheckModel(TrackedBase):
    """
    A post-dated check held against a lease.

    Guarantees:
        - ``status`` is one of: received, cleared, bounced.
        - ``cleared_at`` / ``bounced_at`` are set on the matching transition.
    """

    __tablename__ = "post_dated_checks"

    __table_args__ = (
        UniqueConstraint("lease_id", "bank_name", "check_number", name="uq_pdc_check"),
        Index("idx_pdc_lease_due", "lease_id", "due_date"),
        Index("idx_pdc_statement", "billing_statement_id"),
    )

    lease_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("lease_agreements.id"),
        nullable=False,
    )
    check_number: Mapped[str] = mapped_column(String(100), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="received")
    billing_statement_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("billing_statements.id"),
        nullable=True,
    )
    replaced_by_pdc_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("post_dated_checks.id"),
        nullable=True,
    )
    cleared_at: Mapped[datetime | None] = mapped_column(nullable=True)
    bounced_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self):
        from settlement_modules.pdc.models import PDCStatus, PostDatedCheck

        return PostDatedCheck(
            id=self.id,
            lease_id=self.lease_id,
            check_number=self.check_number,
            bank_name=self.bank_name,
            amount=self.amount,
            due_date=self.due_date,
            status=PDCStatus(self.status),
            notes=self.notes,
            billing_statement_id=self.billing_statement_id,
            replaced_by_pdc_id=self.replaced_by_pdc_id,
            cleared_at=self.cleared_at,
            bounced_at=self.bounced_at,
        )

    def __repr__(self) -> str:
        return f"<PostDatedCheckModel {self.bank_name}/{self.check_number} ({self.status})>"
