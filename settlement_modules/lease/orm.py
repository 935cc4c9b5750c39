"""
Module: settlement_modules.lease.orm
Responsibility:
    SQLAlchemy ORM persistence model for lease agreements.  Maps the frozen
    ``LeaseAgreement`` DTO to the ``lease_agreements`` table.

Architecture position:
    **Modules layer** -- ORM model inheriting from ``TrackedBase``.  The
    lease row is the lock every lease-scoped mutation serializes on.

Invariants enforced:
    - All monetary fields use Decimal (Numeric(38,9) via TrackedBase).
    - ``status`` stored as String(50).
    - ``advance_payment_consumed`` only ever flips False -> True.

Failure modes:
    - IntegrityError on NOT NULL violations.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase, UUIDString


class LeaseAgreementModel(TrackedBase):
    """
    A lease agreement between a landlord and a tenant for one unit.

    Guarantees:
        - ``status`` is one of: draft, pending_signature, active, expired,
          completed, cancelled.
        - ``activated_at`` is set exactly when status becomes active.
    """

    __tablename__ = "lease_agreements"

    __table_args__ = (
        Index("idx_lease_agreement_unit", "unit_id"),
        Index("idx_lease_agreement_tenant", "tenant_id"),
        Index("idx_lease_agreement_status", "status"),
    )

    unit_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    property_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    landlord_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    rent_amount: Mapped[Decimal] = mapped_column(nullable=False)
    security_deposit_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    advance_payment_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    advance_payment_consumed: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(50), default="draft")
    activated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self):
        from settlement_modules.lease.models import LeaseAgreement, LeaseStatus

        return LeaseAgreement(
            id=self.id,
            unit_id=self.unit_id,
            property_id=self.property_id,
            tenant_id=self.tenant_id,
            landlord_id=self.landlord_id,
            start_date=self.start_date,
            end_date=self.end_date,
            rent_amount=self.rent_amount,
            security_deposit_amount=self.security_deposit_amount,
            advance_payment_amount=self.advance_payment_amount,
            advance_payment_consumed=self.advance_payment_consumed,
            status=LeaseStatus(self.status),
            activated_at=self.activated_at,
        )

    def party_for(self, role: str) -> UUID:
        """The landlord or tenant id for a signature role."""
        if role == "landlord":
            return self.landlord_id
        if role == "tenant":
            return self.tenant_id
        raise ValueError(f"Unknown signature role: {role!r}")

    def __repr__(self) -> str:
        return f"<LeaseAgreementModel {self.id} ({self.status})>"
