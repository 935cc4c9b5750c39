"""
Module: settlement_modules.signature.orm
Responsibility:
    SQLAlchemy ORM persistence model for lease signature records.

Invariants enforced:
    - Append/supersede only: a new OTP request inserts a new row and sets
      ``superseded_by_id`` on the previous current row for that role.
    - The current record for (agreement, role) is the one with
      ``superseded_by_id IS NULL``.
    - ``otp_code`` is stored as an ``EncryptedField`` with an explicit
      ``is_encrypted`` tag.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase, UUIDString
from settlement_kernel.utils.encryption import EncryptedField, EncryptedFieldType


class LeaseSignatureModel(TrackedBase):
    """
    One OTP signature attempt for one role of a lease.

    Guarantees:
        - ``role`` is landlord or tenant; ``status`` is pending or signed.
        - ``signed_at`` and verifier metadata are set exactly when signed.
    """

    __tablename__ = "lease_signatures"

    __table_args__ = (
        Index("idx_signature_agreement_role", "agreement_id", "role"),
    )

    agreement_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("lease_agreements.id"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    otp_code: Mapped[EncryptedField] = mapped_column(EncryptedFieldType(), nullable=False)
    otp_expires_at: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="pending")
    signed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verifier_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verifier_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    failed_attempts: Mapped[int] = mapped_column(Integer, default=0)
    superseded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    superseded_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("lease_signatures.id"),
        nullable=True,
    )

    def to_dto(self):
        from settlement_modules.signature.models import (
            LeaseSignature,
            SignatureRole,
            SignatureStatus,
        )

        return LeaseSignature(
            id=self.id,
            agreement_id=self.agreement_id,
            role=SignatureRole(self.role),
            status=SignatureStatus(self.status),
            otp_expires_at=self.otp_expires_at,
            failed_attempts=self.failed_attempts,
            signed_at=self.signed_at,
            verifier_ip=self.verifier_ip,
            verifier_agent=self.verifier_agent,
            superseded_at=self.superseded_at,
            superseded_by_id=self.superseded_by_id,
        )

    def __repr__(self) -> str:
        return f"<LeaseSignatureModel {self.agreement_id} {self.role} ({self.status})>"
