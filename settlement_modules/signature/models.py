"""
Lease Signature Domain Models (``settlement_modules.signature.models``).

Frozen value objects returned by the authorization state machine.  None of
them carries the OTP code.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class SignatureRole(str, Enum):
    LANDLORD = "landlord"
    TENANT = "tenant"

    @property
    def counterpart(self) -> "SignatureRole":
        return SignatureRole.TENANT if self is SignatureRole.LANDLORD else SignatureRole.LANDLORD


class SignatureStatus(str, Enum):
    PENDING = "pending"
    SIGNED = "signed"


@dataclass(frozen=True)
class SignatureRequest:
    """Result of requesting an OTP for one role."""
    signature_id: UUID
    agreement_id: UUID
    role: SignatureRole
    otp_expires_at: datetime
    superseded_id: UUID | None = None


@dataclass(frozen=True)
class SignatureResult:
    """Result of a successful OTP verification."""
    agreement_id: UUID
    role: SignatureRole
    signed_at: datetime
    lease_status: str
    lease_activated: bool


@dataclass(frozen=True)
class LeaseSignature:
    """Audit view of one signature record."""
    id: UUID
    agreement_id: UUID
    role: SignatureRole
    status: SignatureStatus
    otp_expires_at: datetime
    failed_attempts: int
    signed_at: datetime | None = None
    verifier_ip: str | None = None
    verifier_agent: str | None = None
    superseded_at: datetime | None = None
    superseded_by_id: UUID | None = None

    @property
    def is_current(self) -> bool:
        return self.superseded_by_id is None
