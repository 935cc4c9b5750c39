"""
Signature Module (``settlement_modules.signature``).

Responsibility
--------------
Dual-party OTP signature protocol.  The landlord and the tenant each verify
a time-bound, single-use code; the second successful verification moves
the lease from ``pending_signature`` to ``active``.
"""

from settlement_modules.signature.models import (
    LeaseSignature,
    SignatureRequest,
    SignatureResult,
    SignatureRole,
    SignatureStatus,
)
from settlement_modules.signature.workflows import SIGNATURE_WORKFLOW

__all__ = [
    "LeaseSignature",
    "SIGNATURE_WORKFLOW",
    "SignatureRequest",
    "SignatureResult",
    "SignatureRole",
    "SignatureStatus",
]
