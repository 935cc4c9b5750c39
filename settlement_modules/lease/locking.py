"""Lease row lock shared by every lease-scoped state machine."""

from uuid import UUID

from sqlalchemy.orm import Session

from settlement_kernel.db.locking import lock_for_update
from settlement_kernel.exceptions import LeaseNotFoundError
from settlement_modules.lease.orm import LeaseAgreementModel


def lock_lease(session: Session, agreement_id: UUID) -> LeaseAgreementModel:
    """Lock the lease row for the rest of the current transaction.

    Raises:
        LeaseNotFoundError: If no such lease exists.
    """
    lease = lock_for_update(session, LeaseAgreementModel, agreement_id)
    if lease is None:
        raise LeaseNotFoundError(str(agreement_id))
    return lease
