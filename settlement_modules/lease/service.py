"""
Lease Agreement Service (``settlement_modules.lease.service``).

Responsibility
--------------
Lease setup and the external lifecycle entry point.  Creates agreements in
``draft`` and applies the terminal transitions (``expired``, ``completed``,
``cancelled``) requested by the lifecycle scheduler.  Activation is owned
by the signature state machine, not by this service.

Invariants enforced
-------------------
* Each public method owns its transaction (``UnitOfWork``).
* Lifecycle changes take the lease row lock and are checked against
  ``LEASE_LIFECYCLE_WORKFLOW``.
* Monetary inputs are ``Decimal``; rent must be positive, deposit and
  advance must not be negative.

Failure modes
-------------
* ``InvalidPeriodError`` / ``InvalidAmountError`` on bad terms.
* ``LeaseNotFoundError`` for an unknown agreement.
* ``InvalidTransitionError`` for a transition the workflow does not allow.
* ``LeaseNotTransitionableError`` when expiring before the end date.
* ``ValidationError`` for an unknown status string.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock
from settlement_kernel.exceptions import (
    InvalidAmountError,
    InvalidPeriodError,
    LeaseNotFoundError,
    LeaseNotTransitionableError,
    ValidationError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.services.base import BaseService
from settlement_modules.lease.locking import lock_lease
from settlement_modules.lease.models import LeaseAgreement, LeaseStatus, LeaseTerms
from settlement_modules.lease.orm import LeaseAgreementModel
from settlement_modules.lease.workflows import LEASE_LIFECYCLE_WORKFLOW, LIFECYCLE_TARGETS

logger = get_logger("modules.lease.service")


class LeaseAgreementService(BaseService[LeaseAgreementModel]):
    """Lease setup and lifecycle transitions."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def create_agreement(self, terms: LeaseTerms, actor_id: UUID) -> LeaseAgreement:
        """Create a lease agreement in ``draft``."""
        _validate_terms(terms)

        with self.unit_of_work("create_agreement"):
            lease = LeaseAgreementModel(
                unit_id=terms.unit_id,
                property_id=terms.property_id,
                tenant_id=terms.tenant_id,
                landlord_id=terms.landlord_id,
                start_date=terms.start_date,
                end_date=terms.end_date,
                rent_amount=terms.rent_amount,
                security_deposit_amount=terms.security_deposit_amount,
                advance_payment_amount=terms.advance_payment_amount,
                advance_payment_consumed=False,
                status=LeaseStatus.DRAFT.value,
                created_by_id=actor_id,
            )
            self.session.add(lease)
            self.session.flush()

            logger.info("lease_created", extra={
                "lease_id": str(lease.id),
                "unit_id": str(terms.unit_id),
                "rent_amount": str(terms.rent_amount),
                "advance_payment_amount": str(terms.advance_payment_amount),
            })

        return lease.to_dto()

    def get_agreement(self, agreement_id: UUID) -> LeaseAgreement:
        lease = self.session.get(LeaseAgreementModel, agreement_id)
        if lease is None:
            raise LeaseNotFoundError(str(agreement_id))
        return lease.to_dto()

    def apply_lifecycle_status(
        self,
        agreement_id: UUID,
        status: LeaseStatus | str,
        actor_id: UUID,
        as_of: date | None = None,
    ) -> LeaseAgreement:
        """
        Entry point for the external lifecycle scheduler.

        Moves a lease to ``expired``, ``completed`` or ``cancelled``.
        ``expired`` is only accepted once ``as_of`` is past the end date.
        """
        target = _parse_status(status)
        if target.value not in LIFECYCLE_TARGETS:
            raise LeaseNotTransitionableError(
                str(agreement_id), target.value, "lifecycle_update"
            )
        as_of = as_of or self.clock.today()

        with LogContext.bind(lease_id=agreement_id, actor_id=actor_id):
            with self.unit_of_work("apply_lifecycle_status"):
                lease = lock_lease(self.session, agreement_id)
                LEASE_LIFECYCLE_WORKFLOW.require(lease.id, lease.status, target.value)
                if target == LeaseStatus.EXPIRED and as_of <= lease.end_date:
                    raise LeaseNotTransitionableError(
                        str(agreement_id), lease.status, "expire"
                    )

                previous = lease.status
                lease.status = target.value
                lease.updated_by_id = actor_id
                self.session.flush()

                logger.info("lease_lifecycle_changed", extra={
                    "from_status": previous,
                    "to_status": target.value,
                    "as_of": as_of.isoformat(),
                })

        return lease.to_dto()


def _parse_status(status: LeaseStatus | str) -> LeaseStatus:
    try:
        return LeaseStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown lease status: {status!r}") from None


def _validate_terms(terms: LeaseTerms) -> None:
    if terms.end_date <= terms.start_date:
        raise InvalidPeriodError(terms.start_date, terms.end_date, "lease must end after it starts")
    if terms.rent_amount <= 0:
        raise InvalidAmountError("rent_amount", terms.rent_amount)
    for field_name in ("security_deposit_amount", "advance_payment_amount"):
        amount: Decimal = getattr(terms, field_name)
        if amount < 0:
            raise InvalidAmountError(field_name, amount)
