"""
PDC Ledger (``settlement_modules.pdc.service``).

Responsibility
--------------
Lifecycle of post-dated checks held against a lease: registration,
clearing, bouncing and replacement, plus the credit query the billing
service consumes.

Architecture position
---------------------
**Modules layer** -- leaf of the settlement engine.  The billing service
depends on this ledger for credit; clearing a check *into* a statement is
delegated back to the billing service so the draft total is re-derived in
the same transaction.

Invariants enforced
-------------------
* Every mutation holds the owning lease's row lock.
* A cleared check is bound to at most one statement; ``bind_to_statement``
  is the only code that writes ``billing_statement_id``.
* Checks are never deleted.  ``replace`` appends a new check and links the
  original through ``replaced_by_pdc_id``.

Failure modes
-------------
* ``InvalidCheckDetailsError`` for empty numbers/banks or non-positive amounts.
* ``DuplicateCheckError`` for a repeated (lease, bank, number).
* ``CheckNotFoundError`` / ``LeaseNotFoundError`` for unknown ids.
* ``InvalidTransitionError`` for a transition outside ``PDC_WORKFLOW``.
* ``AlreadyAppliedError`` when a bound check is bound again.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.period import BillingPeriod
from settlement_kernel.exceptions import (
    AlreadyAppliedError,
    CheckNotFoundError,
    DuplicateCheckError,
    InvalidCheckDetailsError,
    InvalidTransitionError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.notifications import (
    PDC_CLEARED,
    Notification,
    NotificationDispatcher,
    dispatch_after_commit,
)
from settlement_kernel.services.base import BaseService
from settlement_modules.lease.locking import lock_lease
from settlement_modules.lease.orm import LeaseAgreementModel
from settlement_modules.pdc.models import CheckDetails, PDCStatus, PostDatedCheck
from settlement_modules.pdc.orm import PostDatedCheckModel
from settlement_modules.pdc.workflows import PDC_WORKFLOW

logger = get_logger("modules.pdc.service")


class PDCLedger(BaseService[PostDatedCheckModel]):
    """
    Post-dated check ledger.

    Guarantees
    ----------
    * Public mutators own their ``UnitOfWork``.
    * ``available_credit`` and ``bind_to_statement`` run inside the caller's
      transaction and assume the caller holds the lease lock.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ):
        super().__init__(session, clock)
        self.dispatcher = dispatcher

    # =========================================================================
    # Mutations
    # =========================================================================

    def register_check(
        self,
        lease_id: UUID,
        details: CheckDetails,
        actor_id: UUID,
    ) -> PostDatedCheck:
        """Register a check in ``received``."""
        _validate_details(details)

        with LogContext.bind(lease_id=lease_id, actor_id=actor_id):
            with self.unit_of_work("register_check"):
                lock_lease(self.session, lease_id)
                check = self._insert_check(lease_id, details, actor_id)
                logger.info("pdc_registered", extra={
                    "pdc_id": str(check.id),
                    "check_number": check.check_number,
                    "bank_name": check.bank_name,
                    "amount": str(check.amount),
                    "due_date": check.due_date.isoformat(),
                })
        return check.to_dto()

    def mark_cleared(
        self,
        pdc_id: UUID,
        billing_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> PostDatedCheck:
        """
        Clear a check, optionally binding it to a draft statement.

        A check that is already cleared may still be bound once.  Binding a
        check that is already bound raises ``AlreadyAppliedError``.
        """
        with LogContext.bind(pdc_id=pdc_id, actor_id=actor_id):
            with self.unit_of_work("mark_cleared") as uow:
                lease, check = self._lock_check(pdc_id)

                if check.billing_statement_id is not None and billing_id is not None:
                    raise AlreadyAppliedError(
                        "pdc", str(check.id), bound_to=str(check.billing_statement_id)
                    )
                if check.replaced_by_pdc_id is not None:
                    raise InvalidTransitionError(
                        PDC_WORKFLOW.name, str(check.id), check.status, PDCStatus.CLEARED.value
                    )

                newly_cleared = check.status != PDCStatus.CLEARED.value
                if newly_cleared:
                    PDC_WORKFLOW.require(check.id, check.status, PDCStatus.CLEARED.value)
                    check.status = PDCStatus.CLEARED.value
                    check.cleared_at = self.clock.now()
                    check.updated_by_id = actor_id
                    self.session.flush()
                    logger.info("pdc_cleared", extra={
                        "lease_id": str(check.lease_id),
                        "amount": str(check.amount),
                    })
                elif billing_id is None:
                    PDC_WORKFLOW.require(check.id, check.status, PDCStatus.CLEARED.value)

                if billing_id is not None:
                    from settlement_modules.billing.service import BillingService

                    BillingService(self.session, self.clock, pdc_ledger=self).attach_pdc_credit(
                        lease, billing_id, check, actor_id
                    )

                if newly_cleared:
                    dispatch_after_commit(uow, self.dispatcher, Notification(
                        kind=PDC_CLEARED,
                        lease_id=lease.id,
                        recipient_id=lease.tenant_id,
                        payload={
                            "pdc_id": str(check.id),
                            "check_number": check.check_number,
                            "bank_name": check.bank_name,
                            "amount": str(check.amount),
                        },
                    ))
        return check.to_dto()

    def mark_bounced(self, pdc_id: UUID, actor_id: UUID | None = None) -> PostDatedCheck:
        """Bounce a ``received`` check."""
        with LogContext.bind(pdc_id=pdc_id, actor_id=actor_id):
            with self.unit_of_work("mark_bounced"):
                _, check = self._lock_check(pdc_id)
                PDC_WORKFLOW.require(check.id, check.status, PDCStatus.BOUNCED.value)
                check.status = PDCStatus.BOUNCED.value
                check.bounced_at = self.clock.now()
                check.updated_by_id = actor_id
                self.session.flush()
                logger.info("pdc_bounced", extra={
                    "lease_id": str(check.lease_id),
                    "amount": str(check.amount),
                })
        return check.to_dto()

    def replace(
        self,
        pdc_id: UUID,
        new_details: CheckDetails,
        actor_id: UUID,
    ) -> PostDatedCheck:
        """
        Register a replacement check and link the original to it.

        The original keeps its status.  Cleared checks and checks that were
        already replaced cannot be replaced.
        """
        _validate_details(new_details)

        with LogContext.bind(pdc_id=pdc_id, actor_id=actor_id):
            with self.unit_of_work("replace_check"):
                _, original = self._lock_check(pdc_id)
                if original.status == PDCStatus.CLEARED.value or original.replaced_by_pdc_id:
                    raise InvalidTransitionError(
                        PDC_WORKFLOW.name, str(original.id), original.status, "replaced"
                    )

                replacement = self._insert_check(original.lease_id, new_details, actor_id)
                original.replaced_by_pdc_id = replacement.id
                original.updated_by_id = actor_id
                self.session.flush()

                logger.info("pdc_replaced", extra={
                    "lease_id": str(original.lease_id),
                    "original_status": original.status,
                    "replacement_pdc_id": str(replacement.id),
                    "amount": str(replacement.amount),
                })
        return replacement.to_dto()

    # =========================================================================
    # Credit primitives (caller's transaction, lease already locked)
    # =========================================================================

    def available_credit(
        self, lease_id: UUID, period: BillingPeriod
    ) -> list[PostDatedCheckModel]:
        """Cleared, unbound checks for ``lease_id`` due within ``period``."""
        return list(self.session.execute(
            select(PostDatedCheckModel)
            .where(
                PostDatedCheckModel.lease_id == lease_id,
                PostDatedCheckModel.status == PDCStatus.CLEARED.value,
                PostDatedCheckModel.billing_statement_id.is_(None),
                PostDatedCheckModel.due_date >= period.start,
                PostDatedCheckModel.due_date <= period.end,
            )
            .order_by(PostDatedCheckModel.due_date, PostDatedCheckModel.check_number)
        ).scalars())

    def bind_to_statement(self, check: PostDatedCheckModel, billing_id: UUID) -> None:
        """The single binding primitive.

        Raises:
            AlreadyAppliedError: If the check is bound to any statement.
            InvalidTransitionError: If the check is not cleared.
        """
        if check.billing_statement_id is not None:
            raise AlreadyAppliedError(
                "pdc", str(check.id), bound_to=str(check.billing_statement_id)
            )
        if check.status != PDCStatus.CLEARED.value:
            raise InvalidTransitionError(
                PDC_WORKFLOW.name, str(check.id), check.status, "bound"
            )
        check.billing_statement_id = billing_id
        logger.info("pdc_bound", extra={
            "pdc_id": str(check.id),
            "billing_id": str(billing_id),
            "amount": str(check.amount),
        })

    def get_locked(self, lease_id: UUID, pdc_id: UUID) -> PostDatedCheckModel:
        """Load a check of ``lease_id`` inside the caller's locked transaction."""
        check = self.session.execute(
            select(PostDatedCheckModel)
            .where(PostDatedCheckModel.id == pdc_id, PostDatedCheckModel.lease_id == lease_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if check is None:
            raise CheckNotFoundError(str(pdc_id))
        return check

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lock_check(self, pdc_id: UUID) -> tuple[LeaseAgreementModel, PostDatedCheckModel]:
        lease_id = self.session.execute(
            select(PostDatedCheckModel.lease_id).where(PostDatedCheckModel.id == pdc_id)
        ).scalar_one_or_none()
        if lease_id is None:
            raise CheckNotFoundError(str(pdc_id))
        lease = lock_lease(self.session, lease_id)
        return lease, self.get_locked(lease_id, pdc_id)

    def _insert_check(
        self, lease_id: UUID, details: CheckDetails, actor_id: UUID
    ) -> PostDatedCheckModel:
        bank_name = details.bank_name.strip()
        check_number = details.check_number.strip()
        duplicate = self.session.execute(
            select(PostDatedCheckModel.id).where(
                PostDatedCheckModel.lease_id == lease_id,
                PostDatedCheckModel.bank_name == bank_name,
                PostDatedCheckModel.check_number == check_number,
            )
        ).first()
        if duplicate is not None:
            raise DuplicateCheckError(str(lease_id), bank_name, check_number)

        check = PostDatedCheckModel(
            lease_id=lease_id,
            check_number=check_number,
            bank_name=bank_name,
            amount=details.amount,
            due_date=details.due_date,
            notes=details.notes,
            status=PDCStatus.RECEIVED.value,
            created_by_id=actor_id,
        )
        self.session.add(check)
        self.session.flush()
        return check


def _validate_details(details: CheckDetails) -> None:
    if not details.check_number or not details.check_number.strip():
        raise InvalidCheckDetailsError("check_number", "must not be empty")
    if not details.bank_name or not details.bank_name.strip():
        raise InvalidCheckDetailsError("bank_name", "must not be empty")
    if details.amount <= 0:
        raise InvalidCheckDetailsError("amount", f"must be positive, got {details.amount}")
