"""
Payment Reconciliation (``settlement_modules.billing.payments``).

Records confirmed payments from the payment collaborator and settles the
statement they pay for.

Invariants enforced
-------------------
* Idempotent on ``reference``: a replay with the same statement and
  amount returns the recorded payment; a replay with different values
  raises ``PaymentReferenceConflictError``.
* The reference check runs under the lease lock, so two deliveries of the
  same confirmation cannot both insert.
* A statement becomes ``paid`` once its payments cover the total.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_kernel.db.types import round_money
from settlement_kernel.domain.clock import Clock
from settlement_kernel.exceptions import (
    InvalidAmountError,
    PaymentReferenceConflictError,
    StatementNotFoundError,
    ValidationError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.notifications import (
    PAYMENT_RECEIVED,
    Notification,
    NotificationDispatcher,
    dispatch_after_commit,
)
from settlement_kernel.services.base import BaseService
from settlement_modules.billing.models import Payment, PaymentStatus, StatementStatus
from settlement_modules.billing.orm import BillingStatementModel, PaymentModel
from settlement_modules.billing.workflows import STATEMENT_WORKFLOW
from settlement_modules.lease.locking import lock_lease

logger = get_logger("modules.billing.payments")

# Recorded as creator of payments confirmed by the gateway.
GATEWAY_ACTOR_ID = UUID("00000000-0000-0000-0000-00000000c0de")


class PaymentReconciliationService(BaseService[PaymentModel]):
    """Entry point for the payment collaborator."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ):
        super().__init__(session, clock)
        self.dispatcher = dispatcher

    def reconcile_payment(
        self,
        billing_id: UUID,
        amount: Decimal,
        reference: str,
        paid_at: datetime | None = None,
        actor_id: UUID | None = None,
    ) -> Payment:
        """Record a confirmed payment for ``billing_id`` (idempotent on reference)."""
        if amount <= 0:
            raise InvalidAmountError("payment.amount", amount)
        reference = (reference or "").strip()
        if not reference:
            raise ValidationError("Payment reference must not be empty")
        paid_at = paid_at or self.clock.now()
        actor_id = actor_id or GATEWAY_ACTOR_ID

        with LogContext.bind(billing_id=billing_id, actor_id=actor_id):
            with self.unit_of_work("reconcile_payment") as uow:
                lease_id = self.session.execute(
                    select(BillingStatementModel.lease_id)
                    .where(BillingStatementModel.id == billing_id)
                ).scalar_one_or_none()
                if lease_id is None:
                    raise StatementNotFoundError(str(billing_id))
                lease = lock_lease(self.session, lease_id)

                existing = self.session.execute(
                    select(PaymentModel).where(PaymentModel.reference == reference)
                ).scalar_one_or_none()
                if existing is not None:
                    if (
                        existing.billing_statement_id == billing_id
                        and round_money(existing.amount) == round_money(amount)
                    ):
                        logger.info("payment_replay_ignored", extra={
                            "reference": reference,
                            "payment_id": str(existing.id),
                        })
                        return existing.to_dto()
                    raise PaymentReferenceConflictError(
                        reference, str(existing.billing_statement_id), existing.amount
                    )

                statement = self.session.execute(
                    select(BillingStatementModel)
                    .where(BillingStatementModel.id == billing_id)
                    .execution_options(populate_existing=True)
                ).scalar_one()
                if statement.status == StatementStatus.DRAFT.value:
                    STATEMENT_WORKFLOW.require(
                        statement.id, statement.status, StatementStatus.PAID.value
                    )

                payment = PaymentModel(
                    billing_statement_id=statement.id,
                    lease_id=lease.id,
                    amount=amount,
                    reference=reference,
                    status=PaymentStatus.CONFIRMED.value,
                    paid_at=paid_at,
                    created_by_id=actor_id,
                )
                self.session.add(payment)

                statement.amount_paid = round_money(statement.amount_paid + amount)
                statement.updated_by_id = actor_id
                settled = (
                    statement.status != StatementStatus.PAID.value
                    and statement.amount_paid >= statement.total_amount_due
                )
                if settled:
                    STATEMENT_WORKFLOW.require(
                        statement.id, statement.status, StatementStatus.PAID.value
                    )
                    statement.status = StatementStatus.PAID.value
                    statement.paid_at = paid_at
                self.session.flush()

                logger.info("payment_reconciled", extra={
                    "reference": reference,
                    "payment_id": str(payment.id),
                    "amount": str(amount),
                    "amount_paid": str(statement.amount_paid),
                    "total_amount_due": str(statement.total_amount_due),
                    "status": statement.status,
                })
                dispatch_after_commit(uow, self.dispatcher, Notification(
                    kind=PAYMENT_RECEIVED,
                    lease_id=lease.id,
                    recipient_id=lease.landlord_id,
                    payload={
                        "billing_id": str(statement.id),
                        "reference": reference,
                        "amount": str(amount),
                        "settled": settled,
                    },
                ))
        return payment.to_dto()
