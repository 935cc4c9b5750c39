"""
Module: settlement_services.queries
Responsibility:
    Read-only query surface over settlement state.  Returns frozen DTOs;
    never mutates.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.period import BillingPeriod
from settlement_kernel.exceptions import LeaseNotFoundError, StatementNotFoundError
from settlement_kernel.selectors.base import BaseSelector
from settlement_modules.billing.models import BillingStatement, Payment
from settlement_modules.billing.orm import BillingStatementModel, PaymentModel
from settlement_modules.lease.models import LeaseStatus
from settlement_modules.lease.orm import LeaseAgreementModel
from settlement_modules.pdc.models import PostDatedCheck
from settlement_modules.pdc.orm import PostDatedCheckModel
from settlement_modules.signature.models import LeaseSignature
from settlement_modules.signature.orm import LeaseSignatureModel


class SettlementQueries(BaseSelector[LeaseAgreementModel]):
    """Lookups for statements, lease status, checks and signatures."""

    def get_statement(self, billing_id: UUID) -> BillingStatement:
        statement = self.session.get(BillingStatementModel, billing_id)
        if statement is None:
            raise StatementNotFoundError(str(billing_id))
        return statement.to_dto()

    def get_statements_for_lease(self, lease_id: UUID) -> list[BillingStatement]:
        rows = self.session.execute(
            select(BillingStatementModel)
            .where(BillingStatementModel.lease_id == lease_id)
            .order_by(BillingStatementModel.period_start)
        ).scalars()
        return [row.to_dto() for row in rows]

    def get_lease_status(self, agreement_id: UUID) -> LeaseStatus:
        status = self.session.execute(
            select(LeaseAgreementModel.status).where(LeaseAgreementModel.id == agreement_id)
        ).scalar_one_or_none()
        if status is None:
            raise LeaseNotFoundError(str(agreement_id))
        return LeaseStatus(status)

    def get_pdcs_for_lease(
        self,
        lease_id: UUID,
        period: BillingPeriod | None = None,
    ) -> list[PostDatedCheck]:
        """All checks of a lease, replaced ones included, ordered by due date.

        With ``period``, only checks due within it.
        """
        stmt = select(PostDatedCheckModel).where(PostDatedCheckModel.lease_id == lease_id)
        if period is not None:
            stmt = stmt.where(
                PostDatedCheckModel.due_date >= period.start,
                PostDatedCheckModel.due_date <= period.end,
            )
        rows = self.session.execute(
            stmt.order_by(PostDatedCheckModel.due_date, PostDatedCheckModel.check_number)
        ).scalars()
        return [row.to_dto() for row in rows]

    def get_signatures(self, agreement_id: UUID) -> list[LeaseSignature]:
        """Every signature record of the lease, superseded ones included."""
        rows = self.session.execute(
            select(LeaseSignatureModel)
            .where(LeaseSignatureModel.agreement_id == agreement_id)
            .order_by(LeaseSignatureModel.role, LeaseSignatureModel.created_at)
        ).scalars()
        return [row.to_dto() for row in rows]

    def get_payments(self, billing_id: UUID) -> list[Payment]:
        rows = self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.billing_statement_id == billing_id)
            .order_by(PaymentModel.paid_at)
        ).scalars()
        return [row.to_dto() for row in rows]
