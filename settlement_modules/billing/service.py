"""
Billing Service (``settlement_modules.billing.service``).

Responsibility
--------------
Computes, persists and maintains periodic billing statements.  Pure math
lives in ``calculations.py``; this service resolves the inputs that depend
on persisted state (advance credit, check credit, late fee) and writes the
statement, the advance flag and the check bindings in one transaction.

Architecture position
---------------------
**Modules layer**.  Depends on the PDC ledger for check credit and reads
lease status as an external input.

Invariants enforced
-------------------
* Every mutation holds the lease row lock for its whole transaction.
* One statement per lease per period.
* ``advance_payment_consumed`` flips at most once, in the same transaction
  as the statement that consumes it.
* A check is bound to at most one statement, in the same transaction as
  the statement that consumes it.
* ``breakdown_hash`` is the hash of the stored breakdown; the breakdown
  changes only while the statement is ``draft``.

Failure modes
-------------
* ``LeaseNotFoundError`` / ``StatementNotFoundError`` for unknown ids.
* ``LeaseNotTransitionableError`` when the lease is not billable.
* ``StatementAlreadyExistsError`` for a second statement in a period.
* ``AlreadyAppliedError`` for consumed advance or check credit.
* ``RateMissingError`` / ``InvalidReadingError`` from the calculations.
* ``StatementFrozenError`` when changing a non-draft breakdown.
* ``StatementIntegrityError`` from ``verify_statement``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Mapping, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_config.policy_source import PolicySource
from settlement_config.schema import LateFeePolicy
from settlement_kernel.db.types import ZERO, round_money
from settlement_kernel.db.unit_of_work import UnitOfWork
from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.period import BillingPeriod
from settlement_kernel.exceptions import (
    AlreadyAppliedError,
    ConfigurationMissingError,
    InvalidAmountError,
    LeaseNotFoundError,
    LeaseNotTransitionableError,
    StatementAlreadyExistsError,
    StatementFrozenError,
    StatementIntegrityError,
    StatementNotFoundError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.notifications import (
    STATEMENT_ISSUED,
    Notification,
    NotificationDispatcher,
    dispatch_after_commit,
)
from settlement_kernel.services.base import BaseService
from settlement_kernel.utils.hashing import hash_payload
from settlement_modules.billing.calculations import (
    add_pdc_credit,
    compute_breakdown,
    due_date_for,
    late_fee_amount,
    total_amount_due,
)
from settlement_modules.billing.models import (
    BillingStatement,
    ChargeLine,
    MeterReading,
    PdcCredit,
    StatementBreakdown,
    StatementInputs,
    StatementStatus,
)
from settlement_modules.billing.orm import BillingStatementModel
from settlement_modules.billing.workflows import STATEMENT_WORKFLOW
from settlement_modules.lease.locking import lock_lease
from settlement_modules.lease.models import BILLABLE_STATUSES, LeaseStatus
from settlement_modules.lease.orm import LeaseAgreementModel
from settlement_modules.pdc.orm import PostDatedCheckModel
from settlement_modules.pdc.service import PDCLedger

logger = get_logger("modules.billing.service")

DEFAULT_DUE_DAY = 5


class BillingService(BaseService[BillingStatementModel]):
    """
    Statement computation and maintenance.

    Contract
    --------
    * Public methods own their ``UnitOfWork``.
    * ``attach_pdc_credit`` runs inside the caller's transaction; the PDC
      ledger uses it when a check is cleared straight into a statement.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        pdc_ledger: PDCLedger | None = None,
        policy_source: PolicySource | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ):
        super().__init__(session, clock)
        self.pdc_ledger = pdc_ledger or PDCLedger(session, self.clock)
        self.policy_source = policy_source
        self.dispatcher = dispatcher

    # =========================================================================
    # Statement computation
    # =========================================================================

    def compute_statement(
        self,
        lease_id: UUID,
        period: BillingPeriod,
        meter_readings: Sequence[MeterReading],
        rates: Mapping[str, Decimal],
        charges: Sequence[ChargeLine],
        discounts: Sequence[ChargeLine],
        late_fee_policy: LateFeePolicy,
        actor_id: UUID,
        apply_advance_credit: bool | None = None,
        pdc_ids: Sequence[UUID] | None = None,
        as_draft: bool = False,
        meter_rollover: Mapping[str, Decimal] | None = None,
        prorate: bool = False,
        due_day: int = DEFAULT_DUE_DAY,
        as_of: date | None = None,
    ) -> BillingStatement:
        """
        Compute and persist the statement for ``lease_id`` and ``period``.

        ``apply_advance_credit``: ``None`` applies the advance automatically
        in the period containing the lease start; ``True`` forces it (and
        fails if it was consumed); ``False`` never applies it.

        ``pdc_ids``: ``None`` applies every cleared, unbound check due in
        the period; an explicit list applies exactly those checks, whatever
        their due date, so a check that cleared after its own period was
        billed can still be credited to a later statement.

        Explicitly requested credit is resolved before the duplicate-period
        check, so re-requesting consumed credit reports ``AlreadyAppliedError``.

        ``as_of`` is the date late fees are judged against (default: today).
        """
        as_of = as_of or self.clock.today()
        due_date = due_date_for(period, due_day)

        with LogContext.bind(lease_id=lease_id, actor_id=actor_id):
            with self.unit_of_work("compute_statement") as uow:
                lease = lock_lease(self.session, lease_id)
                if LeaseStatus(lease.status) not in BILLABLE_STATUSES:
                    raise LeaseNotTransitionableError(
                        str(lease_id), lease.status, "compute_statement"
                    )

                advance = self._resolve_advance_credit(lease, period, apply_advance_credit)
                checks = self._resolve_checks(lease, period, pdc_ids)

                existing = self.session.execute(
                    select(BillingStatementModel.id).where(
                        BillingStatementModel.lease_id == lease_id,
                        BillingStatementModel.period_start == period.start,
                    )
                ).scalar_one_or_none()
                if existing is not None:
                    raise StatementAlreadyExistsError(str(lease_id), period.start, str(existing))

                overdue_balance, days_late = self._overdue_balance(
                    lease, period, late_fee_policy, as_of
                )
                late_fee = late_fee_amount(late_fee_policy, overdue_balance, days_late)

                breakdown = compute_breakdown(StatementInputs(
                    monthly_rent=lease.rent_amount,
                    lease_start=lease.start_date,
                    lease_end=lease.end_date,
                    period_start=period.start,
                    period_end=period.end,
                    meter_readings=tuple(meter_readings),
                    rates=dict(rates),
                    meter_rollover=dict(meter_rollover or {}),
                    additional_charges=tuple(charges),
                    discounts=tuple(discounts),
                    prorate=prorate,
                    late_fee=late_fee,
                    overdue_balance=overdue_balance,
                    advance_credit=advance,
                    pdc_credits=tuple(PdcCredit(str(c.id), round_money(c.amount)) for c in checks),
                ))

                statement = BillingStatementModel(
                    lease_id=lease.id,
                    period_start=period.start,
                    period_end=period.end,
                    due_date=due_date,
                    status=StatementStatus.DRAFT.value,
                    amount_paid=ZERO,
                    created_by_id=actor_id,
                )
                _write_breakdown(statement, breakdown)
                self.session.add(statement)
                self.session.flush()

                if breakdown.advance_credit_applied:
                    lease.advance_payment_consumed = True
                    lease.updated_by_id = actor_id
                for check in checks:
                    self.pdc_ledger.bind_to_statement(check, statement.id)
                if not as_draft:
                    self._issue(uow, lease, statement, actor_id)
                self.session.flush()

                logger.info("statement_created", extra={
                    "billing_id": str(statement.id),
                    "period_start": period.start.isoformat(),
                    "status": statement.status,
                    "total_amount_due": str(breakdown.total_amount_due),
                    "advance_credit": str(breakdown.advance_credit),
                    "pdc_credit": str(breakdown.pdc_credit),
                    "late_fee": str(breakdown.late_fee),
                    "unapplied_credit": str(breakdown.unapplied_credit),
                    "breakdown_hash": statement.breakdown_hash,
                })

        return statement.to_dto()

    def compute_statement_for_property(
        self,
        lease_id: UUID,
        period: BillingPeriod,
        meter_readings: Sequence[MeterReading],
        actor_id: UUID,
        charges: Sequence[ChargeLine] = (),
        discounts: Sequence[ChargeLine] = (),
        **kwargs,
    ) -> BillingStatement:
        """
        ``compute_statement`` with rates, late-fee rule, rollover ceilings,
        proration and due day taken from the property's billing policy.
        Association dues in the policy become an additional charge line.
        """
        if self.policy_source is None:
            raise ConfigurationMissingError("BillingService has no policy source")
        lease = self.session.get(LeaseAgreementModel, lease_id)
        if lease is None:
            raise LeaseNotFoundError(str(lease_id))
        policy = self.policy_source.get(str(lease.property_id))

        all_charges = list(charges)
        if policy.association_dues > 0:
            all_charges.append(ChargeLine("association_dues", policy.association_dues))

        return self.compute_statement(
            lease_id=lease_id,
            period=period,
            meter_readings=meter_readings,
            rates=policy.rates,
            charges=all_charges,
            discounts=discounts,
            late_fee_policy=policy.late_fee,
            actor_id=actor_id,
            meter_rollover=policy.meter_rollover,
            prorate=policy.prorate_partial_periods,
            due_day=policy.billing_due_day,
            **kwargs,
        )

    # =========================================================================
    # Draft maintenance and issue
    # =========================================================================

    def issue_statement(self, billing_id: UUID, actor_id: UUID | None = None) -> BillingStatement:
        """``draft -> unpaid``.  The breakdown is frozen from here on."""
        with LogContext.bind(billing_id=billing_id, actor_id=actor_id):
            with self.unit_of_work("issue_statement") as uow:
                lease, statement = self._lock_statement(billing_id)
                STATEMENT_WORKFLOW.require(statement.id, statement.status, StatementStatus.UNPAID.value)
                self._issue(uow, lease, statement, actor_id)
                self.session.flush()
        return statement.to_dto()

    def apply_pdc_credit(
        self,
        billing_id: UUID,
        pdc_id: UUID,
        actor_id: UUID | None = None,
    ) -> BillingStatement:
        """Bind a cleared check to a draft statement and re-derive its total."""
        with LogContext.bind(billing_id=billing_id, pdc_id=pdc_id, actor_id=actor_id):
            with self.unit_of_work("apply_pdc_credit"):
                lease, statement = self._lock_statement(billing_id)
                check = self.pdc_ledger.get_locked(lease.id, pdc_id)
                self.attach_pdc_credit(lease, statement.id, check, actor_id)
        return statement.to_dto()

    def attach_pdc_credit(
        self,
        lease: LeaseAgreementModel,
        billing_id: UUID,
        check: PostDatedCheckModel,
        actor_id: UUID | None = None,
    ) -> BillingStatementModel:
        """
        Bind ``check`` to the draft statement ``billing_id`` of ``lease``.

        Caller holds the lease lock and owns the transaction.
        """
        statement = self._statement_of_lease(lease.id, billing_id)
        if statement.status != StatementStatus.DRAFT.value:
            raise StatementFrozenError(str(billing_id), statement.status)

        self.pdc_ledger.bind_to_statement(check, statement.id)
        breakdown = add_pdc_credit(
            StatementBreakdown.from_json(statement.breakdown),
            PdcCredit(str(check.id), round_money(check.amount)),
        )
        _write_breakdown(statement, breakdown)
        statement.updated_by_id = actor_id
        self.session.flush()

        logger.info("statement_pdc_credit_applied", extra={
            "billing_id": str(statement.id),
            "pdc_id": str(check.id),
            "pdc_credit": str(breakdown.pdc_credit),
            "total_amount_due": str(breakdown.total_amount_due),
        })
        return statement

    # =========================================================================
    # Sweeps and verification
    # =========================================================================

    def mark_overdue(self, as_of: date, actor_id: UUID | None = None) -> list[BillingStatement]:
        """``unpaid -> overdue`` for every statement due before ``as_of``."""
        with self.unit_of_work("mark_overdue"):
            candidates = self.session.execute(
                select(BillingStatementModel.id, BillingStatementModel.lease_id)
                .where(
                    BillingStatementModel.status == StatementStatus.UNPAID.value,
                    BillingStatementModel.due_date < as_of,
                )
            ).all()

            changed: list[BillingStatementModel] = []
            for lease_id in sorted({row.lease_id for row in candidates}, key=str):
                lock_lease(self.session, lease_id)
            for row in candidates:
                statement = self._statement_of_lease(row.lease_id, row.id)
                if statement.status != StatementStatus.UNPAID.value:
                    continue
                STATEMENT_WORKFLOW.require(statement.id, statement.status, StatementStatus.OVERDUE.value)
                statement.status = StatementStatus.OVERDUE.value
                statement.updated_by_id = actor_id
                changed.append(statement)
            self.session.flush()

            logger.info("statements_marked_overdue", extra={
                "as_of": as_of.isoformat(),
                "count": len(changed),
            })
        return [s.to_dto() for s in changed]

    def verify_statement(self, billing_id: UUID) -> BillingStatement:
        """
        Re-derive total and hash from the stored breakdown.

        Raises:
            StatementIntegrityError: On any mismatch.
        """
        statement = self.session.get(BillingStatementModel, billing_id)
        if statement is None:
            raise StatementNotFoundError(str(billing_id))

        breakdown = StatementBreakdown.from_json(statement.breakdown)
        derived_total = total_amount_due(breakdown)
        derived_hash = hash_payload(statement.breakdown)
        stored_total = round_money(statement.total_amount_due)

        if (
            derived_hash != statement.breakdown_hash
            or derived_total != stored_total
            or derived_total != breakdown.total_amount_due
        ):
            logger.error("statement_integrity_failure", extra={
                "billing_id": str(billing_id),
                "stored_total": str(stored_total),
                "derived_total": str(derived_total),
                "stored_hash": statement.breakdown_hash,
                "derived_hash": derived_hash,
            })
            raise StatementIntegrityError(
                str(billing_id), stored_total, derived_total,
                statement.breakdown_hash, derived_hash,
            )
        return statement.to_dto()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _resolve_advance_credit(
        self,
        lease: LeaseAgreementModel,
        period: BillingPeriod,
        requested: bool | None,
    ) -> Decimal:
        if requested is False:
            return ZERO
        if requested is True:
            if lease.advance_payment_consumed:
                consumer = self.session.execute(
                    select(BillingStatementModel.id).where(
                        BillingStatementModel.lease_id == lease.id,
                        BillingStatementModel.advance_credit_applied.is_(True),
                    )
                ).scalar_one_or_none()
                raise AlreadyAppliedError(
                    "advance", str(lease.id),
                    bound_to=str(consumer) if consumer is not None else None,
                )
            if lease.advance_payment_amount <= 0:
                raise InvalidAmountError("advance_payment_amount", lease.advance_payment_amount)
            return lease.rent_amount

        if (
            not lease.advance_payment_consumed
            and lease.advance_payment_amount > 0
            and period.contains(lease.start_date)
        ):
            return lease.rent_amount
        return ZERO

    def _resolve_checks(
        self,
        lease: LeaseAgreementModel,
        period: BillingPeriod,
        pdc_ids: Sequence[UUID] | None,
    ) -> list[PostDatedCheckModel]:
        if pdc_ids is None:
            return self.pdc_ledger.available_credit(lease.id, period)

        checks = []
        for pdc_id in dict.fromkeys(pdc_ids):
            check = self.pdc_ledger.get_locked(lease.id, pdc_id)
            if check.billing_statement_id is not None:
                raise AlreadyAppliedError(
                    "pdc", str(check.id), bound_to=str(check.billing_statement_id)
                )
            checks.append(check)
        return checks

    def _overdue_balance(
        self,
        lease: LeaseAgreementModel,
        period: BillingPeriod,
        policy: LateFeePolicy,
        as_of: date,
    ) -> tuple[Decimal, int]:
        """Outstanding balance of prior statements overdue past grace."""
        overdue = self.session.execute(
            select(BillingStatementModel).where(
                BillingStatementModel.lease_id == lease.id,
                BillingStatementModel.status == StatementStatus.OVERDUE.value,
                BillingStatementModel.period_start < period.start,
            )
        ).scalars().all()

        balance = ZERO
        days_late = 0
        for statement in overdue:
            late_by = (as_of - statement.due_date).days - policy.grace_period_days
            if late_by <= 0:
                continue
            balance += max(statement.total_amount_due - statement.amount_paid, ZERO)
            days_late = max(days_late, late_by)
        return round_money(balance), days_late

    def _issue(
        self,
        uow: UnitOfWork,
        lease: LeaseAgreementModel,
        statement: BillingStatementModel,
        actor_id: UUID | None,
    ) -> None:
        statement.status = StatementStatus.UNPAID.value
        statement.updated_by_id = actor_id
        if statement.total_amount_due <= 0:
            statement.status = StatementStatus.PAID.value
            statement.paid_at = self.clock.now()

        logger.info("statement_issued", extra={
            "billing_id": str(statement.id),
            "status": statement.status,
            "due_date": statement.due_date.isoformat(),
            "total_amount_due": str(statement.total_amount_due),
        })
        dispatch_after_commit(uow, self.dispatcher, Notification(
            kind=STATEMENT_ISSUED,
            lease_id=lease.id,
            recipient_id=lease.tenant_id,
            payload={
                "billing_id": str(statement.id),
                "period_start": statement.period_start.isoformat(),
                "due_date": statement.due_date.isoformat(),
                "total_amount_due": str(statement.total_amount_due),
            },
        ))

    def _lock_statement(
        self, billing_id: UUID
    ) -> tuple[LeaseAgreementModel, BillingStatementModel]:
        lease_id = self.session.execute(
            select(BillingStatementModel.lease_id).where(BillingStatementModel.id == billing_id)
        ).scalar_one_or_none()
        if lease_id is None:
            raise StatementNotFoundError(str(billing_id))
        lease = lock_lease(self.session, lease_id)
        return lease, self._statement_of_lease(lease_id, billing_id)

    def _statement_of_lease(self, lease_id: UUID, billing_id: UUID) -> BillingStatementModel:
        statement = self.session.execute(
            select(BillingStatementModel)
            .where(
                BillingStatementModel.id == billing_id,
                BillingStatementModel.lease_id == lease_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if statement is None:
            raise StatementNotFoundError(str(billing_id))
        return statement


def _write_breakdown(statement: BillingStatementModel, breakdown: StatementBreakdown) -> None:
    """Store the breakdown, its hash and the summary columns together."""
    payload = breakdown.to_json()
    statement.breakdown = payload
    statement.breakdown_hash = hash_payload(payload)
    statement.utility_subtotal = breakdown.utility_subtotal
    statement.charge_subtotal = breakdown.charge_subtotal
    statement.late_fee = breakdown.late_fee
    statement.advance_credit_applied = breakdown.advance_credit_applied
    statement.advance_credit_amount = breakdown.advance_credit
    statement.pdc_credit_amount = breakdown.pdc_credit
    statement.total_amount_due = breakdown.total_amount_due
