"""
Lease Authorization State Machine (``settlement_modules.signature.service``).

Responsibility
--------------
Moves a lease from ``draft`` through ``pending_signature`` to ``active``
by collecting one OTP signature from the landlord and one from the tenant.

Invariants enforced
-------------------
* Every operation locks the lease row first, so the two roles verifying at
  the same moment serialize and exactly one of them activates the lease.
* Verification reports only three reasons: used, expired, mismatch.  An
  unknown agreement or a missing record reports mismatch.
* A mismatch is counted and committed before the error is raised; after
  ``max_attempts`` failures the code is burned and reports expired.
* The OTP is stored through ``FieldCipher`` and never logged.  It leaves
  the process only in the post-commit ``signature.otp_requested``
  notification.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_config.schema import SignatureSettings
from settlement_kernel.db.locking import lock_for_update
from settlement_kernel.domain.clock import Clock
from settlement_kernel.exceptions import (
    LeaseNotTransitionableError,
    OtpAlreadyUsedError,
    OtpExpiredError,
    OtpMismatchError,
    SignatureAlreadyCompletedError,
    UnauthorizedError,
    ValidationError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.notifications import (
    LEASE_ACTIVATED,
    OTP_REQUESTED,
    Notification,
    NotificationDispatcher,
    dispatch_after_commit,
)
from settlement_kernel.services.base import BaseService
from settlement_kernel.utils.encryption import FieldCipher
from settlement_modules.lease.locking import lock_lease
from settlement_modules.lease.models import SIGNABLE_STATUSES, LeaseStatus
from settlement_modules.lease.orm import LeaseAgreementModel
from settlement_modules.lease.workflows import LEASE_LIFECYCLE_WORKFLOW
from settlement_modules.signature.models import (
    SignatureRequest,
    SignatureResult,
    SignatureRole,
    SignatureStatus,
)
from settlement_modules.signature.orm import LeaseSignatureModel
from settlement_modules.signature.otp import OtpGenerator, codes_match, generate_otp, is_well_formed
from settlement_modules.signature.workflows import SIGNATURE_WORKFLOW

logger = get_logger("modules.signature.service")


class LeaseAuthorizationStateMachine(BaseService[LeaseSignatureModel]):
    """Dual OTP signature collection and lease activation."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
        cipher: FieldCipher | None = None,
        settings: SignatureSettings | None = None,
        otp_generator: OtpGenerator = generate_otp,
    ):
        super().__init__(session, clock)
        self.dispatcher = dispatcher
        self.cipher = cipher or FieldCipher()
        self.settings = settings or SignatureSettings()
        self.otp_generator = otp_generator

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def request_signature(
        self,
        agreement_id: UUID,
        role: SignatureRole | str,
        requested_by: UUID | None = None,
        recipient: str | None = None,
    ) -> SignatureRequest:
        """
        Issue a fresh OTP for ``role`` and supersede any previous one.

        Raises:
            LeaseNotFoundError: Unknown agreement.
            LeaseNotTransitionableError: Lease is past ``pending_signature``.
            UnauthorizedError: ``requested_by`` is not the party for ``role``.
            SignatureAlreadyCompletedError: ``role`` has already signed.
        """
        role = _parse_role(role)

        with LogContext.bind(lease_id=agreement_id, actor_id=requested_by):
            with self.unit_of_work("request_signature") as uow:
                lease = lock_lease(self.session, agreement_id)
                if LeaseStatus(lease.status) not in SIGNABLE_STATUSES:
                    raise LeaseNotTransitionableError(
                        str(agreement_id), lease.status, "request_signature"
                    )
                party_id = lease.party_for(role.value)
                if requested_by is not None and requested_by != party_id:
                    raise UnauthorizedError(str(agreement_id), role.value)

                current = self._current_record(lease.id, role)
                if current is not None and current.status == SignatureStatus.SIGNED.value:
                    raise SignatureAlreadyCompletedError(str(agreement_id), role.value)

                code = self.otp_generator()
                if not is_well_formed(code):
                    raise ValueError("OTP generator must return a 6-digit numeric string")

                now = self.clock.now()
                record = LeaseSignatureModel(
                    agreement_id=lease.id,
                    role=role.value,
                    otp_code=self.cipher.seal(code),
                    otp_expires_at=now + timedelta(minutes=self.settings.otp_ttl_minutes),
                    status=SIGNATURE_WORKFLOW.initial_state,
                    failed_attempts=0,
                    created_by_id=requested_by or party_id,
                )
                self.session.add(record)
                self.session.flush()

                if current is not None:
                    current.superseded_at = now
                    current.superseded_by_id = record.id
                    current.updated_by_id = requested_by or party_id

                if lease.status == LeaseStatus.DRAFT.value:
                    LEASE_LIFECYCLE_WORKFLOW.require(
                        lease.id, lease.status, LeaseStatus.PENDING_SIGNATURE.value
                    )
                    lease.status = LeaseStatus.PENDING_SIGNATURE.value
                    lease.updated_by_id = requested_by or party_id
                self.session.flush()

                logger.info("otp_requested", extra={
                    "role": role.value,
                    "signature_id": str(record.id),
                    "superseded_id": str(current.id) if current is not None else None,
                    "otp_expires_at": record.otp_expires_at.isoformat(),
                    "encrypted": record.otp_code.is_encrypted,
                })
                dispatch_after_commit(uow, self.dispatcher, Notification(
                    kind=OTP_REQUESTED,
                    lease_id=lease.id,
                    recipient_id=party_id,
                    recipient=recipient,
                    payload={
                        "role": role.value,
                        "code": code,
                        "expires_at": record.otp_expires_at.isoformat(),
                    },
                ))

        return SignatureRequest(
            signature_id=record.id,
            agreement_id=lease.id,
            role=role,
            otp_expires_at=record.otp_expires_at,
            superseded_id=current.id if current is not None else None,
        )

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_otp(
        self,
        agreement_id: UUID,
        role: SignatureRole | str,
        code: str,
        now: datetime | None = None,
        verifier_ip: str | None = None,
        verifier_agent: str | None = None,
    ) -> SignatureResult:
        """
        Verify ``code`` for ``role`` and activate the lease when both roles
        have signed.

        Raises:
            OtpAlreadyUsedError: The current record is already signed.
            OtpExpiredError: Past expiry, or burned by too many failures.
            OtpMismatchError: Wrong code, unknown agreement or no record.
            ValidationError: ``now`` is a naive datetime.
        """
        try:
            role = _parse_role(role)
        except ValidationError:
            raise OtpMismatchError() from None
        now = now or self.clock.now()
        if now.tzinfo is None:
            raise ValidationError("verify_otp requires a timezone-aware now")
        mismatch = False
        activated = False

        with LogContext.bind(lease_id=agreement_id):
            with self.unit_of_work("verify_otp") as uow:
                lease = lock_for_update(self.session, LeaseAgreementModel, agreement_id)
                record = self._current_record(lease.id, role) if lease is not None else None
                if lease is None or record is None:
                    self._reject(role, "mismatch")
                    raise OtpMismatchError()

                if record.status == SignatureStatus.SIGNED.value:
                    self._reject(role, "used")
                    raise OtpAlreadyUsedError()
                if lease.status != LeaseStatus.PENDING_SIGNATURE.value:
                    self._reject(role, "mismatch")
                    raise OtpMismatchError()
                if now > record.otp_expires_at:
                    self._reject(role, "expired")
                    raise OtpExpiredError()
                if record.failed_attempts >= self.settings.max_attempts:
                    self._reject(role, "expired", failed_attempts=record.failed_attempts)
                    raise OtpExpiredError()

                if not codes_match(self.cipher.open(record.otp_code), code):
                    record.failed_attempts += 1
                    self.session.flush()
                    self._reject(role, "mismatch", failed_attempts=record.failed_attempts)
                    mismatch = True
                else:
                    party_id = lease.party_for(role.value)
                    SIGNATURE_WORKFLOW.require(
                        record.id, record.status, SignatureStatus.SIGNED.value
                    )
                    record.status = SignatureStatus.SIGNED.value
                    record.signed_at = now
                    record.verifier_ip = verifier_ip
                    record.verifier_agent = verifier_agent
                    record.updated_by_id = party_id
                    self.session.flush()

                    logger.info("otp_verified", extra={
                        "role": role.value,
                        "signature_id": str(record.id),
                    })

                    counterpart = self._current_record(lease.id, role.counterpart)
                    if (
                        counterpart is not None
                        and counterpart.status == SignatureStatus.SIGNED.value
                    ):
                        self._activate(uow, lease, now, party_id)
                        activated = True

        if mismatch:
            raise OtpMismatchError()

        return SignatureResult(
            agreement_id=lease.id,
            role=role,
            signed_at=now,
            lease_status=lease.status,
            lease_activated=activated,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _current_record(
        self,
        agreement_id: UUID,
        role: SignatureRole,
    ) -> LeaseSignatureModel | None:
        return self.session.execute(
            select(LeaseSignatureModel)
            .where(
                LeaseSignatureModel.agreement_id == agreement_id,
                LeaseSignatureModel.role == role.value,
                LeaseSignatureModel.superseded_by_id.is_(None),
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _activate(self, uow, lease: LeaseAgreementModel, now: datetime, actor_id: UUID) -> None:
        LEASE_LIFECYCLE_WORKFLOW.require(lease.id, lease.status, LeaseStatus.ACTIVE.value)
        lease.status = LeaseStatus.ACTIVE.value
        lease.activated_at = now
        lease.updated_by_id = actor_id
        self.session.flush()

        logger.info("lease_activated", extra={"activated_at": now.isoformat()})
        for party_id in (lease.landlord_id, lease.tenant_id):
            dispatch_after_commit(uow, self.dispatcher, Notification(
                kind=LEASE_ACTIVATED,
                lease_id=lease.id,
                recipient_id=party_id,
                payload={"activated_at": now.isoformat()},
            ))

    @staticmethod
    def _reject(role: SignatureRole, reason: str, **extra) -> None:
        logger.warning("otp_verification_failed", extra={
            "role": role.value,
            "reason": reason,
            **extra,
        })


def _parse_role(role: SignatureRole | str) -> SignatureRole:
    try:
        return SignatureRole(role)
    except ValueError:
        raise ValidationError(f"Unknown signature role: {role!r}") from None
