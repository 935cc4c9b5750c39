"""
Tests for the dual OTP signature protocol (settlement_modules/signature/service.py).

Validates:
- Lease activates only once both roles have signed, in either order
- OTPs are single-use, time-bound and limited in attempts
- Verification failures expose only used / expired / mismatch
- Re-requests supersede the previous code without deleting it
- Notifications are dispatched after commit and never on rollback
- The OTP is stored through the field cipher and never logged
"""

import json
from datetime import timedelta
from uuid import uuid4

import pytest

from settlement_config.schema import SignatureSettings
from settlement_kernel.exceptions import (
    LeaseNotTransitionableError,
    OtpAlreadyUsedError,
    OtpExpiredError,
    OtpMismatchError,
    OtpVerificationError,
    SignatureAlreadyCompletedError,
    UnauthorizedError,
    ValidationError,
)
from settlement_kernel.notifications import LEASE_ACTIVATED, OTP_REQUESTED
from settlement_kernel.utils.encryption import FieldCipher
from settlement_modules.lease.models import LeaseStatus
from settlement_modules.signature.models import SignatureRole, SignatureStatus
from settlement_modules.signature.orm import LeaseSignatureModel
from settlement_modules.signature.otp import codes_match, generate_otp, is_well_formed
from settlement_modules.signature.service import LeaseAuthorizationStateMachine
from settlement_services.notifications import InMemoryNotificationDispatcher
from settlement_services.queries import SettlementQueries


# =============================================================================
# Activation
# =============================================================================


class TestDualSignature:

    def test_scenario_c(self, create_lease, make_signature_machine, lease_service, deterministic_clock):
        lease = create_lease()
        machine = make_signature_machine("482913", "551177")
        machine.request_signature(lease.id, "landlord")
        machine.request_signature(lease.id, "tenant")

        landlord = machine.verify_otp(lease.id, "landlord", "482913")

        assert landlord.lease_status == LeaseStatus.PENDING_SIGNATURE.value
        assert landlord.lease_activated is False

        tenant = machine.verify_otp(lease.id, "tenant", "551177")

        assert tenant.lease_status == LeaseStatus.ACTIVE.value
        assert tenant.lease_activated is True
        agreement = lease_service.get_agreement(lease.id)
        assert agreement.status == LeaseStatus.ACTIVE
        assert agreement.activated_at == deterministic_clock.now()

    def test_order_does_not_matter(self, create_lease, make_signature_machine, lease_service, session):
        codes = {"landlord": "111111", "tenant": "222222"}
        queries = SettlementQueries(session)
        audit = {}

        for order in (("landlord", "tenant"), ("tenant", "landlord")):
            lease = create_lease()
            machine = make_signature_machine(codes["landlord"], codes["tenant"])
            machine.request_signature(lease.id, "landlord")
            machine.request_signature(lease.id, "tenant")
            for role in order:
                result = machine.verify_otp(
                    lease.id, role, codes[role],
                    verifier_ip="203.0.113.7", verifier_agent=f"agent-{role}",
                )

            assert result.lease_activated is True
            assert lease_service.get_agreement(lease.id).status == LeaseStatus.ACTIVE
            audit[order] = [
                (s.role, s.status, s.failed_attempts, s.signed_at,
                 s.verifier_ip, s.verifier_agent, s.is_current)
                for s in queries.get_signatures(lease.id)
            ]

        assert audit[("landlord", "tenant")] == audit[("tenant", "landlord")]
        assert [(role, status) for role, status, *_ in audit[("landlord", "tenant")]] == [
            (SignatureRole.LANDLORD, SignatureStatus.SIGNED),
            (SignatureRole.TENANT, SignatureStatus.SIGNED),
        ]

    def test_one_role_only_stays_pending(self, create_lease, make_signature_machine, lease_service):
        lease = create_lease()
        machine = make_signature_machine("111111")
        machine.request_signature(lease.id, SignatureRole.TENANT)

        machine.verify_otp(lease.id, SignatureRole.TENANT, "111111")

        agreement = lease_service.get_agreement(lease.id)
        assert agreement.status == LeaseStatus.PENDING_SIGNATURE
        assert agreement.activated_at is None

    def test_first_request_moves_draft_to_pending(self, create_lease, signature_machine, lease_service):
        lease = create_lease()

        signature_machine.request_signature(lease.id, "landlord")

        assert lease_service.get_agreement(lease.id).status == LeaseStatus.PENDING_SIGNATURE

    def test_verifier_metadata_recorded(self, create_lease, make_signature_machine, session):
        lease = create_lease()
        machine = make_signature_machine("111111")
        request = machine.request_signature(lease.id, "landlord")

        machine.verify_otp(
            lease.id, "landlord", "111111", verifier_ip="203.0.113.7", verifier_agent="test-agent",
        )

        record = session.get(LeaseSignatureModel, request.signature_id)
        assert record.status == SignatureStatus.SIGNED.value
        assert record.verifier_ip == "203.0.113.7"
        assert record.verifier_agent == "test-agent"
        assert record.signed_at is not None


# =============================================================================
# Single use and expiry
# =============================================================================


class TestOtpValidity:

    def test_expired_code_rejected_even_if_matching(
        self, create_lease, make_signature_machine, deterministic_clock,
    ):
        lease = create_lease()
        machine = make_signature_machine("111111")
        machine.request_signature(lease.id, "landlord")
        deterministic_clock.advance(11 * 60)

        with pytest.raises(OtpExpiredError) as exc_info:
            machine.verify_otp(lease.id, "landlord", "111111")

        assert exc_info.value.reason == "expired"

    def test_valid_at_exact_expiry(self, create_lease, make_signature_machine, deterministic_clock):
        lease = create_lease()
        machine = make_signature_machine("111111")
        request = machine.request_signature(lease.id, "landlord")

        result = machine.verify_otp(lease.id, "landlord", "111111", now=request.otp_expires_at)

        assert result.signed_at == request.otp_expires_at

    def test_naive_now_rejected(self, create_lease, make_signature_machine, session):
        lease = create_lease()
        machine = make_signature_machine("111111")
        request = machine.request_signature(lease.id, "landlord")
        naive = request.otp_expires_at.replace(tzinfo=None)

        with pytest.raises(ValidationError) as exc_info:
            machine.verify_otp(lease.id, "landlord", "111111", now=naive)

        assert not isinstance(exc_info.value, OtpVerificationError)
        record = session.get(LeaseSignatureModel, request.signature_id)
        assert record.status == SignatureStatus.PENDING.value
        assert record.failed_attempts == 0

    def test_ttl_from_settings(self, create_lease, make_signature_machine, deterministic_clock):
        lease = create_lease()
        machine = make_signature_machine("111111", settings=SignatureSettings(otp_ttl_minutes=3))

        request = machine.request_signature(lease.id, "landlord")

        assert request.otp_expires_at == deterministic_clock.now() + timedelta(minutes=3)

    def test_used_code_rejected_before_expiry(self, create_lease, make_signature_machine):
        lease = create_lease()
        machine = make_signature_machine("111111")
        machine.request_signature(lease.id, "landlord")
        machine.verify_otp(lease.id, "landlord", "111111")

        with pytest.raises(OtpAlreadyUsedError) as exc_info:
            machine.verify_otp(lease.id, "landlord", "111111")

        assert exc_info.value.reason == "used"

    def test_used_code_rejected_after_activation(self, create_active_lease, signature_machine):
        lease = create_active_lease()

        with pytest.raises(OtpAlreadyUsedError):
            signature_machine.verify_otp(lease.id, "landlord", "000000")


# =============================================================================
# Mismatch
# =============================================================================


class TestOtpMismatch:

    def test_wrong_code(self, create_lease, make_signature_machine):
        lease = create_lease()
        machine = make_signature_machine("111111")
        machine.request_signature(lease.id, "landlord")

        with pytest.raises(OtpMismatchError) as exc_info:
            machine.verify_otp(lease.id, "landlord", "999999")

        assert exc_info.value.reason == "mismatch"
        assert isinstance(exc_info.value, ValidationError)

    def test_failed_attempt_committed(self, create_lease, make_signature_machine, session):
        lease = create_lease()
        machine = make_signature_machine("111111")
        request = machine.request_signature(lease.id, "landlord")

        with pytest.raises(OtpMismatchError):
            machine.verify_otp(lease.id, "landlord", "999999")
        session.rollback()

        assert session.get(LeaseSignatureModel, request.signature_id).failed_attempts == 1

    def test_correct_code_after_a_miss(self, create_lease, make_signature_machine):
        lease = create_lease()
        machine = make_signature_machine("111111")
        machine.request_signature(lease.id, "landlord")

        with pytest.raises(OtpMismatchError):
            machine.verify_otp(lease.id, "landlord", "999999")
        result = machine.verify_otp(lease.id, "landlord", "111111")

        assert result.role == SignatureRole.LANDLORD

    def test_code_burned_after_max_attempts(self, create_lease, make_signature_machine):
        lease = create_lease()
        machine = make_signature_machine("111111", settings=SignatureSettings(max_attempts=2))
        machine.request_signature(lease.id, "landlord")
        for _ in range(2):
            with pytest.raises(OtpMismatchError):
                machine.verify_otp(lease.id, "landlord", "999999")

        with pytest.raises(OtpExpiredError):
            machine.verify_otp(lease.id, "landlord", "111111")

    @pytest.mark.parametrize("code", ["", "11111", "1111111", "abcdef", None, 111111])
    def test_malformed_code_is_mismatch(self, create_lease, make_signature_machine, code):
        lease = create_lease()
        machine = make_signature_machine("111111")
        machine.request_signature(lease.id, "landlord")

        with pytest.raises(OtpMismatchError):
            machine.verify_otp(lease.id, "landlord", code)

    def test_unknown_lease_is_mismatch(self, db_engine, signature_machine):
        with pytest.raises(OtpMismatchError):
            signature_machine.verify_otp(uuid4(), "landlord", "111111")

    def test_no_record_for_role_is_mismatch(self, create_lease, make_signature_machine):
        lease = create_lease()
        machine = make_signature_machine("111111")
        machine.request_signature(lease.id, "landlord")

        with pytest.raises(OtpMismatchError):
            machine.verify_otp(lease.id, "tenant", "111111")

    def test_unknown_role_is_mismatch(self, create_lease, make_signature_machine):
        lease = create_lease()
        machine = make_signature_machine("111111")
        machine.request_signature(lease.id, "landlord")

        with pytest.raises(OtpMismatchError):
            machine.verify_otp(lease.id, "witness", "111111")

    def test_cancelled_lease_is_mismatch(
        self, create_lease, make_signature_machine, lease_service, test_actor_id,
    ):
        lease = create_lease()
        machine = make_signature_machine("111111")
        machine.request_signature(lease.id, "landlord")
        lease_service.apply_lifecycle_status(lease.id, "cancelled", test_actor_id)

        with pytest.raises(OtpMismatchError):
            machine.verify_otp(lease.id, "landlord", "111111")

    def test_all_failures_share_a_base(self):
        for error in (OtpMismatchError(), OtpExpiredError(), OtpAlreadyUsedError()):
            assert isinstance(error, OtpVerificationError)
            assert str(error) == f"OTP verification failed: {error.reason}"


# =============================================================================
# Requests
# =============================================================================


class TestRequestSignature:

    def test_rerequest_supersedes_previous(self, create_lease, make_signature_machine, session):
        lease = create_lease()
        machine = make_signature_machine("111111", "222222")
        first = machine.request_signature(lease.id, "landlord")
        second = machine.request_signature(lease.id, "landlord")

        assert second.superseded_id == first.signature_id
        with pytest.raises(OtpMismatchError):
            machine.verify_otp(lease.id, "landlord", "111111")
        machine.verify_otp(lease.id, "landlord", "222222")

        records = SettlementQueries(session).get_signatures(lease.id)
        assert len(records) == 2
        old = next(r for r in records if r.id == first.signature_id)
        assert old.superseded_by_id == second.signature_id
        assert old.status == SignatureStatus.PENDING
        assert not old.is_current

    def test_signed_role_cannot_be_rerequested(self, create_lease, make_signature_machine):
        lease = create_lease()
        machine = make_signature_machine("111111", "222222")
        machine.request_signature(lease.id, "landlord")
        machine.verify_otp(lease.id, "landlord", "111111")

        with pytest.raises(SignatureAlreadyCompletedError):
            machine.request_signature(lease.id, "landlord")

    def test_active_lease_cannot_be_requested(self, create_active_lease, signature_machine, dispatcher):
        lease = create_active_lease()

        with pytest.raises(LeaseNotTransitionableError):
            signature_machine.request_signature(lease.id, "tenant")

        assert dispatcher.sent == []

    def test_requester_must_be_the_party(
        self, create_lease, signature_machine, landlord_id, tenant_id,
    ):
        lease = create_lease()

        with pytest.raises(UnauthorizedError):
            signature_machine.request_signature(lease.id, "tenant", requested_by=landlord_id)

        request = signature_machine.request_signature(lease.id, "tenant", requested_by=tenant_id)
        assert request.role == SignatureRole.TENANT

    def test_unknown_role_rejected(self, create_lease, signature_machine):
        lease = create_lease()

        with pytest.raises(ValidationError):
            signature_machine.request_signature(lease.id, "witness")

    def test_generator_output_validated(self, create_lease, make_signature_machine):
        lease = create_lease()
        machine = make_signature_machine("12345")

        with pytest.raises(ValueError):
            machine.request_signature(lease.id, "landlord")


# =============================================================================
# Notifications, storage and logging
# =============================================================================


class TestSignatureSideEffects:

    def test_otp_notification_carries_code(
        self, create_lease, make_signature_machine, dispatcher, landlord_id,
    ):
        lease = create_lease()
        machine = make_signature_machine("482913")

        machine.request_signature(lease.id, "landlord", recipient="landlord@example.com")

        (notification,) = dispatcher.of_kind(OTP_REQUESTED)
        assert notification.recipient_id == landlord_id
        assert notification.recipient == "landlord@example.com"
        assert notification.payload["code"] == "482913"

    def test_activation_notifies_both_parties(
        self, create_lease, make_signature_machine, dispatcher, landlord_id, tenant_id,
    ):
        lease = create_lease()
        machine = make_signature_machine("111111", "222222")
        machine.request_signature(lease.id, "landlord")
        machine.request_signature(lease.id, "tenant")
        machine.verify_otp(lease.id, "landlord", "111111")

        assert dispatcher.of_kind(LEASE_ACTIVATED) == []
        machine.verify_otp(lease.id, "tenant", "222222")

        recipients = {n.recipient_id for n in dispatcher.of_kind(LEASE_ACTIVATED)}
        assert recipients == {landlord_id, tenant_id}

    def test_dispatcher_failure_does_not_undo_request(
        self, create_lease, session, deterministic_clock,
    ):
        lease = create_lease()
        machine = LeaseAuthorizationStateMachine(
            session,
            deterministic_clock,
            dispatcher=InMemoryNotificationDispatcher(fail_with=RuntimeError("smtp down")),
            otp_generator=lambda: "111111",
        )

        request = machine.request_signature(lease.id, "landlord")

        assert session.get(LeaseSignatureModel, request.signature_id) is not None

    def test_code_encrypted_at_rest(self, create_lease, make_signature_machine, session):
        lease = create_lease()
        machine = make_signature_machine(
            "482913", cipher=FieldCipher(FieldCipher.generate_key()),
        )

        request = machine.request_signature(lease.id, "landlord")
        stored = session.get(LeaseSignatureModel, request.signature_id).otp_code

        assert stored.is_encrypted is True
        assert "482913" not in stored.value
        assert machine.verify_otp(lease.id, "landlord", "482913").role == SignatureRole.LANDLORD

    def test_plaintext_tagged_without_key(self, create_lease, make_signature_machine, session):
        lease = create_lease()
        machine = make_signature_machine("482913")

        request = machine.request_signature(lease.id, "landlord")
        stored = session.get(LeaseSignatureModel, request.signature_id).otp_code

        assert stored.is_encrypted is False
        assert stored.value == "482913"

    def test_code_never_logged(self, create_lease, make_signature_machine, captured_logs):
        lease = create_lease()
        machine = make_signature_machine("482913")

        machine.request_signature(lease.id, "landlord")
        with pytest.raises(OtpMismatchError):
            machine.verify_otp(lease.id, "landlord", "999999")
        machine.verify_otp(lease.id, "landlord", "482913")

        logs = captured_logs()
        assert any(r["message"] == "otp_requested" for r in logs)
        assert any(r["message"] == "otp_verified" for r in logs)
        assert all("482913" not in json.dumps(r) for r in logs)


class TestOtpHelpers:

    def test_generated_codes_are_six_digits(self):
        for _ in range(50):
            code = generate_otp()
            assert is_well_formed(code)
            assert 100000 <= int(code) <= 999999

    def test_codes_match(self):
        assert codes_match("482913", "482913")
        assert not codes_match("482913", "482914")
        assert not codes_match("482913", "٤٨٢٩١٣")
