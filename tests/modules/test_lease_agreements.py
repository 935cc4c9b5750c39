"""
Tests for LeaseAgreementService (settlement_modules/lease/service.py).
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_kernel.exceptions import (
    InvalidAmountError,
    InvalidPeriodError,
    InvalidTransitionError,
    LeaseNotFoundError,
    LeaseNotTransitionableError,
    ValidationError,
)
from settlement_modules.lease.models import LeaseStatus


class TestCreateAgreement:

    def test_created_in_draft(self, create_lease, landlord_id, tenant_id):
        lease = create_lease()

        assert lease.status == LeaseStatus.DRAFT
        assert lease.landlord_id == landlord_id
        assert lease.tenant_id == tenant_id
        assert lease.rent_amount == Decimal("10000.00")
        assert lease.advance_payment_consumed is False
        assert lease.activated_at is None
        assert not lease.is_billable

    def test_end_before_start_rejected(self, create_lease):
        with pytest.raises(InvalidPeriodError):
            create_lease(start_date=date(2024, 6, 1), end_date=date(2024, 6, 1))

    @pytest.mark.parametrize("field,value", [
        ("rent_amount", Decimal("0")),
        ("security_deposit_amount", Decimal("-1")),
        ("advance_payment_amount", Decimal("-0.01")),
    ])
    def test_invalid_amounts_rejected(self, create_lease, field, value):
        with pytest.raises(InvalidAmountError) as exc_info:
            create_lease(**{field: value})

        assert exc_info.value.field == field

    def test_logged(self, create_lease, captured_logs):
        lease = create_lease()

        (record,) = [r for r in captured_logs() if r["message"] == "lease_created"]
        assert record["lease_id"] == str(lease.id)

    def test_unknown_agreement(self, db_engine, lease_service):
        with pytest.raises(LeaseNotFoundError):
            lease_service.get_agreement(uuid4())


class TestLifecycleStatus:

    def test_expire_after_end_date(self, create_active_lease, lease_service, test_actor_id):
        lease = create_active_lease()

        expired = lease_service.apply_lifecycle_status(
            lease.id, "expired", test_actor_id, as_of=date(2025, 1, 1)
        )

        assert expired.status == LeaseStatus.EXPIRED
        assert expired.is_billable

    def test_expire_before_end_date_rejected(self, create_active_lease, lease_service, test_actor_id):
        lease = create_active_lease()

        with pytest.raises(LeaseNotTransitionableError):
            lease_service.apply_lifecycle_status(lease.id, LeaseStatus.EXPIRED, test_actor_id)

        assert lease_service.get_agreement(lease.id).status == LeaseStatus.ACTIVE

    def test_complete_after_expiry(self, create_active_lease, lease_service, test_actor_id):
        lease = create_active_lease()
        lease_service.apply_lifecycle_status(
            lease.id, "expired", test_actor_id, as_of=date(2025, 1, 1)
        )

        completed = lease_service.apply_lifecycle_status(lease.id, "completed", test_actor_id)

        assert completed.status == LeaseStatus.COMPLETED

    def test_cancel_draft(self, create_lease, lease_service, test_actor_id, signature_machine):
        lease = create_lease()

        cancelled = lease_service.apply_lifecycle_status(lease.id, "cancelled", test_actor_id)

        assert cancelled.status == LeaseStatus.CANCELLED
        with pytest.raises(LeaseNotTransitionableError):
            signature_machine.request_signature(lease.id, "landlord")

    def test_draft_cannot_expire(self, create_lease, lease_service, test_actor_id):
        lease = create_lease()

        with pytest.raises(InvalidTransitionError) as exc_info:
            lease_service.apply_lifecycle_status(
                lease.id, "expired", test_actor_id, as_of=date(2025, 1, 1)
            )

        assert exc_info.value.from_state == "draft"

    def test_cancelled_is_terminal(self, create_lease, lease_service, test_actor_id):
        lease = create_lease()
        lease_service.apply_lifecycle_status(lease.id, "cancelled", test_actor_id)

        with pytest.raises(InvalidTransitionError):
            lease_service.apply_lifecycle_status(lease.id, "completed", test_actor_id)

    def test_activation_not_a_lifecycle_target(self, create_lease, lease_service, test_actor_id):
        lease = create_lease()

        with pytest.raises(LeaseNotTransitionableError):
            lease_service.apply_lifecycle_status(lease.id, "active", test_actor_id)

    def test_unknown_status_rejected(self, create_lease, lease_service, test_actor_id):
        lease = create_lease()

        with pytest.raises(ValidationError):
            lease_service.apply_lifecycle_status(lease.id, "archived", test_actor_id)

    def test_unknown_agreement(self, db_engine, lease_service, test_actor_id):
        with pytest.raises(LeaseNotFoundError):
            lease_service.apply_lifecycle_status(uuid4(), "cancelled", test_actor_id)
