"""
Tests for kernel utilities: TTL cache, field encryption, hashing, billing
periods, the deterministic clock and workflow definitions.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest
from cryptography.fernet import InvalidToken

from settlement_kernel.domain.clock import DeterministicClock
from settlement_kernel.domain.period import BillingPeriod
from settlement_kernel.domain.workflow import Transition, Workflow
from settlement_kernel.exceptions import InvalidPeriodError, InvalidTransitionError
from settlement_kernel.utils.encryption import EncryptedField, EncryptedFieldType, FieldCipher
from settlement_kernel.utils.hashing import canonicalize_json, hash_payload
from settlement_kernel.utils.ttl_cache import TTLCache
from settlement_modules.billing.workflows import STATEMENT_WORKFLOW
from settlement_modules.lease.workflows import LEASE_LIFECYCLE_WORKFLOW
from settlement_modules.pdc.workflows import PDC_WORKFLOW
from settlement_modules.signature.workflows import SIGNATURE_WORKFLOW


class TestTTLCache:

    def test_expires_on_clock(self):
        clock = DeterministicClock()
        cache = TTLCache(10, clock=clock)
        cache.put("a", 1)

        clock.advance(9)
        assert cache.get("a") == 1
        clock.advance(1)
        assert cache.get("a") is None

    def test_get_or_load_calls_loader_once(self):
        cache = TTLCache(10, clock=DeterministicClock())
        calls = []

        def loader(key):
            calls.append(key)
            return key.upper()

        assert cache.get_or_load("x", loader) == "X"
        assert cache.get_or_load("x", loader) == "X"
        assert calls == ["x"]

    def test_loader_error_not_cached(self):
        cache = TTLCache(10, clock=DeterministicClock())

        def failing(key):
            raise LookupError(key)

        with pytest.raises(LookupError):
            cache.get_or_load("x", failing)
        assert len(cache) == 0

    def test_invalidate(self):
        cache = TTLCache(10, clock=DeterministicClock())
        cache.put("a", 1)
        cache.put("b", 2)

        cache.invalidate("a")
        assert cache.get("a") is None
        assert cache.get("b") == 2

        cache.invalidate()
        assert len(cache) == 0

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError):
            TTLCache(0)


class TestFieldCipher:

    def test_sealed_value_is_ciphertext(self):
        cipher = FieldCipher(FieldCipher.generate_key())

        sealed = cipher.seal("482913")

        assert sealed.is_encrypted
        assert sealed.value != "482913"
        assert cipher.open(sealed) == "482913"

    def test_without_key_stores_tagged_plaintext(self):
        cipher = FieldCipher()

        sealed = cipher.seal("482913")

        assert not cipher.enabled
        assert sealed == EncryptedField(is_encrypted=False, value="482913")
        assert cipher.open(sealed) == "482913"

    def test_encrypted_without_key_raises(self):
        sealed = FieldCipher(FieldCipher.generate_key()).seal("482913")

        with pytest.raises(RuntimeError):
            FieldCipher().open(sealed)

    def test_wrong_key_raises(self):
        sealed = FieldCipher(FieldCipher.generate_key()).seal("482913")

        with pytest.raises(InvalidToken):
            FieldCipher(FieldCipher.generate_key()).open(sealed)

    def test_json_form_requires_tag(self):
        with pytest.raises(ValueError):
            EncryptedField.from_json({"value": "482913"})
        with pytest.raises(ValueError):
            EncryptedField.from_json({"is_encrypted": "yes", "value": "482913"})

    def test_column_type_rejects_raw_strings(self):
        with pytest.raises(TypeError):
            EncryptedFieldType().process_bind_param("482913", None)

    def test_column_type_maps_both_ways(self):
        column = EncryptedFieldType()
        field = EncryptedField(is_encrypted=False, value="482913")

        stored = column.process_bind_param(field, None)

        assert stored == {"is_encrypted": False, "value": "482913"}
        assert column.process_result_value(stored, None) == field


class TestHashing:

    def test_key_order_irrelevant(self):
        assert hash_payload({"a": "1", "b": "2"}) == hash_payload({"b": "2", "a": "1"})

    def test_decimal_normalized(self):
        assert canonicalize_json({"x": Decimal("10.00")}) == canonicalize_json({"x": Decimal("10")})

    def test_supported_types(self):
        payload = {
            "id": UUID("00000000-0000-4000-a000-000000000001"),
            "day": date(2024, 1, 5),
        }
        assert canonicalize_json(payload) == (
            '{"day":"2024-01-05","id":"00000000-0000-4000-a000-000000000001"}'
        )

    def test_unsupported_type_raises(self):
        with pytest.raises(TypeError):
            hash_payload({"x": object()})

    def test_any_change_changes_hash(self):
        assert hash_payload({"total": "11400.00"}) != hash_payload({"total": "11400.01"})


class TestBillingPeriod:

    def test_month_of_leap_february(self):
        period = BillingPeriod.month_of(date(2024, 2, 10))
        assert period == BillingPeriod(date(2024, 2, 1), date(2024, 2, 29))
        assert period.days == 29

    def test_inverted_rejected(self):
        with pytest.raises(InvalidPeriodError):
            BillingPeriod(date(2024, 2, 1), date(2024, 1, 31))

    def test_contains(self):
        period = BillingPeriod.month_of(date(2024, 1, 1))
        assert period.contains(date(2024, 1, 31))
        assert not period.contains(date(2024, 2, 1))
        assert str(period) == "2024-01-01..2024-01-31"


class TestDeterministicClock:

    def test_fixed_until_advanced(self):
        clock = DeterministicClock()
        start = clock.now()

        assert clock.now() == start == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        clock.advance(90)
        assert clock.now() == start + timedelta(seconds=90)

    def test_set_time(self):
        clock = DeterministicClock()
        target = datetime(2024, 6, 1, tzinfo=timezone.utc)

        clock.set_time(target)

        assert clock.now() == target
        assert clock.today() == date(2024, 6, 1)


class TestWorkflows:

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )

    def test_require_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PDC_WORKFLOW.require("pdc-1", "cleared", "bounced")

        assert exc_info.value.entity == "post_dated_check"
        assert exc_info.value.entity_id == "pdc-1"

    @pytest.mark.parametrize("workflow", [
        LEASE_LIFECYCLE_WORKFLOW, SIGNATURE_WORKFLOW, STATEMENT_WORKFLOW, PDC_WORKFLOW,
    ])
    def test_terminal_states_have_no_exits(self, workflow):
        for transition in workflow.transitions:
            assert transition.from_state not in workflow.terminal_states

    def test_lease_activation_path(self):
        assert LEASE_LIFECYCLE_WORKFLOW.can_transition("draft", "pending_signature")
        assert LEASE_LIFECYCLE_WORKFLOW.can_transition("pending_signature", "active")
        assert not LEASE_LIFECYCLE_WORKFLOW.can_transition("draft", "active")

    def test_statement_paid_is_terminal(self):
        assert not STATEMENT_WORKFLOW.can_transition("paid", "overdue")
        assert STATEMENT_WORKFLOW.can_transition("overdue", "paid")
