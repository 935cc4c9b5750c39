"""
Pytest fixtures for the settlement engine test suite.

Provides:
- A file-backed SQLite database per test (foreign keys on, BEGIN IMMEDIATE)
- Service fixtures wired to a deterministic clock and an in-memory
  notification dispatcher
- Lease factories (draft and fully signed)
- Captured structured logs

Environment Variables:
- SETTLEMENT_TEST_DATABASE_URL: PostgreSQL URL for tests marked ``postgres``.
  When unset those tests are skipped.
"""

import json
import logging
import os
import threading
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from settlement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from settlement_kernel.domain.clock import DeterministicClock
from settlement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from settlement_modules.billing.payments import PaymentReconciliationService
from settlement_modules.billing.service import BillingService
from settlement_modules.lease.models import LeaseTerms
from settlement_modules.lease.service import LeaseAgreementService
from settlement_modules.pdc.service import PDCLedger
from settlement_modules.signature.service import LeaseAuthorizationStateMachine
from settlement_services.notifications import InMemoryNotificationDispatcher

# ---------------------------------------------------------------------------
# Deterministic ids
# ---------------------------------------------------------------------------

TEST_ACTOR_ID = UUID("00000000-0000-4000-a000-000000000001")
TEST_LANDLORD_ID = UUID("00000000-0000-4000-a000-000000000002")
TEST_TENANT_ID = UUID("00000000-0000-4000-a000-000000000003")
TEST_UNIT_ID = UUID("00000000-0000-4000-a000-000000000010")
TEST_PROPERTY_ID = UUID("00000000-0000-4000-a000-000000000020")

POSTGRES_URL_ENV = "SETTLEMENT_TEST_DATABASE_URL"


class OtpSequence:
    """OTP generator returning queued codes in order."""

    def __init__(self, *codes: str):
        self._codes = list(codes)

    def __call__(self) -> str:
        return self._codes.pop(0)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture settlement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, billing_service):
            billing_service.compute_statement(...)
            logs = captured_logs()
            assert any(r["message"] == "statement_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("settlement_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


def pytest_collection_modifyitems(config, items):
    if os.environ.get(POSTGRES_URL_ENV):
        return
    skip_pg = pytest.mark.skip(reason=f"{POSTGRES_URL_ENV} not set")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """A fresh SQLite database file with every table created."""
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'settlement_test.db'}")
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def pg_engine():
    """The PostgreSQL test database, tables dropped on teardown."""
    engine = init_engine_from_url(os.environ[POSTGRES_URL_ENV], pool_size=10)
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Session for the test.  Services commit through their own unit of work."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def session_factory(db_engine):
    """Tracked session factory for creating sessions in concurrent threads.

    Each thread should create its own session.  On teardown every tracked
    session is rolled back and closed.
    """
    factory = get_session_factory()
    created_sessions = []
    lock = threading.Lock()

    def tracked_factory():
        with lock:
            s = factory()
            created_sessions.append(s)
            return s

    yield tracked_factory

    for s in created_sessions:
        if s.is_active:
            s.rollback()
        s.close()


# =============================================================================
# Clock and actor fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock (2024-01-01 12:00 UTC)."""
    return DeterministicClock()


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def dispatcher() -> InMemoryNotificationDispatcher:
    return InMemoryNotificationDispatcher()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def lease_service(session, deterministic_clock):
    return LeaseAgreementService(session, deterministic_clock)


@pytest.fixture
def pdc_ledger(session, deterministic_clock, dispatcher):
    return PDCLedger(session, deterministic_clock, dispatcher=dispatcher)


@pytest.fixture
def billing_service(session, deterministic_clock, pdc_ledger, dispatcher):
    return BillingService(
        session, deterministic_clock, pdc_ledger=pdc_ledger, dispatcher=dispatcher
    )


@pytest.fixture
def payment_service(session, deterministic_clock, dispatcher):
    return PaymentReconciliationService(session, deterministic_clock, dispatcher=dispatcher)


@pytest.fixture
def signature_machine(session, deterministic_clock, dispatcher):
    return LeaseAuthorizationStateMachine(session, deterministic_clock, dispatcher=dispatcher)


# =============================================================================
# Lease factories
# =============================================================================


def lease_terms(**overrides) -> LeaseTerms:
    """Default terms: calendar-year 2024 lease at 10000 per month."""
    values = dict(
        unit_id=TEST_UNIT_ID,
        property_id=TEST_PROPERTY_ID,
        tenant_id=TEST_TENANT_ID,
        landlord_id=TEST_LANDLORD_ID,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 12, 31),
        rent_amount=Decimal("10000.00"),
        security_deposit_amount=Decimal("20000.00"),
        advance_payment_amount=Decimal("0"),
    )
    values.update(overrides)
    return LeaseTerms(**values)


@pytest.fixture
def create_lease(lease_service, test_actor_id):
    """Factory fixture: create a draft lease."""

    def _create(**overrides):
        return lease_service.create_agreement(lease_terms(**overrides), test_actor_id)

    return _create


@pytest.fixture
def create_active_lease(create_lease, lease_service, signature_machine, dispatcher):
    """Factory fixture: create a lease and run both signatures to activate it.

    Clears the dispatcher afterwards so tests see only their own
    notifications.
    """

    def _create(**overrides):
        lease = create_lease(**overrides)
        for role in ("landlord", "tenant"):
            signature_machine.request_signature(lease.id, role)
        for role in ("landlord", "tenant"):
            signature_machine.verify_otp(lease.id, role, dispatcher.last_otp(role))
        dispatcher.clear()
        return lease_service.get_agreement(lease.id)

    return _create


@pytest.fixture
def unique_reference():
    return lambda: f"PAY-{uuid4().hex[:12]}"


@pytest.fixture
def make_terms():
    return lease_terms


@pytest.fixture
def landlord_id() -> UUID:
    return TEST_LANDLORD_ID


@pytest.fixture
def tenant_id() -> UUID:
    return TEST_TENANT_ID


@pytest.fixture
def make_signature_machine(session, deterministic_clock, dispatcher):
    """Factory fixture: a state machine with queued OTP codes and custom settings."""

    def _make(*codes: str, **kwargs):
        if codes:
            kwargs["otp_generator"] = OtpSequence(*codes)
        return LeaseAuthorizationStateMachine(
            session, deterministic_clock, dispatcher=dispatcher, **kwargs
        )

    return _make
