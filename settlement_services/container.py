"""
settlement_services.container -- Wiring for the settlement services.

Responsibility:
    Builds each module service once over a shared Session, Clock and
    NotificationDispatcher, and applies the configuration: field key for
    OTP encryption, signature settings, and the cached property policy
    source.

Non-goals:
    - Does NOT manage the Session lifecycle.  Every service operation owns
      its own unit of work on the session it was given.

Usage:
    config = get_active_config()
    services = SettlementServices(session, config, dispatcher=dispatcher)
    services.signatures.request_signature(lease_id, "tenant")
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from settlement_config.policy_source import PolicySource
from settlement_config.schema import SettlementConfig
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.notifications import NotificationDispatcher
from settlement_kernel.utils.encryption import FieldCipher
from settlement_modules.billing.payments import PaymentReconciliationService
from settlement_modules.billing.service import BillingService
from settlement_modules.lease.service import LeaseAgreementService
from settlement_modules.pdc.service import PDCLedger
from settlement_modules.signature.otp import OtpGenerator, generate_otp
from settlement_modules.signature.service import LeaseAuthorizationStateMachine
from settlement_services.queries import SettlementQueries


class SettlementServices:
    """Single construction point for the settlement services."""

    def __init__(
        self,
        session: Session,
        config: SettlementConfig,
        dispatcher: NotificationDispatcher | None = None,
        clock: Clock | None = None,
        policy_source: PolicySource | None = None,
        otp_generator: OtpGenerator = generate_otp,
    ) -> None:
        self.config = config
        self.clock = clock or SystemClock()
        self.policy_source = policy_source or PolicySource.from_config(config, clock=self.clock)

        self.leases = LeaseAgreementService(session, self.clock)
        self.pdc_ledger = PDCLedger(session, self.clock, dispatcher=dispatcher)
        self.billing = BillingService(
            session,
            self.clock,
            pdc_ledger=self.pdc_ledger,
            policy_source=self.policy_source,
            dispatcher=dispatcher,
        )
        self.payments = PaymentReconciliationService(session, self.clock, dispatcher=dispatcher)
        self.signatures = LeaseAuthorizationStateMachine(
            session,
            self.clock,
            dispatcher=dispatcher,
            cipher=FieldCipher(config.field_key),
            settings=config.signature,
            otp_generator=otp_generator,
        )
        self.queries = SettlementQueries(session)
