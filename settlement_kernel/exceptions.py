"""
Typed Exception Hierarchy for the Lease Settlement Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Settlement errors decide money: whether a credit is applied, whether a
lease becomes binding.  Callers must branch on the TYPE of a failure, never
on its message.  Every exception therefore:

  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        billing.compute_statement(...)
    except AlreadyAppliedError as e:
        api_response(code=e.code, credit=e.credit_kind, ref=e.reference)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SettlementError (base)
    |
    +-- ValidationError
    |   +-- InvalidReadingError
    |   +-- InvalidPeriodError
    |   +-- InvalidCheckDetailsError
    |   +-- OtpMismatchError            (also OtpVerificationError)
    |
    +-- ConfigurationMissingError
    |   +-- RateMissingError
    |   +-- PolicyMissingError
    |
    +-- StateConflictError
    |   +-- AlreadyAppliedError
    |   +-- OtpAlreadyUsedError         (also OtpVerificationError)
    |   +-- InvalidTransitionError
    |   +-- LeaseNotTransitionableError
    |   +-- SignatureAlreadyCompletedError
    |   +-- StatementAlreadyExistsError
    |   +-- StatementFrozenError
    |   +-- StatementIntegrityError
    |   +-- DuplicateCheckError
    |   +-- PaymentReferenceConflictError
    |
    +-- NotFoundError
    |   +-- LeaseNotFoundError
    |   +-- StatementNotFoundError
    |   +-- CheckNotFoundError
    |
    +-- ExpiredTokenError
    |   +-- OtpExpiredError             (also OtpVerificationError)
    |
    +-- UnauthorizedError

===============================================================================
OTP FAILURES
===============================================================================

OTP verification reports exactly three outcomes to callers: ``used``,
``expired`` and ``mismatch``.  All three classes share the
``OtpVerificationError`` base and expose ``reason``.  A missing agreement
or signature record is reported as ``mismatch`` so the response does not
reveal whether an agreement or role exists.

===============================================================================
PROPAGATION
===============================================================================

Validation and state-conflict errors are raised synchronously from the
operation that detected them.  The owning unit of work rolls back and
re-raises.  Infrastructure errors (SQLAlchemy OperationalError, etc.) are
never retried inside the engine: the caller retries, and idempotency on
payment reference / PDC binding / advance flag makes that safe.
"""

from datetime import date
from decimal import Decimal


class SettlementError(Exception):
    """
    Base exception for all settlement engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SETTLEMENT_ERROR"


# =============================================================================
# Validation
# =============================================================================


class ValidationError(SettlementError):
    """Malformed or missing input."""

    code: str = "VALIDATION_ERROR"


class InvalidReadingError(ValidationError):
    """Meter reading produced negative consumption (reset or rollover)."""

    code: str = "INVALID_READING"

    def __init__(self, utility: str, previous: Decimal, current: Decimal):
        self.utility = utility
        self.previous = previous
        self.current = current
        super().__init__(
            f"Negative consumption for {utility}: "
            f"previous={previous}, current={current}"
        )


class InvalidPeriodError(ValidationError):
    """Billing period bounds are inverted or otherwise unusable."""

    code: str = "INVALID_PERIOD"

    def __init__(self, start: date, end: date, reason: str = "start after end"):
        self.start = start
        self.end = end
        self.reason = reason
        super().__init__(f"Invalid billing period {start}..{end}: {reason}")


class InvalidCheckDetailsError(ValidationError):
    """Post-dated check details failed validation."""

    code: str = "INVALID_CHECK_DETAILS"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid check {field}: {reason}")


class InvalidAmountError(ValidationError):
    """A monetary input was negative, zero where forbidden, or non-finite."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: Decimal):
        self.field = field
        self.amount = amount
        super().__init__(f"Invalid amount for {field}: {amount}")


# =============================================================================
# OTP verification (mixed into three categories)
# =============================================================================


class OtpVerificationError(SettlementError):
    """
    Base for the three caller-visible OTP failures.

    ``reason`` is one of ``expired``, ``mismatch`` or ``used``.  No other
    detail is exposed in the message.
    """

    code: str = "OTP_VERIFICATION_FAILED"
    reason: str = "mismatch"

    def __init__(self):
        super().__init__(f"OTP verification failed: {self.reason}")


class OtpMismatchError(ValidationError, OtpVerificationError):
    """Submitted code does not match the current OTP."""

    code: str = "OTP_MISMATCH"
    reason: str = "mismatch"

    def __init__(self):
        OtpVerificationError.__init__(self)


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationMissingError(SettlementError):
    """A rate or policy the computation needs is absent."""

    code: str = "CONFIGURATION_MISSING"


class RateMissingError(ConfigurationMissingError):
    """A metered utility has no configured rate."""

    code: str = "RATE_MISSING"

    def __init__(self, utility: str):
        self.utility = utility
        super().__init__(f"No rate configured for metered utility: {utility}")


class PolicyMissingError(ConfigurationMissingError):
    """No billing policy is configured for a property."""

    code: str = "POLICY_MISSING"

    def __init__(self, property_id: str, detail: str | None = None):
        self.property_id = property_id
        self.detail = detail
        msg = f"No billing policy configured for property {property_id}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


# =============================================================================
# State conflicts
# =============================================================================


class StateConflictError(SettlementError):
    """The operation conflicts with the current persisted state."""

    code: str = "STATE_CONFLICT"


class AlreadyAppliedError(StateConflictError):
    """
    A use-once credit was already consumed.

    ``credit_kind`` is ``advance`` or ``pdc``; ``reference`` identifies the
    lease (advance) or check (pdc); ``bound_to`` is the statement that
    consumed it, when known.
    """

    code: str = "ALREADY_APPLIED"

    def __init__(self, credit_kind: str, reference: str, bound_to: str | None = None):
        self.credit_kind = credit_kind
        self.reference = reference
        self.bound_to = bound_to
        msg = f"{credit_kind} credit {reference} already applied"
        if bound_to:
            msg = f"{msg} to statement {bound_to}"
        super().__init__(msg)


class OtpAlreadyUsedError(StateConflictError, OtpVerificationError):
    """The OTP was already used to sign."""

    code: str = "OTP_ALREADY_USED"
    reason: str = "used"

    def __init__(self):
        OtpVerificationError.__init__(self)


class InvalidTransitionError(StateConflictError):
    """A state machine was asked for a transition it does not define."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity: str, entity_id: str, from_state: str, to_state: str):
        self.entity = entity
        self.entity_id = entity_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"{entity} {entity_id}: cannot transition {from_state} -> {to_state}"
        )


class LeaseNotTransitionableError(StateConflictError):
    """The lease is not in a status that permits the operation."""

    code: str = "LEASE_NOT_TRANSITIONABLE"

    def __init__(self, agreement_id: str, status: str, operation: str):
        self.agreement_id = agreement_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Lease {agreement_id} in status {status} does not allow {operation}"
        )


class SignatureAlreadyCompletedError(StateConflictError):
    """The role already signed; a new OTP cannot be issued for it."""

    code: str = "SIGNATURE_ALREADY_COMPLETED"

    def __init__(self, agreement_id: str, role: str):
        self.agreement_id = agreement_id
        self.role = role
        super().__init__(f"Lease {agreement_id}: {role} has already signed")


class StatementAlreadyExistsError(StateConflictError):
    """A statement already exists for the lease and period."""

    code: str = "STATEMENT_ALREADY_EXISTS"

    def __init__(self, lease_id: str, period_start: date, billing_id: str):
        self.lease_id = lease_id
        self.period_start = period_start
        self.billing_id = billing_id
        super().__init__(
            f"Statement {billing_id} already exists for lease {lease_id} "
            f"period starting {period_start}"
        )


class StatementFrozenError(StateConflictError):
    """The statement breakdown can no longer change."""

    code: str = "STATEMENT_FROZEN"

    def __init__(self, billing_id: str, status: str):
        self.billing_id = billing_id
        self.status = status
        super().__init__(
            f"Statement {billing_id} is {status}; its breakdown is frozen"
        )


class StatementIntegrityError(StateConflictError):
    """Stored total or hash does not match the re-derived breakdown."""

    code: str = "STATEMENT_INTEGRITY"

    def __init__(
        self,
        billing_id: str,
        stored_total: Decimal,
        derived_total: Decimal,
        stored_hash: str,
        derived_hash: str,
    ):
        self.billing_id = billing_id
        self.stored_total = stored_total
        self.derived_total = derived_total
        self.stored_hash = stored_hash
        self.derived_hash = derived_hash
        super().__init__(
            f"Statement {billing_id} integrity failure: "
            f"stored total {stored_total}, derived {derived_total}"
        )


class DuplicateCheckError(StateConflictError):
    """A check with the same bank and number is already registered."""

    code: str = "DUPLICATE_CHECK"

    def __init__(self, lease_id: str, bank_name: str, check_number: str):
        self.lease_id = lease_id
        self.bank_name = bank_name
        self.check_number = check_number
        super().__init__(
            f"Check {bank_name}/{check_number} already registered for lease {lease_id}"
        )


class PaymentReferenceConflictError(StateConflictError):
    """
    Same payment reference, different payload.

    A repeated reference with the same billing and amount is an idempotent
    replay; a repeated reference with different values is a protocol
    violation by the payment collaborator.
    """

    code: str = "PAYMENT_REFERENCE_CONFLICT"

    def __init__(self, reference: str, existing_billing_id: str, existing_amount: Decimal):
        self.reference = reference
        self.existing_billing_id = existing_billing_id
        self.existing_amount = existing_amount
        super().__init__(
            f"Payment reference {reference} already recorded for statement "
            f"{existing_billing_id} with amount {existing_amount}"
        )


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(SettlementError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"


class LeaseNotFoundError(NotFoundError):
    """Lease agreement with given ID was not found."""

    code: str = "LEASE_NOT_FOUND"

    def __init__(self, agreement_id: str):
        self.agreement_id = agreement_id
        super().__init__(f"Lease agreement not found: {agreement_id}")


class StatementNotFoundError(NotFoundError):
    """Billing statement with given ID was not found."""

    code: str = "STATEMENT_NOT_FOUND"

    def __init__(self, billing_id: str):
        self.billing_id = billing_id
        super().__init__(f"Billing statement not found: {billing_id}")


class CheckNotFoundError(NotFoundError):
    """Post-dated check with given ID was not found."""

    code: str = "CHECK_NOT_FOUND"

    def __init__(self, pdc_id: str):
        self.pdc_id = pdc_id
        super().__init__(f"Post-dated check not found: {pdc_id}")


# =============================================================================
# Expired tokens
# =============================================================================


class ExpiredTokenError(SettlementError):
    """A time-bound token is past its expiry."""

    code: str = "EXPIRED_TOKEN"


class OtpExpiredError(ExpiredTokenError, OtpVerificationError):
    """The OTP is past its expiry (or burned by too many attempts)."""

    code: str = "OTP_EXPIRED"
    reason: str = "expired"

    def __init__(self):
        OtpVerificationError.__init__(self)


# =============================================================================
# Authorization
# =============================================================================


class UnauthorizedError(SettlementError):
    """Caller is not a party to the lease in the claimed role."""

    code: str = "UNAUTHORIZED"

    def __init__(self, agreement_id: str, role: str):
        self.agreement_id = agreement_id
        self.role = role
        super().__init__(f"Caller is not the {role} of lease {agreement_id}")


__all__ = [
    "AlreadyAppliedError",
    "CheckNotFoundError",
    "ConfigurationMissingError",
    "DuplicateCheckError",
    "ExpiredTokenError",
    "InvalidAmountError",
    "InvalidCheckDetailsError",
    "InvalidPeriodError",
    "InvalidReadingError",
    "InvalidTransitionError",
    "LeaseNotFoundError",
    "LeaseNotTransitionableError",
    "NotFoundError",
    "OtpAlreadyUsedError",
    "OtpExpiredError",
    "OtpMismatchError",
    "OtpVerificationError",
    "PaymentReferenceConflictError",
    "PolicyMissingError",
    "RateMissingError",
    "SettlementError",
    "SignatureAlreadyCompletedError",
    "StateConflictError",
    "StatementAlreadyExistsError",
    "StatementFrozenError",
    "StatementIntegrityError",
    "StatementNotFoundError",
    "UnauthorizedError",
    "ValidationError",
]

