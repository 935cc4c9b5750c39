"""
Settlement configuration schema.

Defines the typed, frozen data model that YAML configuration is parsed
into.  Property billing policies carry everything the billing computer
needs from the outside world: per-utility rates, meter rollover ceilings,
the statement due day, the late-fee policy and whether partial periods are
prorated.

Validation happens in ``__post_init__``; a malformed policy never reaches
a service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class LateFeeType(str, Enum):
    """How a late fee is derived from the overdue balance."""

    NONE = "none"
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    DAILY = "daily"


@dataclass(frozen=True)
class LateFeePolicy:
    """Late-fee rule for a property.

    ``amount`` is a currency amount for ``fixed``, a currency amount per
    day late for ``daily``, and percentage points (``5`` meaning 5%) of the
    overdue balance for ``percentage``.  The fee applies only once a prior
    statement is overdue by more than ``grace_period_days``.
    """

    fee_type: LateFeeType = LateFeeType.NONE
    amount: Decimal = Decimal("0")
    grace_period_days: int = 0

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"late fee amount cannot be negative: {self.amount}")
        if self.grace_period_days < 0:
            raise ValueError(
                f"grace_period_days cannot be negative: {self.grace_period_days}"
            )
        if self.fee_type == LateFeeType.PERCENTAGE and self.amount > 100:
            raise ValueError(f"late fee percentage above 100: {self.amount}")

    @classmethod
    def none(cls) -> LateFeePolicy:
        return cls()


@dataclass(frozen=True)
class PropertyBillingPolicy:
    """Billing policy for one property (or the fallback ``*`` policy)."""

    property_id: str
    rates: dict[str, Decimal] = field(default_factory=dict)
    meter_rollover: dict[str, Decimal] = field(default_factory=dict)
    billing_due_day: int = 5
    late_fee: LateFeePolicy = field(default_factory=LateFeePolicy)
    prorate_partial_periods: bool = False
    association_dues: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if not 1 <= self.billing_due_day <= 28:
            raise ValueError(
                f"billing_due_day must be within 1..28, got {self.billing_due_day}"
            )
        for utility, rate in self.rates.items():
            if rate < 0:
                raise ValueError(f"rate for {utility} cannot be negative: {rate}")
        for utility, ceiling in self.meter_rollover.items():
            if ceiling <= 0:
                raise ValueError(
                    f"meter rollover ceiling for {utility} must be positive: {ceiling}"
                )
        if self.association_dues < 0:
            raise ValueError(
                f"association_dues cannot be negative: {self.association_dues}"
            )


@dataclass(frozen=True)
class SignatureSettings:
    """OTP settings for the lease signature protocol."""

    otp_ttl_minutes: int = 10
    max_attempts: int = 5

    def __post_init__(self) -> None:
        if not 1 <= self.otp_ttl_minutes <= 60:
            raise ValueError(
                f"otp_ttl_minutes must be within 1..60, got {self.otp_ttl_minutes}"
            )
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")


@dataclass(frozen=True)
class SettlementConfig:
    """The complete runtime configuration."""

    config_id: str
    version: int
    database_url: str
    signature: SignatureSettings
    policies: tuple[PropertyBillingPolicy, ...] = ()
    field_key: str | None = None
    policy_cache_ttl_seconds: int = 300
    checksum: str = ""

    def policy_for(self, property_id: str) -> PropertyBillingPolicy | None:
        """Exact property match first, then the ``*`` fallback policy."""
        fallback = None
        for policy in self.policies:
            if policy.property_id == property_id:
                return policy
            if policy.property_id == "*":
                fallback = policy
        return fallback
