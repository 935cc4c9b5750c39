"""
Property billing policy lookups behind an explicit TTL cache.

``PolicySource`` is the read-only collaborator the billing service asks for
a property's rates, late-fee rule and due day.  Lookups are cached per
property for ``ttl_seconds``; ``invalidate()`` forces the next lookup to
re-read the configuration.
"""

from __future__ import annotations

from collections.abc import Callable

from settlement_config.schema import PropertyBillingPolicy, SettlementConfig
from settlement_kernel.domain.clock import Clock
from settlement_kernel.exceptions import PolicyMissingError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.utils.ttl_cache import TTLCache

logger = get_logger("config.policy_source")


class PolicySource:
    """Cached property-policy lookup.

    ``load_config`` is called on every cache miss, so a source built over
    ``lambda: load_config(path)`` picks up edits to the YAML file once the
    entry expires or is invalidated.
    """

    def __init__(
        self,
        load_config: Callable[[], SettlementConfig],
        ttl_seconds: float = 300,
        clock: Clock | None = None,
    ):
        self._load_config = load_config
        self._cache: TTLCache[str, PropertyBillingPolicy] = TTLCache(
            ttl_seconds, clock=clock, name="property_policy"
        )

    @classmethod
    def from_config(cls, config: SettlementConfig, clock: Clock | None = None) -> PolicySource:
        return cls(lambda: config, ttl_seconds=config.policy_cache_ttl_seconds, clock=clock)

    def get(self, property_id: str) -> PropertyBillingPolicy:
        """
        Return the billing policy for ``property_id``.

        Raises:
            PolicyMissingError: If neither the property nor a ``*`` fallback
                has a policy.
        """
        return self._cache.get_or_load(str(property_id), self._load)

    def _load(self, property_id: str) -> PropertyBillingPolicy:
        policy = self._load_config().policy_for(property_id)
        if policy is None:
            raise PolicyMissingError(property_id)
        logger.debug(
            "property_policy_loaded",
            extra={"property_id": property_id, "policy_property_id": policy.property_id},
        )
        return policy

    def invalidate(self, property_id: str | None = None) -> None:
        self._cache.invalidate(None if property_id is None else str(property_id))
