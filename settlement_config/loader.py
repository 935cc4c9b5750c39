"""
Configuration Loader (``settlement_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into typed
``settlement_config.schema`` dataclass instances.  Runtime callers go
through ``settlement_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Money and rates are parsed to ``Decimal`` from their string form; a YAML
  float is rejected.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import (
    LateFeePolicy,
    LateFeeType,
    PropertyBillingPolicy,
    SettlementConfig,
    SignatureSettings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML document must be a mapping")
    return data


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a Decimal from a YAML string or int.  Floats are rejected."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(
            f"{field_name}: quote decimal values in YAML (got {value!r})"
        )
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name}: not a decimal: {value!r}") from exc


def parse_late_fee(data: dict[str, Any] | None) -> LateFeePolicy:
    if not data:
        return LateFeePolicy.none()
    return LateFeePolicy(
        fee_type=LateFeeType(data.get("type", "none")),
        amount=parse_decimal(data.get("amount", "0"), "late_fee.amount"),
        grace_period_days=int(data.get("grace_period_days", 0)),
    )


def parse_property_policy(data: dict[str, Any]) -> PropertyBillingPolicy:
    """
    Parse a ``PropertyBillingPolicy`` from a dict.

    Raises:
        KeyError: if ``property_id`` is missing.
        ValueError: if a value fails validation.
    """
    property_id = str(data["property_id"])
    rates = {
        str(utility): parse_decimal(rate, f"{property_id}.rates.{utility}")
        for utility, rate in (data.get("rates") or {}).items()
    }
    rollover = {
        str(utility): parse_decimal(ceiling, f"{property_id}.meter_rollover.{utility}")
        for utility, ceiling in (data.get("meter_rollover") or {}).items()
    }
    return PropertyBillingPolicy(
        property_id=property_id,
        rates=rates,
        meter_rollover=rollover,
        billing_due_day=int(data.get("billing_due_day", 5)),
        late_fee=parse_late_fee(data.get("late_fee")),
        prorate_partial_periods=bool(data.get("prorate_partial_periods", False)),
        association_dues=parse_decimal(
            data.get("association_dues", "0"), f"{property_id}.association_dues"
        ),
    )


def parse_signature_settings(data: dict[str, Any] | None) -> SignatureSettings:
    data = data or {}
    return SignatureSettings(
        otp_ttl_minutes=int(data.get("otp_ttl_minutes", 10)),
        max_attempts=int(data.get("max_attempts", 5)),
    )


def parse_config(data: dict[str, Any]) -> SettlementConfig:
    """
    Parse the whole configuration document.

    Raises:
        KeyError: if ``config_id``, ``version`` or ``database.url`` is missing.
    """
    database = data["database"]
    policies = tuple(
        parse_property_policy(p) for p in (data.get("properties") or [])
    )
    seen: set[str] = set()
    for policy in policies:
        if policy.property_id in seen:
            raise ValueError(f"Duplicate billing policy for property {policy.property_id}")
        seen.add(policy.property_id)

    return SettlementConfig(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        database_url=str(database["url"]),
        signature=parse_signature_settings(data.get("signature")),
        policies=policies,
        field_key=data.get("field_key"),
        policy_cache_ttl_seconds=int(data.get("policy_cache_ttl_seconds", 300)),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> SettlementConfig:
    """Load and parse the configuration file at ``path``."""
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
