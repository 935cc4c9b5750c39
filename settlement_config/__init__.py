"""
settlement_config -- single public entrypoint for settlement configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration.  Sits above ``settlement_kernel`` and below
    ``settlement_modules`` / ``settlement_services``.  The kernel MUST NEVER
    import from ``settlement_config``.

Environment:
    SETTLEMENT_CONFIG_PATH    YAML file to load (defaults to sets/default.yaml)
    SETTLEMENT_DATABASE_URL   overrides ``database.url``
    SETTLEMENT_FIELD_KEY      overrides ``field_key`` (Fernet key)

Failure modes:
    - ``FileNotFoundError`` -- configuration file missing.
    - ``yaml.YAMLError`` / ``KeyError`` / ``ValueError`` -- malformed file.

Every successful call emits a ``SETTLEMENT_CONFIG_TRACE`` log entry with
the config id, version and checksum.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from settlement_config.loader import compute_checksum, load_config
from settlement_config.policy_source import PolicySource
from settlement_config.schema import (
    LateFeePolicy,
    LateFeeType,
    PropertyBillingPolicy,
    SettlementConfig,
    SignatureSettings,
)

_logger = logging.getLogger("settlement_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> SettlementConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path; otherwise ``SETTLEMENT_CONFIG_PATH`` or
            the bundled default.
    """
    path = config_path or Path(
        os.environ.get("SETTLEMENT_CONFIG_PATH", str(_DEFAULT_CONFIG_PATH))
    )
    config = load_config(path)

    overrides = {}
    if os.environ.get("SETTLEMENT_DATABASE_URL"):
        overrides["database_url"] = os.environ["SETTLEMENT_DATABASE_URL"]
    if os.environ.get("SETTLEMENT_FIELD_KEY"):
        overrides["field_key"] = os.environ["SETTLEMENT_FIELD_KEY"]
    if overrides:
        config = dataclasses.replace(config, **overrides)

    _logger.info(
        "SETTLEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "SETTLEMENT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "policy_count": len(config.policies),
            "env_overrides": sorted(overrides),
        },
    )
    return config


__all__ = [
    "LateFeePolicy",
    "LateFeeType",
    "PolicySource",
    "PropertyBillingPolicy",
    "SettlementConfig",
    "SignatureSettings",
    "compute_checksum",
    "get_active_config",
    "load_config",
]
