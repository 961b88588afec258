"""
windpark_config -- single public entrypoint for billing configuration.

Responsibility:
    Provides ``get_active_config()``, the one way to obtain the billing
    configuration (tax rates, number prefixes, payment terms, scheduler
    interval, settlement component tax treatment) at runtime, and
    ``ConfiguredTenantSettingsProvider``, which serves per-tenant settings
    from it.

Architecture position:
    Configuration -- sits above ``windpark_kernel`` and below
    ``windpark_modules`` / ``windpark_billing``.  The kernel never imports
    from here.

Failure modes:
    - ``FileNotFoundError`` -- configuration file missing.
    - ``KeyError`` / ``ValueError`` -- schema validation failures.

Audit relevance:
    Every ``get_active_config()`` call emits a ``billing_config_loaded`` log
    entry with config_id, version and checksum.
"""

from __future__ import annotations

from pathlib import Path
from uuid import UUID

from windpark_config.loader import load_configuration
from windpark_config.schema import BillingConfiguration
from windpark_kernel.domain.tenant import TenantSettings
from windpark_kernel.logging_config import get_logger

logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | None = None) -> BillingConfiguration:
    """Load the active billing configuration.

    Args:
        path: Optional YAML file.  Defaults to ``sets/default.yaml``.
    """
    config_path = path or _DEFAULT_CONFIG_PATH
    config = load_configuration(config_path)
    logger.info(
        "billing_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "tenant_override_count": len(config.tenant_overrides),
        },
    )
    return config


class ConfiguredTenantSettingsProvider:
    """TenantSettingsProvider backed by a BillingConfiguration."""

    def __init__(self, config: BillingConfiguration):
        self._config = config

    def get_tenant_settings(self, tenant_id: UUID) -> TenantSettings:
        override = self._config.override_for(tenant_id)
        payment_term_days = self._config.default_payment_term_days
        sender_name = None
        if override is not None:
            if override.payment_term_days is not None:
                payment_term_days = override.payment_term_days
            sender_name = override.sender_name
        return TenantSettings(
            tenant_id=tenant_id,
            payment_term_days=payment_term_days,
            sender_name=sender_name,
        )


__all__ = [
    "BillingConfiguration",
    "ConfiguredTenantSettingsProvider",
    "get_active_config",
]
