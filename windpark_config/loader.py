"""
Configuration Loader (``windpark_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``windpark_config.schema`` dataclasses.  Runtime callers use
``windpark_config.get_active_config()``; this module is the parsing step.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required keys have no silent defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id``  -> ``KeyError`` propagates.
* Non-numeric rates  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from windpark_config.schema import (
    BillingConfiguration,
    NumberingConfig,
    SchedulerConfig,
    SettlementConfig,
    TaxRateConfig,
    TenantOverride,
)
from windpark_kernel.db.types import to_decimal
from windpark_kernel.domain.values import TaxType


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 over the canonical JSON form of a parsed document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_decimal(value: Any, name: str) -> Decimal:
    try:
        return to_decimal(value)
    except ValueError as exc:
        raise ValueError(f"{name}: {exc}") from exc


def parse_tax_rates(data: dict[str, Any]) -> TaxRateConfig:
    defaults = TaxRateConfig()
    return TaxRateConfig(
        standard=parse_decimal(data.get("standard", defaults.standard), "tax_rates.standard"),
        reduced=parse_decimal(data.get("reduced", defaults.reduced), "tax_rates.reduced"),
        exempt=parse_decimal(data.get("exempt", defaults.exempt), "tax_rates.exempt"),
    )


def parse_numbering(data: dict[str, Any]) -> NumberingConfig:
    defaults = NumberingConfig()
    return NumberingConfig(
        invoice_prefix=str(data.get("invoice_prefix", defaults.invoice_prefix)),
        credit_note_prefix=str(data.get("credit_note_prefix", defaults.credit_note_prefix)),
        distribution_prefix=str(data.get("distribution_prefix", defaults.distribution_prefix)),
        invoice_digits=int(data.get("invoice_digits", defaults.invoice_digits)),
        distribution_digits=int(data.get("distribution_digits", defaults.distribution_digits)),
    )


def parse_scheduler(data: dict[str, Any]) -> SchedulerConfig:
    return SchedulerConfig(
        tick_interval_seconds=float(data.get("tick_interval_seconds", 60)),
        enabled=bool(data.get("enabled", True)),
    )


def parse_settlement(data: dict[str, Any]) -> SettlementConfig:
    defaults = SettlementConfig()
    raw_components = data.get("component_tax_types")
    if raw_components is None:
        components = defaults.component_tax_types
    else:
        try:
            components = tuple(
                (str(name), TaxType(str(value).upper()))
                for name, value in raw_components.items()
            )
        except ValueError as exc:
            raise ValueError(f"settlement.component_tax_types: {exc}") from exc
    return SettlementConfig(
        component_tax_types=components,
        default_wea_share_percentage=parse_decimal(
            data.get("default_wea_share_percentage", defaults.default_wea_share_percentage),
            "settlement.default_wea_share_percentage",
        ),
        default_pool_share_percentage=parse_decimal(
            data.get("default_pool_share_percentage", defaults.default_pool_share_percentage),
            "settlement.default_pool_share_percentage",
        ),
    )


def parse_tenant_override(tenant_id: str, data: dict[str, Any]) -> TenantOverride:
    payment_term = data.get("payment_term_days")
    return TenantOverride(
        tenant_id=UUID(str(tenant_id)),
        payment_term_days=int(payment_term) if payment_term is not None else None,
        sender_name=data.get("sender_name"),
    )


def parse_configuration(data: dict[str, Any]) -> BillingConfiguration:
    """
    Parse a full configuration document.

    Raises:
        KeyError: if ``config_id`` is missing.
        ValueError: if any value fails validation.
    """
    defaults = data.get("defaults", {})
    tenants = data.get("tenants") or {}
    return BillingConfiguration(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        default_payment_term_days=int(defaults.get("payment_term_days", 30)),
        tax_rates=parse_tax_rates(data.get("tax_rates", {})),
        numbering=parse_numbering(data.get("numbering", {})),
        scheduler=parse_scheduler(data.get("scheduler", {})),
        settlement=parse_settlement(data.get("settlement", {})),
        tenant_overrides=tuple(
            parse_tenant_override(tenant_id, values or {})
            for tenant_id, values in tenants.items()
        ),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> BillingConfiguration:
    """Load and parse a configuration file."""
    return parse_configuration(load_yaml_file(path))
