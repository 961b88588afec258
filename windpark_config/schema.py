"""
BillingConfiguration schema.

The human-authored YAML set is parsed by the loader into these frozen types.
Nothing here performs I/O; every type validates its own values on
construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from windpark_kernel.domain.values import InvoiceType, TaxType

# ---------------------------------------------------------------------------
# Tax
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxRateConfig:
    """VAT rates in percent."""

    standard: Decimal = Decimal("19")
    reduced: Decimal = Decimal("7")
    exempt: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        for name in ("standard", "reduced", "exempt"):
            if getattr(self, name) < 0:
                raise ValueError(f"tax rate {name} cannot be negative")

    def as_mapping(self) -> dict[TaxType, Decimal]:
        return {
            TaxType.STANDARD: self.standard,
            TaxType.REDUCED: self.reduced,
            TaxType.EXEMPT: self.exempt,
        }


# ---------------------------------------------------------------------------
# Numbering
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NumberingConfig:
    """Document number prefixes and widths."""

    invoice_prefix: str = "RE"
    credit_note_prefix: str = "GS"
    distribution_prefix: str = "AS"
    invoice_digits: int = 5
    distribution_digits: int = 3

    def __post_init__(self) -> None:
        if self.invoice_prefix == self.credit_note_prefix:
            raise ValueError("invoice and credit note prefixes must differ")
        if self.invoice_digits < 1 or self.distribution_digits < 1:
            raise ValueError("number widths must be positive")

    def prefixes(self) -> dict[InvoiceType, str]:
        return {
            InvoiceType.INVOICE: self.invoice_prefix,
            InvoiceType.CREDIT_NOTE: self.credit_note_prefix,
        }


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SchedulerConfig:
    """Rule scheduler loop settings."""

    tick_interval_seconds: float = 60.0
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be positive")


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettlementConfig:
    """Lease revenue settlement defaults.

    ``component_tax_types`` maps a fee component name (POOL_AREA,
    TURBINE_SITE, SEALED_AREA, ROAD_USAGE, COMPENSATION_AREA, CABLE_ROUTE)
    to its VAT treatment.  Unlisted components are EXEMPT.
    """

    component_tax_types: tuple[tuple[str, TaxType], ...] = (
        ("POOL_AREA", TaxType.STANDARD),
    )
    default_wea_share_percentage: Decimal = Decimal("10")
    default_pool_share_percentage: Decimal = Decimal("90")

    def tax_type_for(self, component: str) -> TaxType:
        for name, tax_type in self.component_tax_types:
            if name == component:
                return tax_type
        return TaxType.EXEMPT


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TenantOverride:
    """Per-tenant overrides of the billing defaults."""

    tenant_id: UUID
    payment_term_days: int | None = None
    sender_name: str | None = None


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BillingConfiguration:
    """Complete, validated billing configuration set."""

    config_id: str
    version: int = 1
    default_payment_term_days: int = 30
    tax_rates: TaxRateConfig = field(default_factory=TaxRateConfig)
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    tenant_overrides: tuple[TenantOverride, ...] = ()
    checksum: str = ""

    def __post_init__(self) -> None:
        if self.default_payment_term_days < 0:
            raise ValueError("default_payment_term_days cannot be negative")
        seen: set[UUID] = set()
        for override in self.tenant_overrides:
            if override.tenant_id in seen:
                raise ValueError(f"duplicate tenant override {override.tenant_id}")
            seen.add(override.tenant_id)

    def override_for(self, tenant_id: UUID) -> TenantOverride | None:
        for override in self.tenant_overrides:
            if override.tenant_id == tenant_id:
                return override
        return None
