"""TenantSettings -- per-tenant billing defaults and the provider protocol.

Settings are resolved once per rule execution (or service call) and passed
explicitly to handlers and module services.  Storage of tenant settings is
an external concern; the kernel only defines the shape and the lookup seam.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from uuid import UUID


@dataclass(frozen=True)
class TenantSettings:
    """Billing defaults of one tenant."""

    tenant_id: UUID
    payment_term_days: int = 30
    currency: str = "EUR"
    sender_name: str | None = None

    def __post_init__(self) -> None:
        if self.payment_term_days < 0:
            raise ValueError("payment_term_days cannot be negative")


@runtime_checkable
class TenantSettingsProvider(Protocol):
    """Protocol for resolving the billing settings of a tenant.

    Implementations: ConfiguredTenantSettingsProvider (windpark_config),
    StaticTenantSettingsProvider (tests, single-tenant setups).
    """

    def get_tenant_settings(self, tenant_id: UUID) -> TenantSettings:
        """Return the settings for ``tenant_id`` (defaults if unknown)."""
        ...


class StaticTenantSettingsProvider:
    """TenantSettingsProvider that serves fixed settings for every tenant."""

    def __init__(self, payment_term_days: int = 30, sender_name: str | None = None):
        self._payment_term_days = payment_term_days
        self._sender_name = sender_name

    def get_tenant_settings(self, tenant_id: UUID) -> TenantSettings:
        return TenantSettings(
            tenant_id=tenant_id,
            payment_term_days=self._payment_term_days,
            sender_name=self._sender_name,
        )
