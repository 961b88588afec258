"""
Lease Revenue Settlement Domain Models.

Frozen DTOs returned by ``LeaseRevenueSettlementService``.  The settlement
status machine is forward-only; ``ALLOWED_TRANSITIONS`` is its single source
of truth.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from windpark_engines.settlement import AdvanceInterval, SettlementPeriodType
from windpark_kernel.db.types import ZERO
from windpark_modules.invoicing.models import Invoice


class SettlementStatus(str, Enum):
    OPEN = "OPEN"
    CALCULATED = "CALCULATED"
    SETTLED = "SETTLED"
    CLOSED = "CLOSED"


ALLOWED_TRANSITIONS: dict[str, frozenset[SettlementStatus]] = {
    "calculate": frozenset({SettlementStatus.OPEN, SettlementStatus.CALCULATED}),
    "settle": frozenset({SettlementStatus.CALCULATED}),
    "close": frozenset({SettlementStatus.SETTLED}),
}

# Settlements still open for changes; a duplicate request merges into them.
MERGEABLE_STATUSES = frozenset({SettlementStatus.OPEN, SettlementStatus.CALCULATED})

# Advance settlements whose items count as paid when the final settlement
# of the same year is calculated.
ADVANCE_DEDUCTIBLE_STATUSES = frozenset(
    {SettlementStatus.CALCULATED, SettlementStatus.SETTLED, SettlementStatus.CLOSED}
)


@dataclass(frozen=True)
class SettlementItem:
    lease_id: UUID
    lessor_id: UUID
    pool_area_sqm: Decimal
    pool_area_share_percent: Decimal
    pool_fee_eur: Decimal
    turbine_count: int
    standort_fee_eur: Decimal
    sealed_area_sqm: Decimal
    sealed_area_fee_eur: Decimal
    road_usage_fee_eur: Decimal
    compensation_area_fee_eur: Decimal
    cable_fee_eur: Decimal
    subtotal_eur: Decimal
    taxable_amount_eur: Decimal
    exempt_amount_eur: Decimal
    advance_paid_eur: Decimal = ZERO
    remainder_eur: Decimal = ZERO
    invoice_id: UUID | None = None


@dataclass(frozen=True)
class Settlement:
    id: UUID
    tenant_id: UUID
    park_id: UUID
    year: int
    month: int | None
    period_type: SettlementPeriodType
    advance_interval: AdvanceInterval | None
    status: SettlementStatus
    total_park_revenue_eur: Decimal
    revenue_share_percent: Decimal
    calculated_fee_eur: Decimal
    minimum_guarantee_eur: Decimal
    actual_fee_eur: Decimal
    used_minimum: bool
    wea_standort_total_eur: Decimal
    pool_area_total_eur: Decimal
    total_wea_count: int
    total_pool_area_sqm: Decimal
    linked_energy_revenue_id: UUID | None = None
    advance_due_date: date | None = None
    settlement_due_date: date | None = None
    notes: str | None = None
    calculation_details: dict[str, Any] = field(default_factory=dict)
    is_historical: bool = False
    items: tuple[SettlementItem, ...] = ()

    @property
    def subtotal_sum(self) -> Decimal:
        return sum((i.subtotal_eur for i in self.items), ZERO)


@dataclass(frozen=True)
class SettlementCreation:
    """Outcome of ``create``: ``created`` is False when merged into an
    existing OPEN/CALCULATED settlement."""

    settlement: Settlement
    created: bool


@dataclass(frozen=True)
class SettlementInvoices:
    """A settled settlement and the documents generated for it."""

    settlement: Settlement
    invoices: tuple[Invoice, ...]
