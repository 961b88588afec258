"""
Module: windpark_engines.settlement
Responsibility:
    Lease revenue settlement math for a wind park: revenue-share fee versus
    minimum guarantee, split into the turbine-site and pool parts, per-lease
    distribution, area surcharges, advance periods and the deduction of paid
    advances in the final settlement.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Input is assembled by
    ``windpark_modules.lease_revenue.loader``.

Invariants enforced:
    - ``actual_fee = max(calculated_fee, minimum_guarantee)``.
    - ``used_minimum`` is true only when the minimum is strictly greater.
    - When every turbine and every pooled square metre of the park is
      attributed to a lease, the pool and turbine-site fees of all items add
      up exactly to the pool and turbine-site totals (cent residue to the
      lease with the largest share).
    - ``subtotal == sum(components)`` and ``subtotal == taxable + exempt``.

Failure modes:
    - ValueError for an advance without interval.

Audit relevance:
    The full calculation result is snapshotted on the settlement header
    (``calculation_details``) so each invoice can be traced back to inputs.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from windpark_engines.allocation import assign_residue
from windpark_engines.lease_fees import ParkFeeRates, month_bounds, month_name
from windpark_engines.tracer import traced_engine
from windpark_kernel.db.types import HUNDRED, ZERO, round_money, round_percent
from windpark_kernel.domain.values import TaxType


class SettlementPeriodType(str, Enum):
    ADVANCE = "ADVANCE"
    FINAL = "FINAL"


class AdvanceInterval(str, Enum):
    """Advance payment interval; the divisor splits the yearly minimum."""

    YEARLY = "YEARLY"
    QUARTERLY = "QUARTERLY"
    MONTHLY = "MONTHLY"

    @property
    def divisor(self) -> Decimal:
        return {
            AdvanceInterval.YEARLY: Decimal("1"),
            AdvanceInterval.QUARTERLY: Decimal("4"),
            AdvanceInterval.MONTHLY: Decimal("12"),
        }[self]


class SettlementComponent(str, Enum):
    """Fee components of a settlement item (in invoice line order)."""

    POOL_AREA = "POOL_AREA"
    TURBINE_SITE = "TURBINE_SITE"
    SEALED_AREA = "SEALED_AREA"
    ROAD_USAGE = "ROAD_USAGE"
    COMPENSATION_AREA = "COMPENSATION_AREA"
    CABLE_ROUTE = "CABLE_ROUTE"


COMPONENT_LABELS: Mapping[SettlementComponent, str] = {
    SettlementComponent.POOL_AREA: "Poolflaechen-Anteil",
    SettlementComponent.TURBINE_SITE: "WEA-Standort",
    SettlementComponent.SEALED_AREA: "Versiegelte Flaeche",
    SettlementComponent.ROAD_USAGE: "Wegenutzung",
    SettlementComponent.COMPENSATION_AREA: "Ausgleichsflaeche",
    SettlementComponent.CABLE_ROUTE: "Kabeltrasse",
}


def default_tax_treatment(component: SettlementComponent) -> TaxType:
    """Pool share is subject to VAT, all other components are exempt."""
    if component == SettlementComponent.POOL_AREA:
        return TaxType.STANDARD
    return TaxType.EXEMPT


TaxTreatment = Callable[[SettlementComponent], TaxType]


# ---------------------------------------------------------------------------
# Revenue phases
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RevenuePhase:
    """Revenue share of a park during a range of operating years."""

    phase_number: int
    start_year: int
    end_year: int | None
    revenue_share_percentage: Decimal

    def covers(self, operating_year: int) -> bool:
        if operating_year < self.start_year:
            return False
        return self.end_year is None or operating_year <= self.end_year


def years_in_operation(commissioning_year: int, settlement_year: int) -> int:
    """Operating year number; the commissioning year is year 1."""
    return settlement_year - commissioning_year + 1


def get_active_revenue_phase(
    phases: Sequence[RevenuePhase], commissioning_year: int, settlement_year: int
) -> RevenuePhase | None:
    """First phase (by phase number) covering the operating year."""
    operating_year = years_in_operation(commissioning_year, settlement_year)
    for phase in sorted(phases, key=lambda p: p.phase_number):
        if phase.covers(operating_year):
            return phase
    return None


# ---------------------------------------------------------------------------
# Inputs / results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LeaseFeeBasis:
    """Area figures attributed to one lease of the park."""

    lease_id: UUID
    lessor_id: UUID
    pool_area_sqm: Decimal = ZERO
    turbine_count: int = 0
    sealed_area_sqm: Decimal = ZERO
    road_area_sqm: Decimal = ZERO
    compensation_area_sqm: Decimal = ZERO
    cable_length_m: Decimal = ZERO


@dataclass(frozen=True)
class SettlementInput:
    park_id: UUID
    year: int
    total_park_revenue: Decimal
    revenue_share_percent: Decimal
    rates: ParkFeeRates
    total_turbine_count: int
    leases: tuple[LeaseFeeBasis, ...]

    @property
    def total_pool_area_sqm(self) -> Decimal:
        return sum((lease.pool_area_sqm for lease in self.leases), ZERO)


@dataclass(frozen=True)
class SettlementItemResult:
    lease_id: UUID
    lessor_id: UUID
    pool_area_sqm: Decimal
    pool_share_percent: Decimal
    pool_fee: Decimal
    turbine_count: int
    standort_fee: Decimal
    sealed_area_sqm: Decimal
    sealed_area_fee: Decimal
    road_usage_fee: Decimal
    compensation_area_fee: Decimal
    cable_fee: Decimal
    subtotal: Decimal
    taxable_amount: Decimal
    exempt_amount: Decimal
    advance_paid: Decimal = ZERO
    remainder: Decimal = ZERO

    def components(self) -> dict[SettlementComponent, Decimal]:
        return {
            SettlementComponent.POOL_AREA: self.pool_fee,
            SettlementComponent.TURBINE_SITE: self.standort_fee,
            SettlementComponent.SEALED_AREA: self.sealed_area_fee,
            SettlementComponent.ROAD_USAGE: self.road_usage_fee,
            SettlementComponent.COMPENSATION_AREA: self.compensation_area_fee,
            SettlementComponent.CABLE_ROUTE: self.cable_fee,
        }


@dataclass(frozen=True)
class SettlementCalculation:
    calculated_fee: Decimal
    minimum_guarantee: Decimal
    actual_fee: Decimal
    used_minimum: bool
    standort_total: Decimal
    pool_total: Decimal
    items: tuple[SettlementItemResult, ...]

    @property
    def subtotal_sum(self) -> Decimal:
        return sum((i.subtotal for i in self.items), ZERO)


# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------


def split_base_fee(base_fee: Decimal, rates: ParkFeeRates) -> tuple[Decimal, Decimal]:
    """Split a fee into (turbine-site total, pool total)."""
    wea_share = rates.wea_share_percentage or ZERO
    pool_share = rates.pool_share_percentage or ZERO
    standort_total = round_money(base_fee * wea_share / HUNDRED)
    if wea_share + pool_share == HUNDRED:
        pool_total = base_fee - standort_total
    else:
        pool_total = round_money(base_fee * pool_share / HUNDRED)
    return standort_total, pool_total


def _distribute(
    inp: SettlementInput,
    standort_total: Decimal,
    pool_total: Decimal,
    divisor: Decimal,
    tax_treatment: TaxTreatment,
) -> tuple[SettlementItemResult, ...]:
    leases = inp.leases
    if not leases:
        return ()
    rates = inp.rates
    total_pool = inp.total_pool_area_sqm
    total_turbines = inp.total_turbine_count

    pool_pcts = [
        round_percent(lease.pool_area_sqm / total_pool * HUNDRED) if total_pool > ZERO else ZERO
        for lease in leases
    ]
    pool_fees = [round_money(pool_total * pct / HUNDRED) for pct in pool_pcts]
    if total_pool > ZERO:
        pool_fees = assign_residue(
            pool_fees, pool_total, [lease.pool_area_sqm for lease in leases]
        )

    standort_fees = [
        round_money(standort_total * lease.turbine_count / total_turbines)
        if total_turbines > 0
        else ZERO
        for lease in leases
    ]
    attributed_turbines = sum(lease.turbine_count for lease in leases)
    if total_turbines > 0 and attributed_turbines == total_turbines:
        standort_fees = assign_residue(
            standort_fees,
            standort_total,
            [Decimal(lease.turbine_count) for lease in leases],
        )

    sealed_rate = rates.effective_sealed_rate
    weg_rate = rates.weg_rate or ZERO
    ausgleich_rate = rates.ausgleich_rate or ZERO
    kabel_rate = rates.kabel_rate or ZERO

    items: list[SettlementItemResult] = []
    for lease, pct, pool_fee, standort_fee in zip(leases, pool_pcts, pool_fees, standort_fees):
        sealed_fee = round_money(lease.sealed_area_sqm * sealed_rate / divisor)
        road_fee = round_money(lease.road_area_sqm * weg_rate / divisor)
        compensation_fee = round_money(lease.compensation_area_sqm * ausgleich_rate / divisor)
        cable_fee = round_money(lease.cable_length_m * kabel_rate / divisor)

        components = {
            SettlementComponent.POOL_AREA: pool_fee,
            SettlementComponent.TURBINE_SITE: standort_fee,
            SettlementComponent.SEALED_AREA: sealed_fee,
            SettlementComponent.ROAD_USAGE: road_fee,
            SettlementComponent.COMPENSATION_AREA: compensation_fee,
            SettlementComponent.CABLE_ROUTE: cable_fee,
        }
        taxable = sum(
            (amount for comp, amount in components.items() if tax_treatment(comp) != TaxType.EXEMPT),
            ZERO,
        )
        subtotal = sum(components.values(), ZERO)

        items.append(
            SettlementItemResult(
                lease_id=lease.lease_id,
                lessor_id=lease.lessor_id,
                pool_area_sqm=lease.pool_area_sqm,
                pool_share_percent=pct,
                pool_fee=pool_fee,
                turbine_count=lease.turbine_count,
                standort_fee=standort_fee,
                sealed_area_sqm=lease.sealed_area_sqm,
                sealed_area_fee=sealed_fee,
                road_usage_fee=road_fee,
                compensation_area_fee=compensation_fee,
                cable_fee=cable_fee,
                subtotal=subtotal,
                taxable_amount=taxable,
                exempt_amount=subtotal - taxable,
            )
        )
    return tuple(items)


@traced_engine(
    "lease_revenue_settlement", "1.0", fingerprint_fields=("inp",)
)
def calculate_settlement_fees(
    *,
    inp: SettlementInput,
    tax_treatment: TaxTreatment = default_tax_treatment,
) -> SettlementCalculation:
    """Final (yearly) settlement based on actual park revenue."""
    calculated_fee = round_money(inp.total_park_revenue * inp.revenue_share_percent / HUNDRED)
    minimum_rent = inp.rates.minimum_rent_per_turbine or ZERO
    minimum_guarantee = round_money(minimum_rent * inp.total_turbine_count)
    actual_fee = max(calculated_fee, minimum_guarantee)
    used_minimum = minimum_guarantee > calculated_fee

    standort_total, pool_total = split_base_fee(actual_fee, inp.rates)
    items = _distribute(inp, standort_total, pool_total, Decimal("1"), tax_treatment)

    return SettlementCalculation(
        calculated_fee=calculated_fee,
        minimum_guarantee=minimum_guarantee,
        actual_fee=actual_fee,
        used_minimum=used_minimum,
        standort_total=standort_total,
        pool_total=pool_total,
        items=items,
    )


@traced_engine(
    "lease_revenue_advance", "1.0", fingerprint_fields=("inp", "interval")
)
def calculate_advance_fees(
    *,
    inp: SettlementInput,
    interval: AdvanceInterval,
    tax_treatment: TaxTreatment = default_tax_treatment,
) -> SettlementCalculation:
    """Advance for one interval, based only on the minimum guarantee."""
    if interval is None:
        raise ValueError("Advance settlements require an advance interval")
    divisor = AdvanceInterval(interval).divisor
    minimum_rent = inp.rates.minimum_rent_per_turbine or ZERO
    yearly_minimum = round_money(minimum_rent * inp.total_turbine_count)
    period_amount = round_money(yearly_minimum / divisor)

    standort_total, pool_total = split_base_fee(period_amount, inp.rates)
    items = _distribute(inp, standort_total, pool_total, divisor, tax_treatment)

    return SettlementCalculation(
        calculated_fee=ZERO,
        minimum_guarantee=period_amount,
        actual_fee=sum((i.subtotal for i in items), ZERO),
        used_minimum=True,
        standort_total=standort_total,
        pool_total=pool_total,
        items=items,
    )


def apply_advance_deductions(
    items: Sequence[SettlementItemResult],
    advance_paid_by_lease: Mapping[UUID, Decimal],
) -> tuple[SettlementItemResult, ...]:
    """Attach paid advances and ``remainder = subtotal - advance_paid``.

    The remainder is negative when more was advanced than owed.
    """
    result = []
    for item in items:
        paid = round_money(advance_paid_by_lease.get(item.lease_id, ZERO))
        result.append(
            dataclasses.replace(item, advance_paid=paid, remainder=item.subtotal - paid)
        )
    return tuple(result)


# ---------------------------------------------------------------------------
# Service periods
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServicePeriod:
    start: date
    end: date
    label: str


def quarter_of(month: int) -> int:
    return (month - 1) // 3 + 1


def settlement_service_period(
    period_type: SettlementPeriodType,
    year: int,
    month: int | None = None,
    interval: AdvanceInterval | None = None,
) -> ServicePeriod:
    """Service period and its German label for a settlement."""
    if period_type == SettlementPeriodType.ADVANCE and interval == AdvanceInterval.MONTHLY:
        if month is None:
            raise ValueError("Monthly advances require a month")
        start, end = month_bounds(year, month)
        return ServicePeriod(start, end, f"{month_name(month)} {year}")
    if period_type == SettlementPeriodType.ADVANCE and interval == AdvanceInterval.QUARTERLY:
        if month is None:
            raise ValueError("Quarterly advances require a month")
        quarter = quarter_of(month)
        first_month = (quarter - 1) * 3 + 1
        start, _ = month_bounds(year, first_month)
        _, end = month_bounds(year, first_month + 2)
        return ServicePeriod(start, end, f"Quartal {quarter} - {year}")
    return ServicePeriod(date(year, 1, 1), date(year, 12, 31), f"Jahr {year}")
