"""
Settlement input loading.

Turns park master data into the engine's ``SettlementInput``:

    park (tenant-scoped) -> fee rates, commissioning year, revenue phase
    plots (ACTIVE) -> ACTIVE leases -> per-lease area figures
    energy revenues -> total park revenue (linked record, else yearly sum)

Area attribution per plot area type:

    POOL          -> pool area (sqm)
    WEA_STANDORT  -> one turbine location
    VERSIEGELT    -> sealed area (sqm)
    WEG           -> road area (sqm)
    AUSGLEICH     -> compensation area (sqm)
    KABEL         -> cable length (metres, falling back to sqm)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from windpark_engines.lease_fees import AreaType
from windpark_engines.settlement import (
    LeaseFeeBasis,
    RevenuePhase,
    SettlementInput,
    get_active_revenue_phase,
    years_in_operation,
)
from windpark_kernel.db.types import ZERO, round_money
from windpark_kernel.exceptions import (
    EnergyRevenueNotFoundError,
    SettlementDataIncompleteError,
)
from windpark_modules.masterdata.orm import ACTIVE, EnergyRevenueModel, ParkModel
from windpark_modules.masterdata.queries import get_park, park_fee_rates

# Energy revenue records that count towards the yearly park revenue.
COUNTED_REVENUE_STATUSES = ("CALCULATED", "INVOICED", "CLOSED")


@dataclass(frozen=True)
class LoadedSettlementInput:
    """Engine input plus the provenance recorded in the calculation snapshot."""

    inp: SettlementInput
    park: ParkModel
    phase: RevenuePhase
    revenue_source: str

    def snapshot(self) -> dict[str, Any]:
        rates = self.inp.rates
        return {
            "totalParkRevenueEur": str(self.inp.total_park_revenue),
            "revenueSource": self.revenue_source,
            "revenueSharePercent": str(self.inp.revenue_share_percent),
            "revenuePhase": self.phase.phase_number,
            "minimumRentPerTurbine": str(rates.minimum_rent_per_turbine),
            "weaSharePercentage": str(rates.wea_share_percentage),
            "poolSharePercentage": str(rates.pool_share_percentage),
            "totalWeaCount": self.inp.total_turbine_count,
            "totalPoolAreaSqm": str(self.inp.total_pool_area_sqm),
            "leaseCount": len(self.inp.leases),
        }


def _require_rates(park: ParkModel) -> None:
    park_id = str(park.id)
    if park.commissioning_date is None:
        raise SettlementDataIncompleteError(park_id, "commissioning date missing")
    if park.minimum_rent_per_turbine is None:
        raise SettlementDataIncompleteError(park_id, "minimum rent per turbine missing")
    if park.wea_share_percentage is None:
        raise SettlementDataIncompleteError(park_id, "turbine site share missing")
    if park.pool_share_percentage is None:
        raise SettlementDataIncompleteError(park_id, "pool area share missing")


def _revenue_phase(park: ParkModel, year: int) -> RevenuePhase:
    phases = [
        RevenuePhase(
            phase_number=p.phase_number,
            start_year=p.start_year,
            end_year=p.end_year,
            revenue_share_percentage=p.revenue_share_percentage,
        )
        for p in park.revenue_phases
    ]
    commissioning_year = park.commissioning_date.year
    phase = get_active_revenue_phase(phases, commissioning_year, year)
    if phase is None:
        raise SettlementDataIncompleteError(
            str(park.id),
            f"no revenue phase for operating year "
            f"{years_in_operation(commissioning_year, year)} ({year})",
        )
    return phase


def load_park_revenue(
    session: Session,
    tenant_id: UUID,
    park_id: UUID,
    year: int,
    linked_energy_revenue_id: UUID | None = None,
) -> tuple[Decimal, str]:
    """Total park revenue of a year and where it came from."""
    if linked_energy_revenue_id is not None:
        linked = session.execute(
            select(EnergyRevenueModel).where(
                EnergyRevenueModel.id == linked_energy_revenue_id,
                EnergyRevenueModel.tenant_id == tenant_id,
                EnergyRevenueModel.park_id == park_id,
            )
        ).scalar_one_or_none()
        if linked is None:
            raise EnergyRevenueNotFoundError(str(linked_energy_revenue_id))
        return linked.net_operator_revenue_eur, "linked"

    total = session.execute(
        select(func.coalesce(func.sum(EnergyRevenueModel.net_operator_revenue_eur), 0)).where(
            EnergyRevenueModel.tenant_id == tenant_id,
            EnergyRevenueModel.park_id == park_id,
            EnergyRevenueModel.year == year,
            EnergyRevenueModel.status.in_(COUNTED_REVENUE_STATUSES),
        )
    ).scalar_one()
    return Decimal(str(total)), "aggregated"


def lease_bases(park: ParkModel) -> tuple[LeaseFeeBasis, ...]:
    """Per-lease area figures of the park's ACTIVE plots and leases."""
    figures: dict[UUID, dict[str, Any]] = {}
    order: dict[UUID, tuple] = {}

    for plot in park.plots:
        if plot.status != ACTIVE:
            continue
        for lease_plot in plot.lease_plots:
            lease = lease_plot.lease
            if lease is None or lease.status != ACTIVE:
                continue
            entry = figures.setdefault(
                lease.id,
                {
                    "lessor_id": lease.lessor_id,
                    "pool": ZERO,
                    "turbines": 0,
                    "sealed": ZERO,
                    "road": ZERO,
                    "compensation": ZERO,
                    "cable": ZERO,
                },
            )
            order[lease.id] = (lease.start_date, str(lease.id))
            for area in plot.areas:
                sqm = area.area_sqm or ZERO
                area_type = AreaType(area.area_type)
                if area_type == AreaType.POOL:
                    entry["pool"] += sqm
                elif area_type == AreaType.WEA_STANDORT:
                    entry["turbines"] += 1
                elif area_type == AreaType.VERSIEGELT:
                    entry["sealed"] += sqm
                elif area_type == AreaType.WEG:
                    entry["road"] += sqm
                elif area_type == AreaType.AUSGLEICH:
                    entry["compensation"] += sqm
                elif area_type == AreaType.KABEL:
                    entry["cable"] += area.length_m if area.length_m is not None else sqm

    return tuple(
        LeaseFeeBasis(
            lease_id=lease_id,
            lessor_id=figures[lease_id]["lessor_id"],
            pool_area_sqm=figures[lease_id]["pool"],
            turbine_count=figures[lease_id]["turbines"],
            sealed_area_sqm=figures[lease_id]["sealed"],
            road_area_sqm=figures[lease_id]["road"],
            compensation_area_sqm=figures[lease_id]["compensation"],
            cable_length_m=figures[lease_id]["cable"],
        )
        for lease_id in sorted(figures, key=lambda lid: order[lid])
    )


def load_settlement_input(
    session: Session,
    tenant_id: UUID,
    park_id: UUID,
    year: int,
    linked_energy_revenue_id: UUID | None = None,
    manual_revenue: Decimal | None = None,
) -> LoadedSettlementInput:
    """
    Load everything the settlement engine needs for one park and year.

    A positive ``manual_revenue`` overrides the stored revenue.

    Raises:
        ParkNotFoundError: park missing or owned by another tenant.
        SettlementDataIncompleteError: fee configuration or revenue phase
            missing.
        EnergyRevenueNotFoundError: linked revenue record missing.
    """
    park = get_park(session, tenant_id, park_id)
    _require_rates(park)
    phase = _revenue_phase(park, year)

    revenue, source = load_park_revenue(
        session, tenant_id, park_id, year, linked_energy_revenue_id
    )
    if manual_revenue is not None and manual_revenue > ZERO:
        revenue, source = manual_revenue, "manual"

    inp = SettlementInput(
        park_id=park.id,
        year=year,
        total_park_revenue=round_money(revenue),
        revenue_share_percent=phase.revenue_share_percentage,
        rates=park_fee_rates(park),
        total_turbine_count=len(park.active_turbines),
        leases=lease_bases(park),
    )
    return LoadedSettlementInput(inp=inp, park=park, phase=phase, revenue_source=source)
