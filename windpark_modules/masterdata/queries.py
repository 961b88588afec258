"""Tenant-scoped master data lookups shared by handlers and module services.

Every lookup filters by ``tenant_id``; a record of another tenant is
indistinguishable from a missing one and raises the matching NotFoundError.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from windpark_engines.lease_fees import (
    AreaType,
    CompensationType,
    ParkFeeRates,
    PlotAreaInput,
)
from windpark_kernel.db.types import ZERO
from windpark_kernel.exceptions import FundNotFoundError, ParkNotFoundError
from windpark_modules.masterdata.orm import (
    ACTIVE,
    FundModel,
    LeaseModel,
    LeasePlotModel,
    ParkModel,
    PlotAreaModel,
    PlotModel,
    ShareholderModel,
)


def get_park(session: Session, tenant_id: UUID, park_id: UUID) -> ParkModel:
    park = session.execute(
        select(ParkModel).where(ParkModel.id == park_id, ParkModel.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if park is None:
        raise ParkNotFoundError(str(park_id))
    return park


def get_fund(session: Session, tenant_id: UUID, fund_id: UUID) -> FundModel:
    fund = session.execute(
        select(FundModel).where(FundModel.id == fund_id, FundModel.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if fund is None:
        raise FundNotFoundError(str(fund_id))
    return fund


def active_shareholders(fund: FundModel) -> list[ShareholderModel]:
    return [s for s in fund.shareholders if s.status == ACTIVE]


def load_active_leases(
    session: Session, tenant_id: UUID, park_id: UUID | None = None
) -> list[LeaseModel]:
    """ACTIVE leases of a tenant, optionally restricted to plots of one park."""
    stmt = select(LeaseModel).where(
        LeaseModel.tenant_id == tenant_id, LeaseModel.status == ACTIVE
    )
    if park_id is not None:
        stmt = stmt.where(
            LeaseModel.id.in_(
                select(LeasePlotModel.lease_id)
                .join(PlotModel, PlotModel.id == LeasePlotModel.plot_id)
                .where(PlotModel.park_id == park_id)
            )
        )
    stmt = stmt.order_by(LeaseModel.start_date, LeaseModel.id)
    return list(session.execute(stmt).scalars().all())


def park_fee_rates(park: ParkModel | None) -> ParkFeeRates:
    """Fee rates of a park (all unset when the lease has no park)."""
    if park is None:
        return ParkFeeRates()
    return ParkFeeRates(
        minimum_rent_per_turbine=park.minimum_rent_per_turbine,
        wea_share_percentage=park.wea_share_percentage,
        pool_share_percentage=park.pool_share_percentage,
        weg_rate=park.weg_compensation_per_sqm,
        ausgleich_rate=park.ausgleich_compensation_per_sqm,
        kabel_rate=park.kabel_compensation_per_m,
        sealed_area_rate=park.sealed_area_rate_per_sqm,
    )


def to_area_input(area: PlotAreaModel) -> PlotAreaInput:
    return PlotAreaInput(
        area_type=AreaType(area.area_type),
        area_sqm=area.area_sqm if area.area_sqm is not None else ZERO,
        length_m=area.length_m,
        compensation_type=CompensationType(area.compensation_type or "ANNUAL"),
        compensation_fixed_amount=area.compensation_fixed_amount,
        compensation_percentage=area.compensation_percentage,
    )


def lease_area_inputs(lease: LeaseModel) -> list[PlotAreaInput]:
    return [to_area_input(area) for plot in lease.plots for area in plot.areas]


def lease_park(lease: LeaseModel, park_id: UUID | None = None) -> ParkModel | None:
    """The park a lease belongs to (the requested one, else the first plot's)."""
    for plot in lease.plots:
        if plot.park is not None and (park_id is None or plot.park_id == park_id):
            return plot.park
    return None


def sum_decimals(values: Iterable[Decimal | None]) -> Decimal:
    return sum((v for v in values if v is not None), ZERO)
