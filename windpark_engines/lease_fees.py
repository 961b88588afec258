"""
Module: windpark_engines.lease_fees
Responsibility:
    Monthly lease-fee math used by the lease advance and lease payment
    handlers: day-based proration of a calendar month and the full-month
    amount of a lease derived from its plot areas and the park's fee rates.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Callers convert ORM rows
    into ``PlotAreaInput`` / ``ParkFeeRates`` first.

Invariants enforced:
    - ``calculate_proration_factor`` is exactly 1 for a fully covered month,
      exactly 0 outside the lease, and otherwise billable_days / days_in_month
      rounded to 6 decimals.
    - Amounts are Decimal; the full-month amount is rounded to cents.

Failure modes:
    - ValueError on a month outside 1..12.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from windpark_kernel.db.types import HUNDRED, ZERO, round_factor, round_money

TWELVE = Decimal("12")
ONE = Decimal("1")

GERMAN_MONTH_NAMES: tuple[str, ...] = (
    "Januar",
    "Februar",
    "Maerz",
    "April",
    "Mai",
    "Juni",
    "Juli",
    "August",
    "September",
    "Oktober",
    "November",
    "Dezember",
)


class AreaType(str, Enum):
    """Usage type of a plot area."""

    WEA_STANDORT = "WEA_STANDORT"
    POOL = "POOL"
    WEG = "WEG"
    AUSGLEICH = "AUSGLEICH"
    KABEL = "KABEL"
    VERSIEGELT = "VERSIEGELT"


class CompensationType(str, Enum):
    ANNUAL = "ANNUAL"
    ONE_TIME = "ONE_TIME"


@dataclass(frozen=True)
class PlotAreaInput:
    """One plot area as seen by the fee calculators."""

    area_type: AreaType
    area_sqm: Decimal = ZERO
    length_m: Decimal | None = None
    compensation_type: CompensationType = CompensationType.ANNUAL
    compensation_fixed_amount: Decimal | None = None
    compensation_percentage: Decimal | None = None


@dataclass(frozen=True)
class ParkFeeRates:
    """Fee configuration of a park.  Missing rates count as zero."""

    minimum_rent_per_turbine: Decimal | None = None
    wea_share_percentage: Decimal | None = None
    pool_share_percentage: Decimal | None = None
    weg_rate: Decimal | None = None
    ausgleich_rate: Decimal | None = None
    kabel_rate: Decimal | None = None
    sealed_area_rate: Decimal | None = None

    @property
    def effective_sealed_rate(self) -> Decimal:
        if self.sealed_area_rate is not None:
            return self.sealed_area_rate
        return self.weg_rate or ZERO


def month_name(month: int) -> str:
    """German month name for 1..12."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1..12, got {month}")
    return GERMAN_MONTH_NAMES[month - 1]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1..12, got {month}")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def billable_period(
    year: int, month: int, lease_start: date, lease_end: date | None
) -> tuple[date, date] | None:
    """The part of the month covered by the lease, or None."""
    month_start, month_end = month_bounds(year, month)
    if lease_start > month_end:
        return None
    if lease_end is not None and lease_end < month_start:
        return None
    start = max(lease_start, month_start)
    end = month_end if lease_end is None else min(lease_end, month_end)
    if end < start:
        return None
    return start, end


def calculate_proration_factor(
    year: int, month: int, lease_start: date, lease_end: date | None
) -> Decimal:
    """
    Share of the month covered by the lease (inclusive day count).

    Returns exactly 1 for a full month and 0 when the lease lies outside.
    """
    period = billable_period(year, month, lease_start, lease_end)
    if period is None:
        return ZERO
    days_in_month = calendar.monthrange(year, month)[1]
    billable_days = (period[1] - period[0]).days + 1
    if billable_days == days_in_month:
        return ONE
    return round_factor(Decimal(billable_days) / Decimal(days_in_month))


def _area_monthly_amount(area: PlotAreaInput, rates: ParkFeeRates) -> Decimal:
    minimum_rent = rates.minimum_rent_per_turbine or ZERO

    # A fixed amount takes precedence; one-time payments are not billed monthly
    if area.compensation_fixed_amount is not None and area.compensation_fixed_amount > ZERO:
        if area.compensation_type == CompensationType.ANNUAL:
            return area.compensation_fixed_amount / TWELVE
        return ZERO

    if area.compensation_percentage is not None and area.compensation_percentage > ZERO:
        return minimum_rent * area.compensation_percentage / HUNDRED / TWELVE

    sqm = area.area_sqm or ZERO
    if area.area_type == AreaType.WEA_STANDORT:
        share = rates.wea_share_percentage or Decimal("10")
        return minimum_rent * share / HUNDRED / TWELVE
    if area.area_type == AreaType.POOL:
        if sqm <= ZERO:
            return ZERO
        share = rates.pool_share_percentage or Decimal("90")
        return minimum_rent * share / HUNDRED / TWELVE
    if area.area_type == AreaType.WEG:
        return sqm * (rates.weg_rate or ZERO) / TWELVE
    if area.area_type == AreaType.AUSGLEICH:
        return sqm * (rates.ausgleich_rate or ZERO) / TWELVE
    if area.area_type == AreaType.VERSIEGELT:
        return sqm * rates.effective_sealed_rate / TWELVE
    if area.area_type == AreaType.KABEL:
        length = area.length_m if area.length_m is not None else ZERO
        return length * (rates.kabel_rate or ZERO) / TWELVE
    return ZERO


def calculate_monthly_lease_amount(
    areas: Iterable[PlotAreaInput], rates: ParkFeeRates
) -> Decimal:
    """Full-month lease amount over all plot areas of a lease, in cents."""
    total = sum((_area_monthly_amount(a, rates) for a in areas), ZERO)
    return round_money(total)


def prorated_amount(full_month_amount: Decimal, factor: Decimal) -> Decimal:
    """Full-month amount times proration factor, in cents."""
    return round_money(full_month_amount * factor)


def partial_month_label(factor: Decimal) -> str:
    """``" (Teilmonat, 45%)"`` for partial months, empty for full months."""
    if factor >= ONE or factor <= ZERO:
        return ""
    percent = round_money(factor * HUNDRED, 0)
    return f" (Teilmonat, {percent}%)"
