"""
Tests for windpark_engines.settlement.

Covers:
- Revenue share versus minimum guarantee (strictly-greater rule)
- Turbine-site / pool split and per-lease distribution with cent residue
- Area surcharges for final and advance settlements
- Advance deductions and service period labels
- Revenue phase selection by operating year
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from windpark_engines.lease_fees import ParkFeeRates
from windpark_engines.settlement import (
    AdvanceInterval,
    LeaseFeeBasis,
    RevenuePhase,
    SettlementComponent,
    SettlementInput,
    SettlementPeriodType,
    apply_advance_deductions,
    calculate_advance_fees,
    calculate_settlement_fees,
    default_tax_treatment,
    get_active_revenue_phase,
    settlement_service_period,
    split_base_fee,
    years_in_operation,
)
from windpark_kernel.domain.values import TaxType

RATES = ParkFeeRates(
    minimum_rent_per_turbine=Decimal("12000"),
    wea_share_percentage=Decimal("10"),
    pool_share_percentage=Decimal("90"),
    weg_rate=Decimal("0.50"),
)


def _lease(pool_sqm="0", turbines=0, **areas) -> LeaseFeeBasis:
    return LeaseFeeBasis(
        lease_id=uuid4(),
        lessor_id=uuid4(),
        pool_area_sqm=Decimal(pool_sqm),
        turbine_count=turbines,
        **areas,
    )


def _input(revenue, leases, turbines=3, share="8", rates=RATES) -> SettlementInput:
    return SettlementInput(
        park_id=uuid4(),
        year=2024,
        total_park_revenue=Decimal(revenue),
        revenue_share_percent=Decimal(share),
        rates=rates,
        total_turbine_count=turbines,
        leases=tuple(leases),
    )


class TestFinalSettlement:
    def test_revenue_share_above_minimum(self):
        a = _lease("6000", 2)
        b = _lease("4000", 1)
        calc = calculate_settlement_fees(inp=_input("1000000", [a, b]))

        assert calc.calculated_fee == Decimal("80000.00")
        assert calc.minimum_guarantee == Decimal("36000.00")
        assert calc.actual_fee == Decimal("80000.00")
        assert calc.used_minimum is False
        assert calc.standort_total == Decimal("8000.00")
        assert calc.pool_total == Decimal("72000.00")

        item_a, item_b = calc.items
        assert item_a.pool_share_percent == Decimal("60.0000")
        assert item_a.pool_fee == Decimal("43200.00")
        assert item_b.pool_fee == Decimal("28800.00")
        # 8000 / 3 per turbine; the cent residue goes to the larger share
        assert item_a.standort_fee == Decimal("5333.33")
        assert item_b.standort_fee == Decimal("2666.67")
        assert item_a.standort_fee + item_b.standort_fee == calc.standort_total
        assert calc.subtotal_sum == calc.actual_fee

    def test_minimum_guarantee_applies(self):
        calc = calculate_settlement_fees(inp=_input("100000", [_lease("1", 3)]))
        assert calc.calculated_fee == Decimal("8000.00")
        assert calc.actual_fee == Decimal("36000.00")
        assert calc.used_minimum is True

    def test_equal_fees_do_not_count_as_minimum(self):
        calc = calculate_settlement_fees(inp=_input("450000", [_lease("1", 3)]))
        assert calc.calculated_fee == calc.minimum_guarantee == Decimal("36000.00")
        assert calc.actual_fee == Decimal("36000.00")
        assert calc.used_minimum is False

    def test_tax_split_of_components(self):
        calc = calculate_settlement_fees(inp=_input("1000000", [_lease("10000", 3)]))
        (item,) = calc.items
        assert item.taxable_amount == item.pool_fee
        assert item.exempt_amount == item.standort_fee
        assert item.subtotal == item.taxable_amount + item.exempt_amount
        assert item.subtotal == sum(item.components().values())

    def test_custom_tax_treatment(self):
        calc = calculate_settlement_fees(
            inp=_input("1000000", [_lease("10000", 3)]),
            tax_treatment=lambda component: TaxType.EXEMPT,
        )
        (item,) = calc.items
        assert item.taxable_amount == Decimal("0")
        assert item.exempt_amount == item.subtotal

    def test_surcharges(self):
        lease = _lease(
            "10000",
            3,
            road_area_sqm=Decimal("1000"),
            sealed_area_sqm=Decimal("200"),
        )
        calc = calculate_settlement_fees(inp=_input("1000000", [lease]))
        (item,) = calc.items
        assert item.road_usage_fee == Decimal("500.00")
        # No sealed rate configured: road rate applies
        assert item.sealed_area_fee == Decimal("100.00")
        assert item.subtotal == Decimal("80600.00")

    def test_no_leases(self):
        calc = calculate_settlement_fees(inp=_input("1000000", []))
        assert calc.items == ()
        assert calc.actual_fee == Decimal("80000.00")

    @given(
        revenue=st.decimals(min_value="0", max_value="50000000", places=2),
        share=st.decimals(min_value="0", max_value="20", places=2),
        minimum=st.decimals(min_value="0", max_value="100000", places=2),
        turbines=st.integers(min_value=0, max_value=30),
    )
    @settings(max_examples=200)
    def test_actual_fee_is_max_of_calculated_and_minimum(
        self, revenue, share, minimum, turbines
    ):
        rates = ParkFeeRates(
            minimum_rent_per_turbine=minimum,
            wea_share_percentage=Decimal("10"),
            pool_share_percentage=Decimal("90"),
        )
        calc = calculate_settlement_fees(
            inp=_input(revenue, [], turbines=turbines, share=share, rates=rates)
        )
        assert calc.actual_fee >= calc.calculated_fee
        assert calc.actual_fee >= calc.minimum_guarantee
        assert calc.used_minimum == (calc.minimum_guarantee > calc.calculated_fee)
        assert calc.standort_total + calc.pool_total == calc.actual_fee


class TestAdvance:
    def test_quarterly_advance_is_quarter_of_minimum(self):
        a = _lease("6000", 2, road_area_sqm=Decimal("1000"))
        b = _lease("4000", 1)
        calc = calculate_advance_fees(
            inp=_input("0", [a, b]), interval=AdvanceInterval.QUARTERLY
        )
        assert calc.calculated_fee == Decimal("0")
        assert calc.minimum_guarantee == Decimal("9000.00")
        assert calc.used_minimum is True
        assert calc.standort_total == Decimal("900.00")
        assert calc.pool_total == Decimal("8100.00")
        item_a, _ = calc.items
        assert item_a.road_usage_fee == Decimal("125.00")
        assert calc.actual_fee == Decimal("9125.00")

    def test_divisors(self):
        assert AdvanceInterval.YEARLY.divisor == Decimal("1")
        assert AdvanceInterval.QUARTERLY.divisor == Decimal("4")
        assert AdvanceInterval.MONTHLY.divisor == Decimal("12")

    def test_interval_required(self):
        with pytest.raises(ValueError):
            calculate_advance_fees(inp=_input("0", []), interval=None)


class TestDeductions:
    def test_remainder_after_advances(self):
        a = _lease("6000", 2)
        b = _lease("4000", 1)
        calc = calculate_settlement_fees(inp=_input("1000000", [a, b]))
        items = apply_advance_deductions(
            calc.items, {a.lease_id: Decimal("100000"), b.lease_id: Decimal("1000")}
        )
        assert items[0].advance_paid == Decimal("100000.00")
        assert items[0].remainder == items[0].subtotal - Decimal("100000.00")
        assert items[0].remainder < 0
        assert items[1].remainder == items[1].subtotal - Decimal("1000.00")

    def test_lease_without_advance(self):
        a = _lease("6000", 3)
        calc = calculate_settlement_fees(inp=_input("1000000", [a]))
        (item,) = apply_advance_deductions(calc.items, {})
        assert item.advance_paid == Decimal("0")
        assert item.remainder == item.subtotal


class TestSplitAndPeriods:
    def test_split_with_incomplete_shares(self):
        rates = ParkFeeRates(
            wea_share_percentage=Decimal("10"), pool_share_percentage=Decimal("80")
        )
        assert split_base_fee(Decimal("1000.00"), rates) == (
            Decimal("100.00"),
            Decimal("800.00"),
        )

    def test_service_period_labels(self):
        yearly = settlement_service_period(SettlementPeriodType.FINAL, 2024)
        assert (yearly.start, yearly.end, yearly.label) == (
            date(2024, 1, 1),
            date(2024, 12, 31),
            "Jahr 2024",
        )
        quarter = settlement_service_period(
            SettlementPeriodType.ADVANCE, 2024, 5, AdvanceInterval.QUARTERLY
        )
        assert (quarter.start, quarter.end) == (date(2024, 4, 1), date(2024, 6, 30))
        assert quarter.label == "Quartal 2 - 2024"
        month = settlement_service_period(
            SettlementPeriodType.ADVANCE, 2024, 3, AdvanceInterval.MONTHLY
        )
        assert month.label == "Maerz 2024"

    def test_default_tax_treatment(self):
        assert default_tax_treatment(SettlementComponent.POOL_AREA) == TaxType.STANDARD
        assert default_tax_treatment(SettlementComponent.TURBINE_SITE) == TaxType.EXEMPT


class TestRevenuePhases:
    PHASES = [
        RevenuePhase(1, 1, 5, Decimal("8")),
        RevenuePhase(2, 6, None, Decimal("10")),
    ]

    def test_operating_year(self):
        assert years_in_operation(2020, 2020) == 1
        assert years_in_operation(2020, 2025) == 6

    def test_phase_selection(self):
        assert get_active_revenue_phase(self.PHASES, 2020, 2024).phase_number == 1
        assert get_active_revenue_phase(self.PHASES, 2020, 2025).phase_number == 2

    def test_before_commissioning(self):
        assert get_active_revenue_phase(self.PHASES, 2020, 2019) is None
