"""
Tests for LeaseRevenueSettlementService.

Covers:
- Period normalization and the duplicate/merge policy on create
- Calculation from park master data and energy revenues
- Settle: credit notes per lease, advance deductions, reclaim invoices
- Forward-only status machine and historical imports
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from windpark_engines.settlement import AdvanceInterval, SettlementPeriodType
from windpark_kernel.domain.values import InvoiceType, TaxType
from windpark_kernel.exceptions import (
    EnergyRevenueNotFoundError,
    InvalidPeriodError,
    InvalidSettlementRequestError,
    ParkNotFoundError,
    SettlementConflictError,
    SettlementDataIncompleteError,
    SettlementStateError,
)
from windpark_modules.lease_revenue.models import SettlementStatus
from windpark_modules.lease_revenue.service import LeaseRevenueSettlementService
from windpark_modules.masterdata.orm import LeaseModel, LeasePlotModel

FINAL = SettlementPeriodType.FINAL
ADVANCE = SettlementPeriodType.ADVANCE


@pytest.fixture
def service(session, clock, audit_sink):
    return LeaseRevenueSettlementService(session, clock, audit_sink=audit_sink)


@pytest.fixture
def park(masterdata):
    """Three turbines; lessor A holds two sites and 6000 sqm pool, B one and 4000."""
    park = masterdata.park(turbines=3)
    lessor_a = masterdata.person(last_name="Albers")
    lessor_b = masterdata.person(last_name="Brandt")
    plot_a = masterdata.plot(
        park,
        "12/1",
        [
            {"area_type": "WEA_STANDORT"},
            {"area_type": "WEA_STANDORT"},
            {"area_type": "POOL", "area_sqm": Decimal("6000")},
        ],
    )
    plot_b = masterdata.plot(
        park,
        "12/2",
        [
            {"area_type": "WEA_STANDORT"},
            {"area_type": "POOL", "area_sqm": Decimal("4000")},
        ],
    )
    masterdata.lease(lessor_a, [plot_a], start_date=date(2019, 1, 1))
    masterdata.lease(lessor_b, [plot_b], start_date=date(2020, 1, 1))
    masterdata.energy_revenue(park, 2024, Decimal("1000000"))
    masterdata.energy_revenue(park, 2024, Decimal("500000"), status="DRAFT")
    return park


class TestNormalizePeriod:
    normalize = staticmethod(LeaseRevenueSettlementService.normalize_period)

    def test_final_has_no_month(self):
        assert self.normalize(2024, FINAL, None, None) is None
        with pytest.raises(InvalidSettlementRequestError):
            self.normalize(2024, FINAL, None, 3)
        with pytest.raises(InvalidSettlementRequestError):
            self.normalize(2024, FINAL, AdvanceInterval.MONTHLY, None)

    def test_quarterly_advance_stores_first_month_of_quarter(self):
        assert self.normalize(2024, ADVANCE, AdvanceInterval.QUARTERLY, 5) == 4
        assert self.normalize(2024, ADVANCE, AdvanceInterval.QUARTERLY, 12) == 10
        assert self.normalize(2024, ADVANCE, AdvanceInterval.MONTHLY, 5) == 5

    def test_advance_rules(self):
        with pytest.raises(InvalidSettlementRequestError):
            self.normalize(2024, ADVANCE, None, None)
        with pytest.raises(InvalidSettlementRequestError):
            self.normalize(2024, ADVANCE, AdvanceInterval.MONTHLY, None)
        with pytest.raises(InvalidSettlementRequestError):
            self.normalize(2024, ADVANCE, AdvanceInterval.YEARLY, 1)

    @pytest.mark.parametrize("year,month", [(1989, None), (2101, None), (2024, 13)])
    def test_out_of_range(self, year, month):
        with pytest.raises(InvalidPeriodError):
            self.normalize(year, ADVANCE, AdvanceInterval.MONTHLY, month or 1)


class TestCreate:
    def test_create_open_settlement(self, service, park, tenant_id, actor_id, audit_sink):
        creation = service.create(tenant_id, park.id, 2024, FINAL, actor_id)
        assert creation.created is True
        assert creation.settlement.status == SettlementStatus.OPEN
        assert creation.settlement.month is None
        assert audit_sink.actions() == ["settlement_created"]

    def test_duplicate_open_request_merges(self, service, park, tenant_id, actor_id):
        first = service.create(tenant_id, park.id, 2024, FINAL, actor_id)
        second = service.create(
            tenant_id, park.id, 2024, FINAL, actor_id, notes="Nachtrag"
        )
        assert second.created is False
        assert second.settlement.id == first.settlement.id
        assert second.settlement.notes == "Nachtrag"

    def test_advance_periods_are_distinct(self, service, park, tenant_id, actor_id):
        q1 = service.create(
            tenant_id, park.id, 2024, ADVANCE, actor_id, month=2,
            advance_interval=AdvanceInterval.QUARTERLY,
        )
        q2 = service.create(
            tenant_id, park.id, 2024, ADVANCE, actor_id, month=4,
            advance_interval=AdvanceInterval.QUARTERLY,
        )
        same_q1 = service.create(
            tenant_id, park.id, 2024, ADVANCE, actor_id, month=3,
            advance_interval=AdvanceInterval.QUARTERLY,
        )
        assert q1.settlement.month == 1
        assert q2.settlement.id != q1.settlement.id
        assert same_q1.created is False
        assert same_q1.settlement.id == q1.settlement.id

    def test_unknown_park(self, service, tenant_id, actor_id):
        with pytest.raises(ParkNotFoundError):
            service.create(tenant_id, uuid4(), 2024, FINAL, actor_id)

    def test_linked_revenue_of_other_park(self, service, park, masterdata, tenant_id, actor_id):
        other = masterdata.park(name="Windpark Sued")
        revenue = masterdata.energy_revenue(other, 2024, Decimal("10"))
        with pytest.raises(EnergyRevenueNotFoundError):
            service.create(
                tenant_id, park.id, 2024, FINAL, actor_id, linked_energy_revenue_id=revenue.id
            )


class TestCalculate:
    def test_final_calculation(self, service, park, tenant_id, actor_id):
        created = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        settlement = service.calculate(tenant_id, created.id, actor_id)

        assert settlement.status == SettlementStatus.CALCULATED
        assert settlement.total_park_revenue_eur == Decimal("1000000.00")
        assert settlement.calculated_fee_eur == Decimal("80000.00")
        assert settlement.minimum_guarantee_eur == Decimal("36000.00")
        assert settlement.actual_fee_eur == Decimal("80000.00")
        assert settlement.used_minimum is False
        assert settlement.total_wea_count == 3

        item_a, item_b = settlement.items
        assert item_a.pool_fee_eur == Decimal("43200.00")
        assert item_a.standort_fee_eur == Decimal("5333.33")
        assert item_b.pool_fee_eur == Decimal("28800.00")
        assert item_b.standort_fee_eur == Decimal("2666.67")
        assert settlement.subtotal_sum == Decimal("80000.00")
        assert settlement.calculation_details["input"]["revenueSource"] == "aggregated"

    def test_recalculation_replaces_items(self, service, park, tenant_id, actor_id):
        created = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        service.calculate(tenant_id, created.id, actor_id)
        settlement = service.calculate(
            tenant_id, created.id, actor_id, manual_revenue=Decimal("100000")
        )
        assert len(settlement.items) == 2
        assert settlement.used_minimum is True
        assert settlement.actual_fee_eur == Decimal("36000.00")
        assert settlement.calculation_details["input"]["revenueSource"] == "manual"

    def test_linked_revenue(self, service, park, masterdata, tenant_id, actor_id):
        linked = masterdata.energy_revenue(park, 2024, Decimal("2000000"), status="DRAFT")
        created = service.create(
            tenant_id, park.id, 2024, FINAL, actor_id, linked_energy_revenue_id=linked.id
        ).settlement
        settlement = service.calculate(tenant_id, created.id, actor_id)
        assert settlement.calculated_fee_eur == Decimal("160000.00")

    def test_quarterly_advance(self, service, park, tenant_id, actor_id):
        created = service.create(
            tenant_id, park.id, 2024, ADVANCE, actor_id, month=1,
            advance_interval=AdvanceInterval.QUARTERLY,
        ).settlement
        settlement = service.calculate(tenant_id, created.id, actor_id)
        assert settlement.minimum_guarantee_eur == Decimal("9000.00")
        assert settlement.actual_fee_eur == Decimal("9000.00")
        assert settlement.total_park_revenue_eur == Decimal("0")
        assert [i.subtotal_eur for i in settlement.items] == [
            Decimal("5460.00"),
            Decimal("3540.00"),
        ]

    def test_incomplete_park_data(self, service, masterdata, tenant_id, actor_id):
        park = masterdata.park(minimum_rent_per_turbine=None)
        created = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        with pytest.raises(SettlementDataIncompleteError):
            service.calculate(tenant_id, created.id, actor_id)

    def test_missing_revenue_phase(self, service, masterdata, tenant_id, actor_id):
        park = masterdata.park(revenue_share_percentage=None)
        created = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        with pytest.raises(SettlementDataIncompleteError, match="revenue phase"):
            service.calculate(tenant_id, created.id, actor_id)


class TestSettle:
    def test_final_without_advances(self, service, park, tenant_id, actor_id, settings):
        created = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        service.calculate(tenant_id, created.id, actor_id)
        result = service.settle(tenant_id, created.id, settings, actor_id)

        assert result.settlement.status == SettlementStatus.SETTLED
        assert [i.invoice_number for i in result.invoices] == ["GS-2025-00001", "GS-2025-00002"]
        credit_a = result.invoices[0]
        assert credit_a.invoice_type == InvoiceType.CREDIT_NOTE
        assert credit_a.recipient_name == "Anna Albers"
        assert credit_a.due_date == date(2025, 3, 10) + timedelta(days=14)
        assert (credit_a.service_start_date, credit_a.service_end_date) == (
            date(2024, 1, 1),
            date(2024, 12, 31),
        )
        assert credit_a.net_amount == Decimal("48533.33")
        # VAT on the pool share only
        assert credit_a.tax_amount == Decimal("8208.00")
        pool_line, site_line = credit_a.lines
        assert pool_line.tax_type == TaxType.STANDARD
        assert site_line.tax_type == TaxType.EXEMPT
        assert all(i.invoice_id is not None for i in result.settlement.items)

    def test_final_deducts_advances(self, service, park, tenant_id, actor_id, settings):
        advance = service.create(
            tenant_id, park.id, 2024, ADVANCE, actor_id, month=1,
            advance_interval=AdvanceInterval.QUARTERLY,
        ).settlement
        service.calculate(tenant_id, advance.id, actor_id)
        advance_docs = service.settle(tenant_id, advance.id, settings, actor_id)
        assert len(advance_docs.invoices) == 2

        final = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        calculated = service.calculate(tenant_id, final.id, actor_id)
        item_a = calculated.items[0]
        assert item_a.advance_paid_eur == Decimal("5460.00")
        assert item_a.remainder_eur == Decimal("43073.33")

        result = service.settle(tenant_id, final.id, settings, actor_id)
        credit_a = result.invoices[0]
        assert credit_a.net_amount == Decimal("43073.33")
        assert any(line.net_amount < 0 for line in credit_a.lines)
        assert any(line.description.startswith("Verrechnung Vorschuss") for line in credit_a.lines)

    def test_final_equal_to_advances_issues_nothing(
        self, service, park, tenant_id, actor_id, settings
    ):
        advance = service.create(
            tenant_id, park.id, 2024, ADVANCE, actor_id,
            advance_interval=AdvanceInterval.YEARLY,
        ).settlement
        service.calculate(tenant_id, advance.id, actor_id)
        final = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        calculated = service.calculate(
            tenant_id, final.id, actor_id, manual_revenue=Decimal("0")
        )
        assert calculated.used_minimum is True
        assert all(i.remainder_eur == Decimal("0") for i in calculated.items)

        result = service.settle(tenant_id, final.id, settings, actor_id)
        assert result.invoices == ()
        assert result.settlement.status == SettlementStatus.SETTLED

    def test_overpaid_advance_is_reclaimed(
        self, service, park, masterdata, session, tenant_id, actor_id, settings
    ):
        advance = service.create(
            tenant_id, park.id, 2024, ADVANCE, actor_id,
            advance_interval=AdvanceInterval.YEARLY,
        ).settlement
        service.calculate(tenant_id, advance.id, actor_id)

        # Lessor B takes on another 10000 sqm pool area after the advance
        lease_b = session.execute(
            select(LeaseModel).where(LeaseModel.start_date == date(2020, 1, 1))
        ).scalar_one()
        plot = masterdata.plot(park, "12/3", [{"area_type": "POOL", "area_sqm": Decimal("10000")}])
        session.add(LeasePlotModel(lease_id=lease_b.id, plot_id=plot.id))
        session.flush()
        session.refresh(plot)

        final = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        service.calculate(tenant_id, final.id, actor_id, manual_revenue=Decimal("0"))
        result = service.settle(tenant_id, final.id, settings, actor_id)

        reclaim, credit = result.invoices
        assert reclaim.invoice_type == InvoiceType.INVOICE
        assert reclaim.invoice_number == "RE-2025-00001"
        assert reclaim.net_amount == Decimal("9720.00")
        assert reclaim.lines[0].description.startswith("Rueckforderung Vorschuss")
        assert credit.invoice_type == InvoiceType.CREDIT_NOTE
        assert credit.net_amount == Decimal("9720.00")

    def test_advances_changed_after_calculation(
        self, service, park, tenant_id, actor_id, settings
    ):
        final = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        service.calculate(tenant_id, final.id, actor_id)
        advance = service.create(
            tenant_id, park.id, 2024, ADVANCE, actor_id, month=1,
            advance_interval=AdvanceInterval.MONTHLY,
        ).settlement
        service.calculate(tenant_id, advance.id, actor_id)

        with pytest.raises(SettlementStateError, match="recalculate"):
            service.settle(tenant_id, final.id, settings, actor_id)

    def test_settle_requires_calculation(self, service, park, tenant_id, actor_id, settings):
        created = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        with pytest.raises(SettlementStateError):
            service.settle(tenant_id, created.id, settings, actor_id)


class TestLifecycle:
    def test_close_and_conflict(self, service, park, tenant_id, actor_id, settings, audit_sink):
        created = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        service.calculate(tenant_id, created.id, actor_id)
        service.settle(tenant_id, created.id, settings, actor_id)
        closed = service.close(tenant_id, created.id, actor_id)

        assert closed.status == SettlementStatus.CLOSED
        assert audit_sink.actions() == [
            "settlement_created",
            "settlement_calculated",
            "settlement_settled",
            "settlement_closed",
        ]
        with pytest.raises(SettlementStateError):
            service.calculate(tenant_id, created.id, actor_id)
        with pytest.raises(SettlementConflictError) as exc_info:
            service.create(tenant_id, park.id, 2024, FINAL, actor_id)
        assert exc_info.value.status == "CLOSED"

    def test_close_requires_settled(self, service, park, tenant_id, actor_id):
        created = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        with pytest.raises(SettlementStateError):
            service.close(tenant_id, created.id, actor_id)


class TestHistoricalImport:
    def test_import_creates_closed_settlement(self, service, park, tenant_id, actor_id):
        settlement = service.import_historical(
            tenant_id, park.id, 2023, Decimal("900000"), Decimal("8"), Decimal("72000"),
            actor_id, notes="Altdaten",
        )
        assert settlement.status == SettlementStatus.CLOSED
        assert settlement.is_historical is True
        assert settlement.items == ()
        assert settlement.actual_fee_eur == Decimal("72000.00")
        assert settlement.calculation_details["historical"] is True

        with pytest.raises(SettlementConflictError):
            service.create(tenant_id, park.id, 2023, FINAL, actor_id)

    def test_import_replaces_open_settlement(self, service, park, tenant_id, actor_id):
        created = service.create(tenant_id, park.id, 2024, FINAL, actor_id).settlement
        service.calculate(tenant_id, created.id, actor_id)
        imported = service.import_historical(
            tenant_id, park.id, 2024, Decimal("1"), Decimal("8"), Decimal("36000"), actor_id
        )
        assert imported.id == created.id
        assert imported.items == ()

    def test_negative_amounts_rejected(self, service, park, tenant_id, actor_id):
        with pytest.raises(InvalidSettlementRequestError):
            service.import_historical(
                tenant_id, park.id, 2023, Decimal("-1"), Decimal("8"), Decimal("0"), actor_id
            )
