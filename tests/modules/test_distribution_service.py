"""
Tests for DistributionService.

Covers:
- Split and numbering of DRAFT distributions (AS-{year}-{seq:03d})
- Execution into one EXEMPT credit note per shareholder
- State machine: EXECUTED distributions are final
- Create-and-execute as one unit with a single audit entry
- Typed errors for empty funds, zero weights and bad amounts
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from windpark_kernel.domain.values import InvoiceType, TaxType
from windpark_kernel.exceptions import (
    DistributionNotFoundError,
    DistributionStateError,
    FundNotFoundError,
    InvalidDistributionAmountError,
    NoEligibleShareholdersError,
    ZeroDistributionWeightError,
)
from windpark_modules.distribution.models import DistributionStatus
from windpark_modules.distribution.orm import DistributionModel
from windpark_modules.distribution.service import DistributionService
from windpark_modules.invoicing.models import RecipientType, ReferenceType
from windpark_modules.invoicing.service import InvoiceService

DISTRIBUTION_DATE = date(2025, 3, 10)


@pytest.fixture
def service(session, clock, audit_sink):
    return DistributionService(session, clock, audit_sink=audit_sink)


@pytest.fixture
def fund(masterdata):
    fund = masterdata.fund()
    masterdata.shareholder(fund, "001", distribution_percentage=Decimal("50"))
    masterdata.shareholder(fund, "002", distribution_percentage=Decimal("30"))
    masterdata.shareholder(fund, "003", distribution_percentage=Decimal("20"))
    return fund


def _amounts(distribution):
    return {item.shareholder_number: item.amount for item in distribution.items}


class TestCreate:
    def test_split_and_number(self, service, fund, tenant_id, actor_id):
        distribution = service.create(
            tenant_id, fund.id, Decimal("10000.00"), DISTRIBUTION_DATE, actor_id
        )

        assert distribution.distribution_number == "AS-2025-001"
        assert distribution.status == DistributionStatus.DRAFT
        assert _amounts(distribution) == {
            "001": Decimal("5000.00"),
            "002": Decimal("3000.00"),
            "003": Decimal("2000.00"),
        }
        assert sum(i.percentage for i in distribution.items) == Decimal("100")

    def test_numbers_are_sequential(self, service, fund, tenant_id, actor_id):
        service.create(tenant_id, fund.id, Decimal("100"), DISTRIBUTION_DATE, actor_id)
        second = service.create(tenant_id, fund.id, Decimal("100"), DISTRIBUTION_DATE, actor_id)
        assert second.distribution_number == "AS-2025-002"

    def test_preview_persists_nothing(self, service, fund, tenant_id, actor_id):
        preview = service.preview(tenant_id, fund.id, Decimal("10000"))
        assert [i.amount for i in preview.items] == [
            Decimal("5000.00"),
            Decimal("3000.00"),
            Decimal("2000.00"),
        ]
        assert preview.distribution_date == DISTRIBUTION_DATE
        created = service.create(tenant_id, fund.id, Decimal("1"), DISTRIBUTION_DATE, actor_id)
        assert created.distribution_number == "AS-2025-001"

    def test_ownership_percentage_fallback(self, service, masterdata, tenant_id, actor_id):
        fund = masterdata.fund()
        masterdata.shareholder(fund, "001", ownership_percentage=Decimal("75"))
        masterdata.shareholder(fund, "002", ownership_percentage=Decimal("25"))
        distribution = service.create(
            tenant_id, fund.id, Decimal("1000"), DISTRIBUTION_DATE, actor_id
        )
        assert _amounts(distribution) == {"001": Decimal("750.00"), "002": Decimal("250.00")}

    def test_inactive_and_zero_weight_shareholders_excluded(
        self, service, masterdata, tenant_id, actor_id
    ):
        fund = masterdata.fund()
        masterdata.shareholder(fund, "001", distribution_percentage=Decimal("60"))
        masterdata.shareholder(fund, "002", distribution_percentage=Decimal("40"))
        masterdata.shareholder(fund, "003", distribution_percentage=Decimal("50"), status="EXITED")
        masterdata.shareholder(fund, "004")
        distribution = service.create(
            tenant_id, fund.id, Decimal("1000"), DISTRIBUTION_DATE, actor_id
        )
        assert _amounts(distribution) == {"001": Decimal("600.00"), "002": Decimal("400.00")}

    def test_odd_amount_sums_exactly(self, service, masterdata, tenant_id, actor_id):
        fund = masterdata.fund()
        for number in ("001", "002", "003"):
            masterdata.shareholder(fund, number, distribution_percentage=Decimal("1"))
        distribution = service.create(
            tenant_id, fund.id, Decimal("100.00"), DISTRIBUTION_DATE, actor_id
        )
        assert sum(_amounts(distribution).values()) == Decimal("100.00")

    def test_audit_and_log(self, service, fund, tenant_id, actor_id, audit_sink, captured_logs):
        service.create(tenant_id, fund.id, Decimal("10"), DISTRIBUTION_DATE, actor_id)
        assert audit_sink.actions() == ["distribution_created"]
        (record,) = captured_logs.find("distribution_created")
        assert record["distribution_number"] == "AS-2025-001"
        assert record["item_count"] == 3


class TestCreateErrors:
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_non_positive_amount(self, service, fund, tenant_id, actor_id, amount):
        with pytest.raises(InvalidDistributionAmountError):
            service.create(tenant_id, fund.id, amount, DISTRIBUTION_DATE, actor_id)

    def test_fund_without_shareholders(self, service, masterdata, tenant_id, actor_id):
        fund = masterdata.fund()
        with pytest.raises(NoEligibleShareholdersError):
            service.create(tenant_id, fund.id, Decimal("100"), DISTRIBUTION_DATE, actor_id)

    def test_only_inactive_shareholders(self, service, masterdata, tenant_id, actor_id):
        fund = masterdata.fund()
        masterdata.shareholder(fund, "001", Decimal("100"), status="EXITED")
        with pytest.raises(NoEligibleShareholdersError):
            service.preview(tenant_id, fund.id, Decimal("100"))

    def test_zero_weights(self, service, masterdata, tenant_id, actor_id):
        fund = masterdata.fund()
        masterdata.shareholder(fund, "001", distribution_percentage=Decimal("0"))
        masterdata.shareholder(fund, "002")
        with pytest.raises(ZeroDistributionWeightError):
            service.create(tenant_id, fund.id, Decimal("100"), DISTRIBUTION_DATE, actor_id)

    def test_fund_of_other_tenant(self, service, fund, actor_id):
        with pytest.raises(FundNotFoundError):
            service.create(uuid4(), fund.id, Decimal("100"), DISTRIBUTION_DATE, actor_id)


class TestExecute:
    def test_one_credit_note_per_shareholder(
        self, service, fund, tenant_id, actor_id, settings, audit_sink
    ):
        draft = service.create(
            tenant_id, fund.id, Decimal("10000.00"), DISTRIBUTION_DATE, actor_id
        )
        execution = service.execute(tenant_id, draft.id, settings, actor_id)

        assert execution.distribution.status == DistributionStatus.EXECUTED
        assert execution.distribution.executed_at == datetime(2025, 3, 10, 9, 0)
        assert [i.invoice_number for i in execution.invoices] == [
            "GS-2025-00001",
            "GS-2025-00002",
            "GS-2025-00003",
        ]
        first = execution.invoices[0]
        assert first.invoice_type == InvoiceType.CREDIT_NOTE
        assert first.recipient_type == RecipientType.SHAREHOLDER
        assert first.due_date == DISTRIBUTION_DATE + timedelta(days=14)
        assert first.internal_reference == "AS-2025-001"
        assert first.payment_reference.startswith("AS-2025-001-")
        assert first.recipient_address == "Dorfstrasse 1\n25813 Husum"
        (line,) = first.lines
        assert line.tax_type == TaxType.EXEMPT
        assert line.tax_amount == Decimal("0.00")
        assert line.reference_type == ReferenceType.DISTRIBUTION
        assert line.description.startswith("Ausschuettung - Anteil ")
        assert sum(i.gross_amount for i in execution.invoices) == Decimal("10000.00")
        assert all(item.invoice_id is not None for item in execution.distribution.items)
        assert audit_sink.actions() == ["distribution_created", "distribution_executed"]

    def test_execute_twice_rejected(self, service, fund, tenant_id, actor_id, settings):
        draft = service.create(tenant_id, fund.id, Decimal("100"), DISTRIBUTION_DATE, actor_id)
        service.execute(tenant_id, draft.id, settings, actor_id)
        with pytest.raises(DistributionStateError) as exc_info:
            service.execute(tenant_id, draft.id, settings, actor_id)
        assert exc_info.value.status == "EXECUTED"

    def test_execute_unknown(self, service, tenant_id, actor_id, settings):
        with pytest.raises(DistributionNotFoundError):
            service.execute(tenant_id, uuid4(), settings, actor_id)


class FailingInvoiceService(InvoiceService):
    def create_invoice(self, draft, actor_id):
        raise RuntimeError("invoice store unavailable")


class TestCreateAndExecute:
    def test_single_audit_entry(self, service, fund, tenant_id, actor_id, settings, audit_sink):
        execution = service.create_and_execute(
            tenant_id, fund.id, Decimal("10000.00"), DISTRIBUTION_DATE, settings, actor_id
        )

        assert execution.distribution.status == DistributionStatus.EXECUTED
        assert execution.distribution.distribution_number == "AS-2025-001"
        assert len(execution.invoices) == 3
        assert audit_sink.actions() == ["distribution_executed"]

    def test_failure_leaves_no_distribution_and_no_audit(
        self, session, clock, fund, tenant_id, actor_id, settings, audit_sink
    ):
        service = DistributionService(
            session,
            clock,
            invoice_service=FailingInvoiceService(session, clock),
            audit_sink=audit_sink,
        )
        with pytest.raises(RuntimeError):
            service.create_and_execute(
                tenant_id, fund.id, Decimal("100"), DISTRIBUTION_DATE, settings, actor_id
            )

        count = session.execute(
            select(func.count()).select_from(DistributionModel)
        ).scalar_one()
        assert count == 0
        assert audit_sink.actions() == []


class TestDelete:
    def test_delete_draft(self, service, fund, tenant_id, actor_id, audit_sink):
        draft = service.create(tenant_id, fund.id, Decimal("100"), DISTRIBUTION_DATE, actor_id)
        service.delete(tenant_id, draft.id, actor_id)
        with pytest.raises(DistributionNotFoundError):
            service.get(tenant_id, draft.id)
        assert audit_sink.actions()[-1] == "distribution_deleted"

    def test_deleted_number_is_not_reused(self, service, fund, tenant_id, actor_id):
        first = service.create(tenant_id, fund.id, Decimal("100"), DISTRIBUTION_DATE, actor_id)
        service.delete(tenant_id, first.id, actor_id)
        second = service.create(tenant_id, fund.id, Decimal("100"), DISTRIBUTION_DATE, actor_id)
        assert first.distribution_number == "AS-2025-001"
        assert second.distribution_number == "AS-2025-002"

    def test_executed_distribution_cannot_be_deleted(
        self, service, fund, tenant_id, actor_id, settings
    ):
        draft = service.create(tenant_id, fund.id, Decimal("100"), DISTRIBUTION_DATE, actor_id)
        service.execute(tenant_id, draft.id, settings, actor_id)
        with pytest.raises(DistributionStateError):
            service.delete(tenant_id, draft.id, actor_id)
        assert service.get(tenant_id, draft.id).status == DistributionStatus.EXECUTED

    def test_cross_tenant_get(self, service, fund, tenant_id, actor_id):
        draft = service.create(tenant_id, fund.id, Decimal("100"), DISTRIBUTION_DATE, actor_id)
        with pytest.raises(DistributionNotFoundError):
            service.get(uuid4(), draft.id)
