"""
Tests for BillingOrchestrator wiring.

The orchestrator composes every billing dependency from one session,
clock and configuration; these tests run the services it hands out end
to end.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from windpark_billing.domain.types import ExecuteOptions
from windpark_billing.orchestrator import BillingOrchestrator
from windpark_billing.services.executor import SYSTEM_ACTOR_ID
from windpark_config.schema import (
    BillingConfiguration,
    NumberingConfig,
    SchedulerConfig,
    TenantOverride,
)
from windpark_engines.settlement import SettlementPeriodType
from windpark_kernel.domain.values import InvoiceType
from windpark_kernel.services.audit import LoggingAuditSink
from windpark_modules.invoicing.service import InvoiceService


@pytest.fixture
def config(tenant_id):
    return BillingConfiguration(
        config_id="orchestrator-test",
        default_payment_term_days=30,
        numbering=NumberingConfig(invoice_prefix="RG", credit_note_prefix="GU"),
        scheduler=SchedulerConfig(tick_interval_seconds=5),
        tenant_overrides=(TenantOverride(tenant_id=tenant_id, payment_term_days=21),),
    )


@pytest.fixture
def orchestrator(session, clock, config, audit_sink):
    return BillingOrchestrator.from_session(
        session, clock=clock, config=config, audit_sink=audit_sink
    )


class TestWiring:
    def test_defaults(self, session, clock, captured_logs):
        orchestrator = BillingOrchestrator.from_session(session, clock=clock)
        assert orchestrator.config.config_id == "default"
        assert orchestrator.actor_id == SYSTEM_ACTOR_ID
        assert len(orchestrator.handler_registry) == 5
        assert captured_logs.find("billing_config_loaded")
        assert isinstance(orchestrator._audit, LoggingAuditSink)

    def test_scheduler_interval_from_config(self, orchestrator, session_factory):
        scheduler = orchestrator.create_scheduler(session_factory)
        assert scheduler._tick_interval == 5

    def test_tenant_override_applies(self, orchestrator, tenant_id):
        settings = orchestrator.settings_provider.get_tenant_settings(tenant_id)
        assert settings.payment_term_days == 21


class TestEndToEnd:
    def test_rule_lifecycle(self, orchestrator, tenant_id, actor_id, clock, session, audit_sink):
        rules = orchestrator.rule_service()
        rule = rules.create(
            tenant_id,
            "Wartung",
            "CUSTOM",
            "MONTHLY",
            {
                "invoice_type": "INVOICE",
                "recipient_name": "Netzbetreiber",
                "items": [{"description": "Wartung", "quantity": 1, "unit_price": "100"}],
            },
            actor_id,
            day_of_month=1,
        )
        assert rule.next_run_at == datetime(2025, 4, 1)

        executor = orchestrator.create_executor()
        assert executor.execute(rule.id).details.metadata["skipped_reason"] == "not_due"

        clock.set_time(datetime(2025, 4, 1, 8, 0))
        result = executor.execute(rule.id)
        assert result.invoices_created == 1
        assert result.details.invoices[0].invoice_number == "RG-2025-00001"

        invoice = InvoiceService(session, clock).get_invoice(
            tenant_id, result.details.invoices[0].invoice_id
        )
        assert invoice.due_date == date(2025, 4, 22)
        assert rules.get(tenant_id, rule.id).next_run_at == datetime(2025, 5, 1)
        assert "billing_rule_executed" in audit_sink.actions()

        preview = executor.execute(rule.id, ExecuteOptions(dry_run=True, force_run=True))
        assert preview.details.metadata["dryRun"] is True

    def test_distribution_uses_configured_prefixes(
        self, orchestrator, masterdata, tenant_id, actor_id, clock
    ):
        fund = masterdata.fund()
        masterdata.shareholder(fund, "001", Decimal("100"))
        service = orchestrator.distribution_service()
        distribution = service.create(
            tenant_id, fund.id, Decimal("500"), clock.today(), actor_id
        )
        execution = service.execute(
            tenant_id,
            distribution.id,
            orchestrator.settings_provider.get_tenant_settings(tenant_id),
            actor_id,
        )
        [credit_note] = execution.invoices
        assert credit_note.invoice_type == InvoiceType.CREDIT_NOTE
        assert credit_note.invoice_number == "GU-2025-00001"
        assert credit_note.due_date == date(2025, 3, 31)

    def test_settlement_service(self, orchestrator, masterdata, tenant_id, actor_id):
        park = masterdata.park(turbines=1)
        lessor = masterdata.person()
        plot = masterdata.plot(
            park, "1/1",
            [{"area_type": "WEA_STANDORT"}, {"area_type": "POOL", "area_sqm": Decimal("1000")}],
        )
        masterdata.lease(lessor, [plot])
        service = orchestrator.settlement_service()
        settlement = service.create(
            tenant_id, park.id, 2024, SettlementPeriodType.FINAL, actor_id
        ).settlement
        calculated = service.calculate(
            tenant_id, settlement.id, actor_id, manual_revenue=Decimal("100000")
        )
        assert calculated.actual_fee_eur == Decimal("12000.00")
        settled = service.settle(
            tenant_id,
            settlement.id,
            orchestrator.settings_provider.get_tenant_settings(tenant_id),
            actor_id,
        )
        assert [i.invoice_number for i in settled.invoices] == ["GU-2025-00001"]
