"""
Tests for RuleScheduler.

Each rule runs in its own session and transaction, so the rules are
seeded and committed before the tick and results are read back through a
fresh session.
"""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from windpark_billing.handlers.base import default_handler_registry
from windpark_billing.models.billing_rule import BillingRuleExecutionModel, BillingRuleModel
from windpark_billing.services.executor import RuleExecutor
from windpark_billing.services.scheduler import RuleScheduler, due_rules
from windpark_modules.invoicing.orm import InvoiceModel

from tests.billing.conftest import CUSTOM_PARAMETERS
from tests.conftest import FIXED_NOW

YESTERDAY = FIXED_NOW - timedelta(days=1)


@pytest.fixture
def seed(session_factory, tenant_id, actor_id):
    """Commit rules through a short-lived session; returns their ids."""

    def _seed(*specs: dict):
        session = session_factory()
        try:
            models = []
            for spec in specs:
                model = BillingRuleModel(
                    tenant_id=spec.get("tenant_id", tenant_id),
                    name=spec.get("name", "Regel"),
                    rule_type=spec.get("rule_type", "CUSTOM"),
                    frequency="MONTHLY",
                    day_of_month=1,
                    parameters=spec.get("parameters", CUSTOM_PARAMETERS),
                    is_active=spec.get("is_active", True),
                    next_run_at=spec.get("next_run_at", YESTERDAY),
                    created_by_id=actor_id,
                )
                session.add(model)
                models.append(model)
            session.commit()
            return [m.id for m in models]
        finally:
            session.close()

    return _seed


@pytest.fixture
def scheduler(session_factory, clock, billing_config):
    def executor_factory(session):
        return RuleExecutor(
            session, default_handler_registry(), clock=clock, config=billing_config
        )

    return RuleScheduler(session_factory, executor_factory, clock=clock, tick_interval_seconds=0.01)


def read(session_factory, stmt):
    session = session_factory()
    try:
        return session.execute(stmt).scalar_one()
    finally:
        session.close()


class TestTick:
    def test_runs_due_rules_and_commits(self, scheduler, seed, session_factory):
        due_a, due_b, future, inactive = seed(
            {"name": "A", "next_run_at": YESTERDAY - timedelta(days=1)},
            {"name": "B"},
            {"name": "C", "next_run_at": FIXED_NOW + timedelta(hours=1)},
            {"name": "D", "is_active": False},
        )
        results = scheduler.tick()

        assert list(results) == [due_a, due_b]
        assert all(r.invoices_created == 1 for r in results.values())
        assert read(session_factory, select(func.count()).select_from(InvoiceModel)) == 2
        assert (
            read(session_factory, select(func.count()).select_from(BillingRuleExecutionModel))
            == 2
        )
        next_run = read(
            session_factory,
            select(BillingRuleModel.next_run_at).where(BillingRuleModel.id == due_a),
        )
        assert next_run == datetime(2025, 4, 1)

    def test_second_tick_finds_nothing(self, scheduler, seed):
        seed({})
        assert len(scheduler.tick()) == 1
        assert scheduler.tick() == {}

    def test_failing_rule_does_not_stop_the_loop(
        self, scheduler, seed, session_factory, captured_logs
    ):
        broken, healthy = seed(
            {"name": "kaputt", "parameters": {"invoice_type": "INVOICE"},
             "next_run_at": YESTERDAY - timedelta(days=1)},
            {"name": "gesund"},
        )
        results = scheduler.tick()

        assert list(results) == [healthy]
        [failure] = captured_logs.find("scheduled_rule_failed")
        assert failure["level"] == "ERROR"
        assert failure["rule_id"] == str(broken)
        assert failure["exc_type"] == "InvalidRuleParametersError"
        assert read(session_factory, select(func.count()).select_from(InvoiceModel)) == 1

    def test_tenant_filter(self, session_factory, clock, billing_config, seed, tenant_id):
        other_tenant = uuid4()
        own, _ = seed({}, {"tenant_id": other_tenant})
        scheduler = RuleScheduler(
            session_factory,
            lambda s: RuleExecutor(s, default_handler_registry(), clock=clock, config=billing_config),
            clock=clock,
            tenant_id=tenant_id,
        )
        assert list(scheduler.tick()) == [own]


class TestDueRules:
    def test_order_and_filter(self, session_factory, seed):
        late, early, _unplanned = seed(
            {"next_run_at": YESTERDAY},
            {"next_run_at": YESTERDAY - timedelta(days=3)},
            {"next_run_at": None},
        )
        session = session_factory()
        try:
            assert [r.id for r in due_rules(session, FIXED_NOW)] == [early, late]
        finally:
            session.close()


class TestLifecycle:
    def test_start_and_stop(self, scheduler):
        scheduler.start()
        assert scheduler.is_running
        scheduler.start()
        scheduler.stop(timeout=5)
        assert not scheduler.is_running
