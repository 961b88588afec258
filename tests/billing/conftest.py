"""
Billing rule test fixtures.

Provides:
- handler_context: a HandlerContext factory bound to the test session
- lease_park: five lessors on one park, the third without an IBAN
- rule_factory: persisted BillingRuleModel rows
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID, uuid4

import pytest

from windpark_billing.handlers.base import HandlerContext
from windpark_billing.models.billing_rule import BillingRuleModel
from windpark_kernel.services.number_allocator import InvoiceNumberAllocator
from windpark_modules.distribution.service import DistributionService
from windpark_modules.invoicing.service import InvoiceService


@pytest.fixture
def invoice_service(session, clock):
    return InvoiceService(session, clock)


@pytest.fixture
def handler_context(session, clock, tenant_id, actor_id, settings, audit_sink, invoice_service):
    """Build a HandlerContext; ``rule_id`` defaults to a fresh id."""
    allocator = InvoiceNumberAllocator(session, clock)

    def _make(rule_id: UUID | None = None) -> HandlerContext:
        return HandlerContext(
            tenant_id=tenant_id,
            rule_id=rule_id or uuid4(),
            session=session,
            as_of=clock.now(),
            settings=settings,
            actor_id=actor_id,
            clock=clock,
            number_allocator=allocator,
            invoice_service=invoice_service,
            distribution_service=DistributionService(
                session,
                clock,
                number_allocator=allocator,
                invoice_service=invoice_service,
                audit_sink=audit_sink,
            ),
            audit_sink=audit_sink,
        )

    return _make


@dataclass
class LeasePark:
    park: object
    lessors: list
    leases: list


@pytest.fixture
def lease_park(masterdata) -> LeasePark:
    """Five lessors with one turbine site each (100.00 EUR per month); #3 has no IBAN."""
    park = masterdata.park()
    lessors, leases = [], []
    for i in range(1, 6):
        lessor = masterdata.person(
            last_name=f"Verpaechter {i}",
            iban=None if i == 3 else "DE02120300000000202051",
        )
        lease = masterdata.turbine_lease(
            park, lessor, f"7/{i}", start_date=date(2020, 1, 1) + timedelta(days=i)
        )
        lessors.append(lessor)
        leases.append(lease)
    return LeasePark(park=park, lessors=lessors, leases=leases)


@pytest.fixture
def rule_factory(session, tenant_id, actor_id):
    def _make(
        rule_type: str = "CUSTOM",
        parameters: dict | None = None,
        frequency: str = "MONTHLY",
        day_of_month: int | None = 1,
        next_run_at=None,
        is_active: bool = True,
        name: str = "Testregel",
        cron_pattern: str | None = None,
        tenant: UUID | None = None,
    ) -> BillingRuleModel:
        model = BillingRuleModel(
            tenant_id=tenant or tenant_id,
            name=name,
            rule_type=rule_type,
            frequency=frequency,
            day_of_month=day_of_month,
            cron_pattern=cron_pattern,
            parameters=parameters if parameters is not None else CUSTOM_PARAMETERS,
            is_active=is_active,
            next_run_at=next_run_at,
            created_by_id=actor_id,
        )
        session.add(model)
        session.flush()
        return model

    return _make


CUSTOM_PARAMETERS = {
    "invoice_type": "INVOICE",
    "recipient_name": "Netzbetreiber Nord GmbH",
    "recipient_address": "Am Deich 5\n25813 Husum",
    "items": [
        {"description": "Wartungspauschale", "quantity": 2, "unit_price": "150.00"},
        {"description": "Gebuehr", "quantity": 1, "unit_price": "50.00", "tax_type": "EXEMPT"},
    ],
}


@pytest.fixture
def custom_parameters() -> dict:
    return dict(CUSTOM_PARAMETERS)
