"""
Pytest fixtures for the wind-park billing test suite.

Provides:
- In-memory SQLite sessions with working SAVEPOINTs (no PostgreSQL required)
- A naive-datetime DeterministicClock (SQLite stores datetimes without zone)
- Master data factories: parks, lessors, leases, funds, shareholders
- Log capture for structured log assertions
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from windpark_config.schema import BillingConfiguration
from windpark_kernel.db.base import Base
from windpark_kernel.domain.clock import DeterministicClock
from windpark_kernel.domain.tenant import TenantSettings
from windpark_kernel.logging_config import (
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from windpark_kernel.services.audit import InMemoryAuditSink
from windpark_modules._orm_registry import import_all_orm_models
from windpark_modules.masterdata.orm import (
    EnergyRevenueModel,
    FundModel,
    LeaseModel,
    LeasePlotModel,
    ParkModel,
    ParkRevenuePhaseModel,
    PersonModel,
    PlotAreaModel,
    PlotModel,
    ShareholderModel,
    TurbineModel,
)

FIXED_NOW = datetime(2025, 3, 10, 9, 0, 0)


# =============================================================================
# Database
# =============================================================================


def make_sqlite_engine() -> Engine:
    """In-memory SQLite engine shared by every session of a test.

    pysqlite's own transaction handling breaks SAVEPOINT; the listeners hand
    BEGIN back to SQLAlchemy.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    import_all_orm_models()
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    engine = make_sqlite_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# Clock, ids, settings
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def tenant_id() -> UUID:
    return uuid4()


@pytest.fixture
def actor_id() -> UUID:
    return uuid4()


@pytest.fixture
def settings(tenant_id) -> TenantSettings:
    return TenantSettings(tenant_id=tenant_id, payment_term_days=14)


@pytest.fixture
def billing_config() -> BillingConfiguration:
    return BillingConfiguration(config_id="test", default_payment_term_days=14)


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


# =============================================================================
# Master data factories
# =============================================================================


@dataclass
class MasterData:
    """Creates tenant-scoped master data rows in one session."""

    session: Session
    tenant_id: UUID
    actor_id: UUID = field(default_factory=uuid4)

    def _add(self, model):
        model.created_by_id = self.actor_id
        self.session.add(model)
        self.session.flush()
        return model

    def park(
        self,
        name: str = "Windpark Nord",
        turbines: int = 0,
        minimum_rent_per_turbine: Decimal | None = Decimal("12000"),
        wea_share_percentage: Decimal | None = Decimal("10"),
        pool_share_percentage: Decimal | None = Decimal("90"),
        commissioning_date: date | None = date(2020, 6, 1),
        revenue_share_percentage: Decimal | None = Decimal("8"),
        **rates,
    ) -> ParkModel:
        park = self._add(
            ParkModel(
                tenant_id=self.tenant_id,
                name=name,
                commissioning_date=commissioning_date,
                minimum_rent_per_turbine=minimum_rent_per_turbine,
                wea_share_percentage=wea_share_percentage,
                pool_share_percentage=pool_share_percentage,
                **rates,
            )
        )
        for i in range(turbines):
            self._add(TurbineModel(park_id=park.id, designation=f"WEA {i + 1}"))
        if revenue_share_percentage is not None:
            self._add(
                ParkRevenuePhaseModel(
                    park_id=park.id,
                    phase_number=1,
                    start_year=1,
                    end_year=None,
                    revenue_share_percentage=revenue_share_percentage,
                )
            )
        self.session.refresh(park)
        return park

    def person(
        self,
        last_name: str = "Meyer",
        first_name: str | None = "Anna",
        iban: str | None = "DE02120300000000202051",
        bic: str | None = "BYLADEM1001",
        with_address: bool = True,
    ) -> PersonModel:
        return self._add(
            PersonModel(
                tenant_id=self.tenant_id,
                first_name=first_name,
                last_name=last_name,
                street="Dorfstrasse" if with_address else None,
                house_number="1" if with_address else None,
                postal_code="25813" if with_address else None,
                city="Husum" if with_address else None,
                iban=iban,
                bic=bic,
            )
        )

    def plot(
        self,
        park: ParkModel | None,
        plot_number: str,
        areas: list[dict] | None = None,
    ) -> PlotModel:
        plot = self._add(
            PlotModel(
                tenant_id=self.tenant_id,
                park_id=park.id if park is not None else None,
                plot_number=plot_number,
                cadastral_district="Hattstedt",
            )
        )
        for area in areas or ():
            self._add(PlotAreaModel(plot_id=plot.id, **area))
        self.session.refresh(plot)
        if park is not None:
            self.session.expire(park, ["plots"])
        return plot

    def lease(
        self,
        lessor: PersonModel,
        plots: list[PlotModel],
        start_date: date = date(2020, 1, 1),
        end_date: date | None = None,
    ) -> LeaseModel:
        lease = self._add(
            LeaseModel(
                tenant_id=self.tenant_id,
                lessor_id=lessor.id,
                start_date=start_date,
                end_date=end_date,
            )
        )
        for plot in plots:
            self._add(LeasePlotModel(lease_id=lease.id, plot_id=plot.id))
        self.session.refresh(lease)
        for plot in plots:
            self.session.refresh(plot)
        return lease

    def turbine_lease(
        self,
        park: ParkModel,
        lessor: PersonModel,
        plot_number: str,
        start_date: date = date(2020, 1, 1),
        end_date: date | None = None,
    ) -> LeaseModel:
        """Lease of one plot carrying one turbine site."""
        plot = self.plot(park, plot_number, [{"area_type": "WEA_STANDORT"}])
        return self.lease(lessor, [plot], start_date, end_date)

    def energy_revenue(
        self,
        park: ParkModel,
        year: int,
        amount: Decimal,
        status: str = "CALCULATED",
        month: int | None = None,
    ) -> EnergyRevenueModel:
        return self._add(
            EnergyRevenueModel(
                tenant_id=self.tenant_id,
                park_id=park.id,
                year=year,
                month=month,
                net_operator_revenue_eur=amount,
                status=status,
            )
        )

    def fund(self, name: str = "Buergerwindpark GmbH & Co. KG", total_capital=None) -> FundModel:
        return self._add(
            FundModel(tenant_id=self.tenant_id, name=name, total_capital=total_capital)
        )

    def shareholder(
        self,
        fund: FundModel,
        number: str,
        distribution_percentage: Decimal | None = None,
        ownership_percentage: Decimal | None = None,
        capital_contribution: Decimal | None = None,
        status: str = "ACTIVE",
        last_name: str | None = None,
    ) -> ShareholderModel:
        person = self.person(last_name=last_name or f"Gesellschafter {number}")
        shareholder = self._add(
            ShareholderModel(
                fund_id=fund.id,
                person_id=person.id,
                shareholder_number=number,
                distribution_percentage=distribution_percentage,
                ownership_percentage=ownership_percentage,
                capital_contribution=capital_contribution,
                status=status,
            )
        )
        self.session.refresh(fund)
        return shareholder


@pytest.fixture
def masterdata(session, tenant_id, actor_id) -> MasterData:
    return MasterData(session=session, tenant_id=tenant_id, actor_id=actor_id)


# =============================================================================
# Logging
# =============================================================================


@dataclass
class CapturedLogs:
    stream: StringIO

    def records(self) -> list[dict]:
        return [json.loads(line) for line in self.stream.getvalue().splitlines() if line]

    def messages(self) -> list[str]:
        return [r["message"] for r in self.records()]

    def find(self, message: str) -> list[dict]:
        return [r for r in self.records() if r["message"] == message]


@pytest.fixture
def captured_logs() -> Generator[CapturedLogs, None, None]:
    """Structured JSON log lines of the windpark logger hierarchy."""
    reset_logging()
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    configure_logging(level=logging.DEBUG, handler=handler)
    yield CapturedLogs(stream)
    reset_logging()
