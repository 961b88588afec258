"""Tests for the module-level engine, session scope and table creation."""

from uuid import uuid4

import pytest
from sqlalchemy import inspect, select

from windpark_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)
from windpark_kernel.logging_config import reset_logging
from windpark_kernel.services.sequence_service import SequenceCounter


@pytest.fixture
def file_engine(tmp_path):
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'windpark.db'}")
    create_tables()
    yield engine
    reset_engine()
    reset_logging()


def _counter(tenant_id):
    return SequenceCounter(tenant_id=tenant_id, sequence_key="INVOICE", year=2025, current_value=1)


def test_uninitialized_engine():
    reset_engine()
    with pytest.raises(RuntimeError):
        get_engine()
    with pytest.raises(RuntimeError):
        get_session()
    assert is_postgres() is False


def test_create_tables(file_engine):
    tables = set(inspect(file_engine).get_table_names())
    assert {
        "billing_rules",
        "billing_rule_executions",
        "invoices",
        "sequence_counters",
        "lease_revenue_settlements",
    } <= tables


def test_session_scope_commits(file_engine):
    tenant_id = uuid4()
    with session_scope() as session:
        session.add(_counter(tenant_id))

    with session_scope() as session:
        rows = session.execute(
            select(SequenceCounter).where(SequenceCounter.tenant_id == tenant_id)
        ).scalars().all()
    assert len(rows) == 1


def test_session_scope_rolls_back(file_engine):
    tenant_id = uuid4()
    with pytest.raises(ZeroDivisionError):
        with session_scope() as session:
            session.add(_counter(tenant_id))
            session.flush()
            1 / 0

    with session_scope() as session:
        rows = session.execute(
            select(SequenceCounter).where(SequenceCounter.tenant_id == tenant_id)
        ).scalars().all()
    assert rows == []


def test_drop_tables(file_engine):
    drop_tables()
    assert inspect(file_engine).get_table_names() == []
