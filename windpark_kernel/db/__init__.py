"""Database layer - engine, base classes, types and unit of work."""

from windpark_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from windpark_kernel.db.engine import (
    atomic,
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from windpark_kernel.db.types import Money, Percent, round_money, round_percent

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "atomic",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Percent",
    "round_money",
    "round_percent",
]
