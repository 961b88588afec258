"""
Module: windpark_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent
    column types, and the TrackedBase mixin for actor/timestamp metadata.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  Every ORM module imports from here; this module MUST NOT import
    from services/, domain/ or outer layers.

Invariants enforced:
    - UUID primary keys generated with uuid4.
    - Decimal maps to Numeric(38, 9).  Money is never stored as float.
    - TrackedBase rows always know who created them.

Failure modes:
    - IntegrityError on a duplicate primary key or a missing created_by_id.

Audit relevance:
    created_at / updated_at / created_by_id / updated_by_id are the minimal
    audit metadata of rules, executions, distributions, settlements and
    invoices.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import Date, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Contract:
        Converts between Python UUID objects and their 36-character string
        form, so PostgreSQL and the SQLite test database share one schema.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model inherits from Base (or TrackedBase).  Base provides a
        UUID primary key and a type_annotation_map shared by the whole schema.

    Guarantees:
        - id is a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to DateTime(timezone=True).
        - int maps to Integer (counters, years, months, day numbers).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
        PyUUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with timestamp and actor tracking.

    Guarantees:
        - created_at is set by the database on INSERT.
        - updated_at follows every UPDATE.
        - created_by_id is NOT NULL.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


# Re-export UUID for convenience
UUID = PyUUID
