"""
Module ORM Registry (``windpark_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table definition before tables are created.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``windpark_kernel.db.engine.create_tables`` and by ``tests/conftest.py``.

Usage
-----
Scripts, entrypoints and tests call ``create_all_tables()``.
"""


def import_all_orm_models() -> None:
    """Import kernel tables and every ``*.orm`` module.  Idempotent."""
    # Kernel tables first (sequence counters)
    import windpark_kernel.services.sequence_service  # noqa: F401
    # fmt: off
    import windpark_modules.masterdata.orm  # noqa: F401
    import windpark_modules.invoicing.orm  # noqa: F401
    import windpark_modules.distribution.orm  # noqa: F401
    import windpark_modules.lease_revenue.orm  # noqa: F401
    import windpark_billing.models.billing_rule  # noqa: F401  # Rule and execution tables
    # fmt: on


def create_all_tables() -> None:
    """Register all ORM models and create every table on the current engine."""
    from windpark_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables()
