"""
windpark_billing -- Recurring billing rules for wind-park operators.

Provides a rule engine that turns stored billing rules (lease advances,
lease payments, distributions, management fees, custom documents) into
invoices and credit notes: typed parameter structs, pure schedule
evaluation, one handler per rule type, a SAVEPOINT-isolated executor and an
in-process polling scheduler.

Architecture:
    windpark_billing/ is the top-level package.  Nothing in kernel/,
    engines/, config/ or modules/ imports from windpark_billing, except the
    ORM registry which loads its models for table creation.
"""
