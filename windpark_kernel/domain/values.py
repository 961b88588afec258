"""
Values -- shared enumerations used across engines, modules and billing.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  The invoice number allocator, the tax
    calculator and the invoicing module all key on these enums, so they live
    at the bottom of the dependency graph.
"""

from enum import Enum


class InvoiceType(str, Enum):
    """Kind of payment document.  Each type has its own number range."""

    INVOICE = "INVOICE"
    CREDIT_NOTE = "CREDIT_NOTE"


class TaxType(str, Enum):
    """VAT treatment of an invoice line."""

    STANDARD = "STANDARD"
    REDUCED = "REDUCED"
    EXEMPT = "EXEMPT"
