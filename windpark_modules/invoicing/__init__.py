"""
Invoicing Module (``windpark_modules.invoicing``).

Responsibility
--------------
Persistence boundary for invoices and credit notes: DTOs, line pricing
through the tax engine, ORM tables and ``InvoiceService``.
"""

from windpark_modules.invoicing.models import (
    Invoice,
    InvoiceDraft,
    InvoiceLine,
    InvoiceStatus,
    RecipientType,
    ReferenceType,
)
from windpark_modules.invoicing.service import InvoiceService

__all__ = [
    "Invoice",
    "InvoiceDraft",
    "InvoiceLine",
    "InvoiceService",
    "InvoiceStatus",
    "RecipientType",
    "ReferenceType",
]
