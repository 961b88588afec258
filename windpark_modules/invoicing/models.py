"""
Invoicing Domain Models.

Frozen DTOs for invoices and credit notes produced by billing handlers and
module services.  ``InvoiceLine`` builders compute net/tax/gross through the
tax engine so every producer prices lines the same way.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from windpark_engines.tax import calculate_tax
from windpark_kernel.db.types import ZERO, round_money
from windpark_kernel.domain.values import InvoiceType, TaxType


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class RecipientType(str, Enum):
    LESSOR = "LESSOR"
    SHAREHOLDER = "SHAREHOLDER"
    FUND = "FUND"
    PARK = "PARK"
    OTHER = "OTHER"


class ReferenceType(str, Enum):
    """What produced an invoice line."""

    LEASE_ADVANCE = "LEASE_ADVANCE"
    LEASE_PAYMENT = "LEASE_PAYMENT"
    DISTRIBUTION = "DISTRIBUTION"
    MANAGEMENT_FEE = "MANAGEMENT_FEE"
    CUSTOM = "CUSTOM"
    LEASE_REVENUE_SETTLEMENT = "LEASE_REVENUE_SETTLEMENT"


@dataclass(frozen=True)
class InvoiceLine:
    description: str
    quantity: Decimal
    unit_price: Decimal
    net_amount: Decimal
    tax_type: TaxType
    tax_rate: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    unit: str = "pauschal"
    reference_type: ReferenceType | None = None
    reference_id: UUID | None = None

    @classmethod
    def priced(
        cls,
        description: str,
        quantity: Decimal,
        unit_price: Decimal,
        tax_type: TaxType,
        rates: Mapping[TaxType, Decimal] | None = None,
        unit: str = "pauschal",
        reference_type: ReferenceType | None = None,
        reference_id: UUID | None = None,
    ) -> InvoiceLine:
        """Line with ``net = round(quantity * unit_price)``."""
        amounts = calculate_tax(round_money(quantity * unit_price), tax_type, rates)
        return cls(
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            net_amount=amounts.net_amount,
            tax_type=amounts.tax_type,
            tax_rate=amounts.tax_rate,
            tax_amount=amounts.tax_amount,
            gross_amount=amounts.gross_amount,
            unit=unit,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    @classmethod
    def flat(
        cls,
        description: str,
        amount: Decimal,
        tax_type: TaxType,
        rates: Mapping[TaxType, Decimal] | None = None,
        reference_type: ReferenceType | None = None,
        reference_id: UUID | None = None,
    ) -> InvoiceLine:
        """Single flat-rate line (quantity 1, unit ``pauschal``)."""
        return cls.priced(
            description,
            Decimal("1"),
            amount,
            tax_type,
            rates,
            reference_type=reference_type,
            reference_id=reference_id,
        )


@dataclass(frozen=True)
class InvoiceDraft:
    """Everything needed to persist one invoice or credit note."""

    tenant_id: UUID
    invoice_type: InvoiceType
    invoice_number: str
    invoice_date: date
    due_date: date
    recipient_type: RecipientType
    recipient_name: str
    lines: tuple[InvoiceLine, ...]
    recipient_address: str | None = None
    recipient_person_id: UUID | None = None
    service_start_date: date | None = None
    service_end_date: date | None = None
    payment_reference: str | None = None
    internal_reference: str | None = None
    notes: str | None = None
    fund_id: UUID | None = None
    park_id: UUID | None = None
    lease_id: UUID | None = None
    shareholder_id: UUID | None = None
    settlement_id: UUID | None = None

    def __post_init__(self) -> None:
        if not self.lines:
            raise ValueError("An invoice needs at least one line")
        if self.due_date < self.invoice_date:
            raise ValueError("due_date cannot precede invoice_date")

    @property
    def net_amount(self) -> Decimal:
        return sum((line.net_amount for line in self.lines), ZERO)

    @property
    def tax_amount(self) -> Decimal:
        return sum((line.tax_amount for line in self.lines), ZERO)

    @property
    def gross_amount(self) -> Decimal:
        return sum((line.gross_amount for line in self.lines), ZERO)


@dataclass(frozen=True)
class Invoice:
    """A persisted invoice or credit note."""

    id: UUID
    tenant_id: UUID
    invoice_type: InvoiceType
    invoice_number: str
    invoice_date: date
    due_date: date
    recipient_type: RecipientType
    recipient_name: str
    net_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    status: InvoiceStatus
    lines: tuple[InvoiceLine, ...] = ()
    recipient_address: str | None = None
    service_start_date: date | None = None
    service_end_date: date | None = None
    payment_reference: str | None = None
    internal_reference: str | None = None
    settlement_id: UUID | None = None
