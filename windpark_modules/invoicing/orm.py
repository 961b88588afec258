"""
Module: windpark_modules.invoicing.orm
Responsibility:
    SQLAlchemy ORM models for invoices, credit notes and their lines.

Architecture position:
    **Modules layer** -- ORM models inheriting from ``TrackedBase``.  Only
    ``InvoiceService`` writes these tables.

Invariants enforced:
    - ``invoice_number`` is unique per tenant (uq_invoice_tenant_number).
    - Header amounts equal the sum of the line amounts (written together by
      InvoiceService).

Failure modes:
    - IntegrityError on a duplicate invoice number.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from windpark_kernel.db.base import TrackedBase, UUIDString


class InvoiceModel(TrackedBase):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoice_tenant_number"),
        Index("idx_invoice_internal_reference", "tenant_id", "internal_reference"),
        Index("idx_invoice_settlement", "settlement_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    invoice_type: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="DRAFT")

    recipient_type: Mapped[str] = mapped_column(String(50), nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    recipient_person_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    service_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    service_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    internal_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    net_amount: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(nullable=False)

    fund_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    park_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    lease_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    shareholder_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    settlement_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    items: Mapped[list[InvoiceItemModel]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceItemModel.position",
    )

    def to_dto(self):
        from windpark_modules.invoicing.models import (
            Invoice,
            InvoiceStatus,
            RecipientType,
        )
        from windpark_kernel.domain.values import InvoiceType

        return Invoice(
            id=self.id,
            tenant_id=self.tenant_id,
            invoice_type=InvoiceType(self.invoice_type),
            invoice_number=self.invoice_number,
            invoice_date=self.invoice_date,
            due_date=self.due_date,
            recipient_type=RecipientType(self.recipient_type),
            recipient_name=self.recipient_name,
            net_amount=self.net_amount,
            tax_amount=self.tax_amount,
            gross_amount=self.gross_amount,
            status=InvoiceStatus(self.status),
            lines=tuple(item.to_dto() for item in self.items),
            recipient_address=self.recipient_address,
            service_start_date=self.service_start_date,
            service_end_date=self.service_end_date,
            payment_reference=self.payment_reference,
            internal_reference=self.internal_reference,
            settlement_id=self.settlement_id,
        )


class InvoiceItemModel(TrackedBase):
    __tablename__ = "invoice_items"

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit: Mapped[str] = mapped_column(String(50), default="pauschal")
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(nullable=False)
    tax_type: Mapped[str] = mapped_column(String(20), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="items")

    def to_dto(self):
        from windpark_modules.invoicing.models import InvoiceLine, ReferenceType
        from windpark_kernel.domain.values import TaxType

        return InvoiceLine(
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            net_amount=self.net_amount,
            tax_type=TaxType(self.tax_type),
            tax_rate=self.tax_rate,
            tax_amount=self.tax_amount,
            gross_amount=self.gross_amount,
            unit=self.unit,
            reference_type=ReferenceType(self.reference_type) if self.reference_type else None,
            reference_id=self.reference_id,
        )
