"""
Module: windpark_modules.distribution.orm
Responsibility:
    SQLAlchemy ORM models for fund profit distributions and their
    per-shareholder items.

Architecture position:
    **Modules layer** -- ORM models inheriting from ``TrackedBase``.

Invariants enforced:
    - ``distribution_number`` is unique per tenant.
    - One item per shareholder and distribution.
    - Items only gain ``invoice_id`` when the distribution is executed.

Failure modes:
    - IntegrityError on a duplicate distribution number or shareholder item.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from windpark_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from windpark_modules.masterdata.orm import ShareholderModel


class DistributionModel(TrackedBase):
    __tablename__ = "distributions"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "distribution_number", name="uq_distribution_tenant_number"
        ),
        Index("idx_distribution_fund", "fund_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    fund_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("funds.id"), nullable=False
    )
    distribution_number: Mapped[str] = mapped_column(String(50), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    distribution_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="DRAFT")
    executed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    items: Mapped[list[DistributionItemModel]] = relationship(
        back_populates="distribution",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self):
        from windpark_modules.distribution.models import (
            Distribution,
            DistributionStatus,
        )

        return Distribution(
            id=self.id,
            tenant_id=self.tenant_id,
            fund_id=self.fund_id,
            distribution_number=self.distribution_number,
            total_amount=self.total_amount,
            distribution_date=self.distribution_date,
            status=DistributionStatus(self.status),
            items=tuple(item.to_dto() for item in self.items),
            description=self.description,
            executed_at=self.executed_at,
        )


class DistributionItemModel(TrackedBase):
    __tablename__ = "distribution_items"
    __table_args__ = (
        UniqueConstraint(
            "distribution_id", "shareholder_id", name="uq_distribution_item_shareholder"
        ),
    )

    distribution_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("distributions.id", ondelete="CASCADE"), nullable=False
    )
    shareholder_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("shareholders.id"), nullable=False
    )
    percentage: Mapped[Decimal] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True
    )

    distribution: Mapped[DistributionModel] = relationship(back_populates="items")
    shareholder: Mapped[ShareholderModel] = relationship(lazy="selectin")

    def to_dto(self):
        from windpark_modules.distribution.models import DistributionItem

        return DistributionItem(
            shareholder_id=self.shareholder_id,
            shareholder_number=self.shareholder.shareholder_number,
            recipient_name=self.shareholder.person.display_name,
            percentage=self.percentage,
            amount=self.amount,
            invoice_id=self.invoice_id,
        )
