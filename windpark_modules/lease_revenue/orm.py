"""
Module: windpark_modules.lease_revenue.orm
Responsibility:
    SQLAlchemy ORM models for lease revenue settlements (yearly usage fee
    settlements and their advances) and the per-lease settlement items.

Architecture position:
    **Modules layer** -- ORM models inheriting from ``TrackedBase``.  Only
    ``LeaseRevenueSettlementService`` writes these tables.

Invariants enforced:
    - One settlement per (tenant, park, year, period_type, month-or-0)
      (uq_lease_revenue_settlement_period).  ``month_key`` stores the month
      or 0 so YEARLY advances and FINAL settlements collide as well.
    - Status only moves forward: OPEN -> CALCULATED -> SETTLED -> CLOSED.
    - Items are replaced as a whole on every calculation.

Failure modes:
    - IntegrityError on a duplicate period key (resolved by the service).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from windpark_kernel.db.base import TrackedBase, UUIDString
from windpark_kernel.db.types import ZERO


class LeaseRevenueSettlementModel(TrackedBase):
    __tablename__ = "lease_revenue_settlements"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "park_id",
            "year",
            "period_type",
            "month_key",
            name="uq_lease_revenue_settlement_period",
        ),
        Index("idx_lease_revenue_settlement_park_year", "park_id", "year"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    park_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("parks.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    month_key: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    period_type: Mapped[str] = mapped_column(String(20), nullable=False)
    advance_interval: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="OPEN")

    total_park_revenue_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    revenue_share_percent: Mapped[Decimal] = mapped_column(default=ZERO)
    calculated_fee_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    minimum_guarantee_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    actual_fee_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    used_minimum: Mapped[bool] = mapped_column(Boolean, default=False)
    wea_standort_total_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    pool_area_total_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    total_wea_count: Mapped[int] = mapped_column(Integer, default=0)
    total_pool_area_sqm: Mapped[Decimal] = mapped_column(default=ZERO)

    linked_energy_revenue_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("energy_revenues.id"), nullable=True
    )
    advance_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    settlement_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    calculation_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    is_historical: Mapped[bool] = mapped_column(Boolean, default=False)
    settled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    items: Mapped[list[LeaseRevenueSettlementItemModel]] = relationship(
        back_populates="settlement",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="LeaseRevenueSettlementItemModel.position",
    )

    def to_dto(self):
        from windpark_engines.settlement import AdvanceInterval, SettlementPeriodType
        from windpark_modules.lease_revenue.models import Settlement, SettlementStatus

        return Settlement(
            id=self.id,
            tenant_id=self.tenant_id,
            park_id=self.park_id,
            year=self.year,
            month=self.month,
            period_type=SettlementPeriodType(self.period_type),
            advance_interval=(
                AdvanceInterval(self.advance_interval) if self.advance_interval else None
            ),
            status=SettlementStatus(self.status),
            total_park_revenue_eur=self.total_park_revenue_eur,
            revenue_share_percent=self.revenue_share_percent,
            calculated_fee_eur=self.calculated_fee_eur,
            minimum_guarantee_eur=self.minimum_guarantee_eur,
            actual_fee_eur=self.actual_fee_eur,
            used_minimum=self.used_minimum,
            wea_standort_total_eur=self.wea_standort_total_eur,
            pool_area_total_eur=self.pool_area_total_eur,
            total_wea_count=self.total_wea_count,
            total_pool_area_sqm=self.total_pool_area_sqm,
            linked_energy_revenue_id=self.linked_energy_revenue_id,
            advance_due_date=self.advance_due_date,
            settlement_due_date=self.settlement_due_date,
            notes=self.notes,
            calculation_details=dict(self.calculation_details or {}),
            is_historical=self.is_historical,
            items=tuple(item.to_dto() for item in self.items),
        )


class LeaseRevenueSettlementItemModel(TrackedBase):
    __tablename__ = "lease_revenue_settlement_items"

    settlement_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("lease_revenue_settlements.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    lease_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("leases.id"), nullable=False
    )
    lessor_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("persons.id"), nullable=False
    )
    pool_area_sqm: Mapped[Decimal] = mapped_column(default=ZERO)
    pool_area_share_percent: Mapped[Decimal] = mapped_column(default=ZERO)
    pool_fee_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    turbine_count: Mapped[int] = mapped_column(Integer, default=0)
    standort_fee_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    sealed_area_sqm: Mapped[Decimal] = mapped_column(default=ZERO)
    sealed_area_fee_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    road_usage_fee_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    compensation_area_fee_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    cable_fee_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    subtotal_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    taxable_amount_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    exempt_amount_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    advance_paid_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    remainder_eur: Mapped[Decimal] = mapped_column(default=ZERO)
    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True
    )

    settlement: Mapped[LeaseRevenueSettlementModel] = relationship(back_populates="items")

    def to_dto(self):
        from windpark_modules.lease_revenue.models import SettlementItem

        return SettlementItem(
            lease_id=self.lease_id,
            lessor_id=self.lessor_id,
            pool_area_sqm=self.pool_area_sqm,
            pool_area_share_percent=self.pool_area_share_percent,
            pool_fee_eur=self.pool_fee_eur,
            turbine_count=self.turbine_count,
            standort_fee_eur=self.standort_fee_eur,
            sealed_area_sqm=self.sealed_area_sqm,
            sealed_area_fee_eur=self.sealed_area_fee_eur,
            road_usage_fee_eur=self.road_usage_fee_eur,
            compensation_area_fee_eur=self.compensation_area_fee_eur,
            cable_fee_eur=self.cable_fee_eur,
            subtotal_eur=self.subtotal_eur,
            taxable_amount_eur=self.taxable_amount_eur,
            exempt_amount_eur=self.exempt_amount_eur,
            advance_paid_eur=self.advance_paid_eur,
            remainder_eur=self.remainder_eur,
            invoice_id=self.invoice_id,
        )

    def component_amounts(self) -> dict:
        from windpark_engines.settlement import SettlementComponent

        return {
            SettlementComponent.POOL_AREA: self.pool_fee_eur,
            SettlementComponent.TURBINE_SITE: self.standort_fee_eur,
            SettlementComponent.SEALED_AREA: self.sealed_area_fee_eur,
            SettlementComponent.ROAD_USAGE: self.road_usage_fee_eur,
            SettlementComponent.COMPENSATION_AREA: self.compensation_area_fee_eur,
            SettlementComponent.CABLE_ROUTE: self.cable_fee_eur,
        }
