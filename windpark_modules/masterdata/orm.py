"""
Module: windpark_modules.masterdata.orm
Responsibility:
    SQLAlchemy ORM models for the master data the billing calculators read:
    parks with their fee configuration and revenue phases, turbines, plots
    and plot areas, persons (lessors and shareholders), leases, funds,
    shareholders and energy revenues.

Architecture position:
    **Modules layer** -- ORM models inheriting from ``TrackedBase``.  The
    administration of these records (CRUD screens, imports) is an external
    concern; this module only defines their persisted shape.

Invariants enforced:
    - Every tenant-owned row carries ``tenant_id``; all lookups filter by it.
    - Enum-like fields are stored as String(50).
    - Money and percentages are Decimal (Numeric).

Failure modes:
    - IntegrityError on duplicate unique constraints.
    - ForeignKey violation on invalid parent references.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from windpark_kernel.db.base import TrackedBase, UUIDString

ACTIVE = "ACTIVE"


# =============================================================================
# Parks
# =============================================================================


class ParkModel(TrackedBase):
    """
    A wind park and its lease fee configuration.

    Guarantees:
        - Rates are nullable; the settlement loader rejects parks lacking
          the values it needs.
    """

    __tablename__ = "parks"
    __table_args__ = (Index("idx_park_tenant", "tenant_id"),)

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default=ACTIVE)
    commissioning_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    minimum_rent_per_turbine: Mapped[Decimal | None] = mapped_column(nullable=True)
    wea_share_percentage: Mapped[Decimal | None] = mapped_column(nullable=True)
    pool_share_percentage: Mapped[Decimal | None] = mapped_column(nullable=True)
    weg_compensation_per_sqm: Mapped[Decimal | None] = mapped_column(nullable=True)
    ausgleich_compensation_per_sqm: Mapped[Decimal | None] = mapped_column(nullable=True)
    kabel_compensation_per_m: Mapped[Decimal | None] = mapped_column(nullable=True)
    sealed_area_rate_per_sqm: Mapped[Decimal | None] = mapped_column(nullable=True)

    revenue_phases: Mapped[list[ParkRevenuePhaseModel]] = relationship(
        back_populates="park",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ParkRevenuePhaseModel.phase_number",
    )
    turbines: Mapped[list[TurbineModel]] = relationship(
        back_populates="park",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    plots: Mapped[list[PlotModel]] = relationship(
        back_populates="park",
        lazy="selectin",
    )

    @property
    def active_turbines(self) -> list[TurbineModel]:
        return [t for t in self.turbines if t.status == ACTIVE]


class ParkRevenuePhaseModel(TrackedBase):
    """Revenue share percentage for a range of operating years."""

    __tablename__ = "park_revenue_phases"
    __table_args__ = (
        UniqueConstraint("park_id", "phase_number", name="uq_park_revenue_phase"),
    )

    park_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("parks.id", ondelete="CASCADE"), nullable=False
    )
    phase_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_year: Mapped[int] = mapped_column(Integer, nullable=False)
    end_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    revenue_share_percentage: Mapped[Decimal] = mapped_column(nullable=False)

    park: Mapped[ParkModel] = relationship(back_populates="revenue_phases")


class TurbineModel(TrackedBase):
    __tablename__ = "turbines"

    park_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("parks.id", ondelete="CASCADE"), nullable=False
    )
    designation: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default=ACTIVE)

    park: Mapped[ParkModel] = relationship(back_populates="turbines")


# =============================================================================
# Plots
# =============================================================================


class PlotModel(TrackedBase):
    """A land parcel inside (or attached to) a park."""

    __tablename__ = "plots"
    __table_args__ = (Index("idx_plot_park", "park_id"),)

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    park_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("parks.id"), nullable=True
    )
    plot_number: Mapped[str] = mapped_column(String(100), nullable=False)
    cadastral_district: Mapped[str | None] = mapped_column(String(255), nullable=True)
    area_sqm: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), default=ACTIVE)

    park: Mapped[ParkModel | None] = relationship(back_populates="plots")
    areas: Mapped[list[PlotAreaModel]] = relationship(
        back_populates="plot",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    lease_plots: Mapped[list[LeasePlotModel]] = relationship(
        back_populates="plot",
        lazy="selectin",
    )


class PlotAreaModel(TrackedBase):
    """Typed sub-area of a plot (turbine site, pool, road, cable route...)."""

    __tablename__ = "plot_areas"

    plot_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("plots.id", ondelete="CASCADE"), nullable=False
    )
    area_type: Mapped[str] = mapped_column(String(50), nullable=False)
    area_sqm: Mapped[Decimal | None] = mapped_column(nullable=True)
    length_m: Mapped[Decimal | None] = mapped_column(nullable=True)
    compensation_type: Mapped[str] = mapped_column(String(50), default="ANNUAL")
    compensation_fixed_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    compensation_percentage: Mapped[Decimal | None] = mapped_column(nullable=True)

    plot: Mapped[PlotModel] = relationship(back_populates="areas")


# =============================================================================
# Persons, leases
# =============================================================================


class PersonModel(TrackedBase):
    """Natural or legal person: lessor, shareholder, invoice recipient."""

    __tablename__ = "persons"
    __table_args__ = (Index("idx_person_tenant", "tenant_id"),)

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    street: Mapped[str | None] = mapped_column(String(255), nullable=True)
    house_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    iban: Mapped[str | None] = mapped_column(String(34), nullable=True)
    bic: Mapped[str | None] = mapped_column(String(11), nullable=True)

    @property
    def display_name(self) -> str:
        if self.company_name:
            return self.company_name
        name = " ".join(p for p in (self.first_name, self.last_name) if p)
        return name or "Unbekannt"

    @property
    def address_lines(self) -> list[str]:
        lines: list[str] = []
        street = " ".join(p for p in (self.street, self.house_number) if p)
        if street:
            lines.append(street)
        city = " ".join(p for p in (self.postal_code, self.city) if p)
        if city:
            lines.append(city)
        return lines

    @property
    def postal_address(self) -> str | None:
        if not (self.street and self.postal_code and self.city):
            return None
        return "\n".join(self.address_lines)


class LeaseModel(TrackedBase):
    """Land lease between a lessor and the park operator."""

    __tablename__ = "leases"
    __table_args__ = (
        Index("idx_lease_tenant_status", "tenant_id", "status"),
        Index("idx_lease_lessor", "lessor_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    lessor_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("persons.id"), nullable=False
    )
    contract_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default=ACTIVE)

    lessor: Mapped[PersonModel] = relationship(lazy="selectin")
    lease_plots: Mapped[list[LeasePlotModel]] = relationship(
        back_populates="lease",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def plots(self) -> list[PlotModel]:
        return [lp.plot for lp in self.lease_plots]


class LeasePlotModel(TrackedBase):
    __tablename__ = "lease_plots"
    __table_args__ = (UniqueConstraint("lease_id", "plot_id", name="uq_lease_plot"),)

    lease_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("leases.id", ondelete="CASCADE"), nullable=False
    )
    plot_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("plots.id"), nullable=False
    )

    lease: Mapped[LeaseModel] = relationship(back_populates="lease_plots")
    plot: Mapped[PlotModel] = relationship(back_populates="lease_plots", lazy="selectin")


# =============================================================================
# Funds, shareholders
# =============================================================================


class FundModel(TrackedBase):
    """Investment vehicle owning one or more parks."""

    __tablename__ = "funds"
    __table_args__ = (Index("idx_fund_tenant", "tenant_id"),)

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default=ACTIVE)
    total_capital: Mapped[Decimal | None] = mapped_column(nullable=True)

    shareholders: Mapped[list[ShareholderModel]] = relationship(
        back_populates="fund",
        lazy="selectin",
        order_by="ShareholderModel.shareholder_number",
    )


class ShareholderModel(TrackedBase):
    """A person's holding in a fund."""

    __tablename__ = "shareholders"
    __table_args__ = (
        UniqueConstraint("fund_id", "shareholder_number", name="uq_shareholder_number"),
    )

    fund_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("funds.id"), nullable=False
    )
    person_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("persons.id"), nullable=False
    )
    shareholder_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default=ACTIVE)
    ownership_percentage: Mapped[Decimal | None] = mapped_column(nullable=True)
    distribution_percentage: Mapped[Decimal | None] = mapped_column(nullable=True)
    capital_contribution: Mapped[Decimal | None] = mapped_column(nullable=True)

    fund: Mapped[FundModel] = relationship(back_populates="shareholders")
    person: Mapped[PersonModel] = relationship(lazy="selectin")


# =============================================================================
# Energy revenue
# =============================================================================


class EnergyRevenueModel(TrackedBase):
    """Net operator revenue of a park for a month (or a whole year)."""

    __tablename__ = "energy_revenues"
    __table_args__ = (Index("idx_energy_revenue_park_year", "park_id", "year"),)

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    park_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("parks.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    net_operator_revenue_eur: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="DRAFT")
