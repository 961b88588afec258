"""
LeaseRevenueSettlementService -- yearly usage fee settlements of a park.

Responsibility:
    Owns the settlement lifecycle OPEN -> CALCULATED -> SETTLED -> CLOSED:
    creation with the duplicate/merge policy, calculation through the pure
    settlement engine, invoice generation on settle, closing, and the import
    of historical (already settled elsewhere) years.

Architecture position:
    Modules layer.  Reads master data through the settlement loader, calls
    ``windpark_engines.settlement``, writes invoices through InvoiceService
    and numbers through InvoiceNumberAllocator.

Invariants enforced:
    - One settlement per (tenant, park, year, period_type, month-or-0).
    - Status transitions only forward (``ALLOWED_TRANSITIONS``).
    - FINAL settlements deduct, per lease, the subtotals of the park's
      ADVANCE settlements of the same year in CALCULATED/SETTLED/CLOSED.
    - Every mutating operation is one unit of work (``atomic``).
    - Document numbers of one settle run are allocated per type in one batch.

Failure modes:
    - InvalidSettlementRequestError / InvalidPeriodError on inconsistent
      creation requests.
    - SettlementConflictError when the period is already SETTLED/CLOSED.
    - SettlementStateError on an illegal transition.
    - SettlementNotFoundError / ParkNotFoundError / EnergyRevenueNotFoundError.
    - SettlementDataIncompleteError from the loader.

Audit relevance:
    Creation, calculation, settlement, closing and historical imports are
    logged and handed to the audit sink.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from windpark_config.schema import NumberingConfig, SettlementConfig
from windpark_engines.settlement import (
    COMPONENT_LABELS,
    AdvanceInterval,
    SettlementComponent,
    SettlementItemResult,
    SettlementPeriodType,
    ServicePeriod,
    apply_advance_deductions,
    calculate_advance_fees,
    calculate_settlement_fees,
    quarter_of,
    settlement_service_period,
)
from windpark_kernel.db.engine import atomic
from windpark_kernel.db.types import ZERO, round_money, to_decimal
from windpark_kernel.domain.clock import Clock, SystemClock
from windpark_kernel.domain.tenant import TenantSettings
from windpark_kernel.domain.values import InvoiceType, TaxType
from windpark_kernel.exceptions import (
    InvalidPeriodError,
    InvalidSettlementRequestError,
    SettlementConflictError,
    SettlementNotFoundError,
    SettlementStateError,
)
from windpark_kernel.logging_config import get_logger
from windpark_kernel.services.audit import AuditEntry, AuditSink, emit_audit
from windpark_kernel.services.number_allocator import InvoiceNumberAllocator
from windpark_modules.invoicing.models import (
    Invoice,
    InvoiceDraft,
    InvoiceLine,
    RecipientType,
    ReferenceType,
)
from windpark_modules.invoicing.service import InvoiceService
from windpark_modules.lease_revenue.loader import load_park_revenue, load_settlement_input
from windpark_modules.lease_revenue.models import (
    ADVANCE_DEDUCTIBLE_STATUSES,
    ALLOWED_TRANSITIONS,
    MERGEABLE_STATUSES,
    Settlement,
    SettlementCreation,
    SettlementInvoices,
    SettlementStatus,
)
from windpark_modules.lease_revenue.orm import (
    LeaseRevenueSettlementItemModel,
    LeaseRevenueSettlementModel,
)
from windpark_modules.masterdata.orm import PersonModel
from windpark_modules.masterdata.queries import get_park

logger = get_logger("modules.lease_revenue.service")

MIN_YEAR = 1990
MAX_YEAR = 2100

ComponentAmounts = dict[SettlementComponent, Decimal]


def _zero_components() -> ComponentAmounts:
    return {component: ZERO for component in SettlementComponent}


def _item_model(
    position: int, item: SettlementItemResult, actor_id: UUID
) -> LeaseRevenueSettlementItemModel:
    return LeaseRevenueSettlementItemModel(
        position=position,
        lease_id=item.lease_id,
        lessor_id=item.lessor_id,
        pool_area_sqm=item.pool_area_sqm,
        pool_area_share_percent=item.pool_share_percent,
        pool_fee_eur=item.pool_fee,
        turbine_count=item.turbine_count,
        standort_fee_eur=item.standort_fee,
        sealed_area_sqm=item.sealed_area_sqm,
        sealed_area_fee_eur=item.sealed_area_fee,
        road_usage_fee_eur=item.road_usage_fee,
        compensation_area_fee_eur=item.compensation_area_fee,
        cable_fee_eur=item.cable_fee,
        subtotal_eur=item.subtotal,
        taxable_amount_eur=item.taxable_amount,
        exempt_amount_eur=item.exempt_amount,
        advance_paid_eur=item.advance_paid,
        remainder_eur=item.remainder,
        created_by_id=actor_id,
    )


class LeaseRevenueSettlementService:
    """
    Settlement lifecycle for one session.

    Contract:
        All operations are tenant-scoped.  Mutations run inside
        ``atomic(session)``; the caller decides about the outer commit.

    Non-goals:
        - Does NOT render invoice PDFs or send documents.
        - Does NOT allocate costs to funds (direct billing).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        number_allocator: InvoiceNumberAllocator | None = None,
        invoice_service: InvoiceService | None = None,
        settlement_config: SettlementConfig | None = None,
        tax_rates: Mapping[TaxType, Decimal] | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        numbering = NumberingConfig()
        self._allocator = number_allocator or InvoiceNumberAllocator(
            session, self._clock, numbering.prefixes(), numbering.invoice_digits
        )
        self._invoices = invoice_service or InvoiceService(session, self._clock)
        self._config = settlement_config or SettlementConfig()
        self._tax_rates = tax_rates
        self._audit = audit_sink

    def _tax_treatment(self, component: SettlementComponent) -> TaxType:
        return self._config.tax_type_for(component.value)

    # -----------------------------------------------------------------
    # Creation
    # -----------------------------------------------------------------

    @staticmethod
    def normalize_period(
        year: int,
        period_type: SettlementPeriodType,
        interval: AdvanceInterval | None,
        month: int | None,
    ) -> int | None:
        """
        Validate the period of a request and return the month to store.

        Quarterly advances are stored under the first month of the quarter.
        """
        if not MIN_YEAR <= year <= MAX_YEAR:
            raise InvalidPeriodError(
                year, month, f"year must be between {MIN_YEAR} and {MAX_YEAR}"
            )
        if month is not None and not 1 <= month <= 12:
            raise InvalidPeriodError(year, month, "month must be between 1 and 12")

        if period_type == SettlementPeriodType.FINAL:
            if interval is not None:
                raise InvalidSettlementRequestError(
                    "final settlements have no advance interval"
                )
            if month is not None:
                raise InvalidSettlementRequestError(
                    "final settlements cover the whole year; month must be empty"
                )
            return None

        if interval is None:
            raise InvalidSettlementRequestError(
                "advance settlements require an advance interval"
            )
        if interval == AdvanceInterval.YEARLY:
            if month is not None:
                raise InvalidSettlementRequestError(
                    "yearly advances cover the whole year; month must be empty"
                )
            return None
        if month is None:
            raise InvalidSettlementRequestError(
                f"{interval.value.lower()} advances require a month"
            )
        if interval == AdvanceInterval.QUARTERLY:
            return (quarter_of(month) - 1) * 3 + 1
        return month

    def create(
        self,
        tenant_id: UUID,
        park_id: UUID,
        year: int,
        period_type: SettlementPeriodType,
        actor_id: UUID,
        month: int | None = None,
        advance_interval: AdvanceInterval | None = None,
        linked_energy_revenue_id: UUID | None = None,
        advance_due_date: date | None = None,
        settlement_due_date: date | None = None,
        notes: str | None = None,
    ) -> SettlementCreation:
        """
        Create an OPEN settlement, or merge into the existing one.

        Existing OPEN/CALCULATED settlement of the same period: the optional
        fields given here are merged and ``created`` is False.  Existing
        SETTLED/CLOSED settlement: SettlementConflictError.
        """
        period_type = SettlementPeriodType(period_type)
        interval = AdvanceInterval(advance_interval) if advance_interval else None
        month = self.normalize_period(year, period_type, interval, month)

        get_park(self._session, tenant_id, park_id)
        if linked_energy_revenue_id is not None:
            load_park_revenue(
                self._session, tenant_id, park_id, year, linked_energy_revenue_id
            )

        changes = {
            "advance_interval": interval.value if interval else None,
            "linked_energy_revenue_id": linked_energy_revenue_id,
            "advance_due_date": advance_due_date,
            "settlement_due_date": settlement_due_date,
            "notes": notes,
        }

        with atomic(self._session):
            existing = self._find_period(tenant_id, park_id, year, period_type, month)
            if existing is not None:
                return self._merge(existing, changes, actor_id)

            model = LeaseRevenueSettlementModel(
                tenant_id=tenant_id,
                park_id=park_id,
                year=year,
                month=month,
                month_key=month or 0,
                period_type=period_type.value,
                status=SettlementStatus.OPEN.value,
                created_by_id=actor_id,
                **changes,
            )
            try:
                with self._session.begin_nested():
                    self._session.add(model)
                    self._session.flush()
            except IntegrityError:
                logger.debug(
                    "settlement_create_race_retry",
                    extra={"park_id": str(park_id), "year": year},
                )
                existing = self._find_period(tenant_id, park_id, year, period_type, month)
                if existing is None:
                    raise
                return self._merge(existing, changes, actor_id)

        logger.info(
            "settlement_created",
            extra={
                "settlement_id": str(model.id),
                "park_id": str(park_id),
                "year": year,
                "month": month,
                "period_type": period_type.value,
            },
        )
        self._record(tenant_id, "settlement_created", model.id, actor_id, {"year": year})
        return SettlementCreation(settlement=model.to_dto(), created=True)

    def _merge(
        self,
        existing: LeaseRevenueSettlementModel,
        changes: dict[str, Any],
        actor_id: UUID,
    ) -> SettlementCreation:
        status = SettlementStatus(existing.status)
        if status not in MERGEABLE_STATUSES:
            raise SettlementConflictError(
                str(existing.park_id),
                existing.year,
                existing.period_type,
                existing.month,
                status.value,
            )
        for name, value in changes.items():
            if value is not None:
                setattr(existing, name, value)
        existing.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "settlement_merged",
            extra={"settlement_id": str(existing.id), "status": status.value},
        )
        return SettlementCreation(settlement=existing.to_dto(), created=False)

    def import_historical(
        self,
        tenant_id: UUID,
        park_id: UUID,
        year: int,
        total_park_revenue_eur: Decimal,
        revenue_share_percent: Decimal,
        actual_fee_eur: Decimal,
        actor_id: UUID,
        notes: str | None = None,
    ) -> Settlement:
        """
        Record a FINAL settlement of a year settled outside the system.

        The settlement is CLOSED, flagged ``is_historical`` and has no items.
        An OPEN/CALCULATED settlement of that year is replaced.
        """
        revenue = to_decimal(total_park_revenue_eur)
        share = to_decimal(revenue_share_percent)
        fee = to_decimal(actual_fee_eur)
        if revenue < ZERO or share < ZERO or fee < ZERO:
            raise InvalidSettlementRequestError("historical amounts cannot be negative")
        self.normalize_period(year, SettlementPeriodType.FINAL, None, None)
        get_park(self._session, tenant_id, park_id)

        with atomic(self._session):
            model = self._find_period(
                tenant_id, park_id, year, SettlementPeriodType.FINAL, None
            )
            if model is not None:
                if SettlementStatus(model.status) not in MERGEABLE_STATUSES:
                    raise SettlementConflictError(
                        str(park_id), year, model.period_type, None, model.status
                    )
                model.items.clear()
                model.updated_by_id = actor_id
            else:
                model = LeaseRevenueSettlementModel(
                    tenant_id=tenant_id,
                    park_id=park_id,
                    year=year,
                    month=None,
                    month_key=0,
                    period_type=SettlementPeriodType.FINAL.value,
                    created_by_id=actor_id,
                )
                self._session.add(model)

            model.status = SettlementStatus.CLOSED.value
            model.is_historical = True
            model.total_park_revenue_eur = round_money(revenue)
            model.revenue_share_percent = share
            model.calculated_fee_eur = ZERO
            model.minimum_guarantee_eur = ZERO
            model.actual_fee_eur = round_money(fee)
            model.used_minimum = False
            model.wea_standort_total_eur = ZERO
            model.pool_area_total_eur = ZERO
            model.total_wea_count = 0
            model.total_pool_area_sqm = ZERO
            model.closed_at = self._clock.now()
            if notes is not None:
                model.notes = notes
            model.calculation_details = {
                "historical": True,
                "importedAt": self._clock.now().isoformat(),
                "importedBy": str(actor_id),
            }
            self._session.flush()

        logger.info(
            "settlement_historical_imported",
            extra={"settlement_id": str(model.id), "park_id": str(park_id), "year": year},
        )
        self._record(
            tenant_id,
            "settlement_historical_imported",
            model.id,
            actor_id,
            {"year": year, "actual_fee_eur": str(model.actual_fee_eur)},
        )
        return model.to_dto()

    # -----------------------------------------------------------------
    # Calculation
    # -----------------------------------------------------------------

    def calculate(
        self,
        tenant_id: UUID,
        settlement_id: UUID,
        actor_id: UUID,
        manual_revenue: Decimal | None = None,
    ) -> Settlement:
        """
        Compute the settlement and replace its items.

        Repeatable while OPEN or CALCULATED.
        """
        with atomic(self._session):
            model = self._load(tenant_id, settlement_id, lock=True)
            self._require_status(model, "calculate")

            loaded = load_settlement_input(
                self._session,
                tenant_id,
                model.park_id,
                model.year,
                model.linked_energy_revenue_id,
                to_decimal(manual_revenue) if manual_revenue is not None else None,
            )
            inp = loaded.inp
            is_advance = model.period_type == SettlementPeriodType.ADVANCE.value

            if is_advance:
                calc = calculate_advance_fees(
                    inp=inp,
                    interval=AdvanceInterval(model.advance_interval),
                    tax_treatment=self._tax_treatment,
                )
                items = calc.items
                paid_total = ZERO
            else:
                calc = calculate_settlement_fees(inp=inp, tax_treatment=self._tax_treatment)
                paid = {
                    lease_id: sum(components.values(), ZERO)
                    for lease_id, components in self._advance_components(
                        tenant_id, model.park_id, model.year
                    ).items()
                }
                items = apply_advance_deductions(calc.items, paid)
                paid_total = sum(paid.values(), ZERO)

            model.items.clear()
            self._session.flush()
            for position, item in enumerate(items, start=1):
                model.items.append(_item_model(position, item, actor_id))

            model.total_park_revenue_eur = ZERO if is_advance else inp.total_park_revenue
            model.revenue_share_percent = ZERO if is_advance else inp.revenue_share_percent
            model.calculated_fee_eur = calc.calculated_fee
            model.minimum_guarantee_eur = calc.minimum_guarantee
            model.actual_fee_eur = calc.actual_fee
            model.used_minimum = calc.used_minimum
            model.wea_standort_total_eur = calc.standort_total
            model.pool_area_total_eur = calc.pool_total
            model.total_wea_count = inp.total_turbine_count
            model.total_pool_area_sqm = inp.total_pool_area_sqm
            model.status = SettlementStatus.CALCULATED.value
            model.updated_by_id = actor_id
            model.calculation_details = {
                "calculatedAt": self._clock.now().isoformat(),
                "calculatedBy": str(actor_id),
                "periodType": model.period_type,
                "advanceInterval": model.advance_interval,
                "totalPaidAdvances": str(paid_total),
                "input": loaded.snapshot(),
            }
            self._session.flush()

        logger.info(
            "settlement_calculated",
            extra={
                "settlement_id": str(model.id),
                "period_type": model.period_type,
                "actual_fee_eur": str(model.actual_fee_eur),
                "used_minimum": model.used_minimum,
                "item_count": len(items),
            },
        )
        self._record(
            tenant_id,
            "settlement_calculated",
            model.id,
            actor_id,
            {"actual_fee_eur": str(model.actual_fee_eur)},
        )
        return model.to_dto()

    def _advance_components(
        self, tenant_id: UUID, park_id: UUID, year: int
    ) -> dict[UUID, ComponentAmounts]:
        """Per-lease component sums of the year's deductible advances."""
        rows = self._session.execute(
            select(LeaseRevenueSettlementItemModel)
            .join(LeaseRevenueSettlementItemModel.settlement)
            .where(
                LeaseRevenueSettlementModel.tenant_id == tenant_id,
                LeaseRevenueSettlementModel.park_id == park_id,
                LeaseRevenueSettlementModel.year == year,
                LeaseRevenueSettlementModel.period_type == SettlementPeriodType.ADVANCE.value,
                LeaseRevenueSettlementModel.status.in_(
                    [s.value for s in ADVANCE_DEDUCTIBLE_STATUSES]
                ),
            )
        ).scalars()
        result: dict[UUID, ComponentAmounts] = {}
        for item in rows:
            components = result.setdefault(item.lease_id, _zero_components())
            for component, amount in item.component_amounts().items():
                components[component] += amount
        return result

    # -----------------------------------------------------------------
    # Settle / close
    # -----------------------------------------------------------------

    def settle(
        self,
        tenant_id: UUID,
        settlement_id: UUID,
        settings: TenantSettings,
        actor_id: UUID,
    ) -> SettlementInvoices:
        """
        Generate the settlement's documents and mark it SETTLED.

        ADVANCE: a credit note per item with a positive subtotal.
        FINAL: a credit note for a positive remainder (fee lines minus
        advance deduction lines), an invoice reclaiming over-paid advances
        for a negative remainder, nothing for a zero remainder.
        """
        invoices: list[Invoice] = []
        with atomic(self._session):
            model = self._load(tenant_id, settlement_id, lock=True)
            self._require_status(model, "settle")
            park = get_park(self._session, tenant_id, model.park_id)

            period_type = SettlementPeriodType(model.period_type)
            period = settlement_service_period(
                period_type,
                model.year,
                model.month,
                AdvanceInterval(model.advance_interval) if model.advance_interval else None,
            )
            if period_type == SettlementPeriodType.ADVANCE:
                plans = self._advance_documents(model, period)
            else:
                plans = self._final_documents(tenant_id, model, period)

            numbers = {}
            for invoice_type in InvoiceType:
                count = sum(1 for _, t, _ in plans if t == invoice_type)
                if count:
                    numbers[invoice_type] = iter(
                        self._allocator.allocate(tenant_id, invoice_type, count=count)
                    )

            invoice_date = self._clock.today()
            configured_due = (
                model.advance_due_date
                if period_type == SettlementPeriodType.ADVANCE
                else model.settlement_due_date
            )
            due_date = configured_due or invoice_date + timedelta(
                days=settings.payment_term_days
            )
            due_date = max(due_date, invoice_date)
            kind = "Vorschuss" if period_type == SettlementPeriodType.ADVANCE else "Endabrechnung"

            for item, invoice_type, lines in plans:
                lessor = self._session.get(PersonModel, item.lessor_id)
                draft = InvoiceDraft(
                    tenant_id=tenant_id,
                    invoice_type=invoice_type,
                    invoice_number=next(numbers[invoice_type]),
                    invoice_date=invoice_date,
                    due_date=due_date,
                    recipient_type=RecipientType.LESSOR,
                    recipient_name=lessor.display_name if lessor else "Unbekannt",
                    recipient_address=lessor.postal_address if lessor else None,
                    recipient_person_id=item.lessor_id,
                    service_start_date=period.start,
                    service_end_date=period.end,
                    payment_reference=f"Nutzungsentgelt {kind} {period.label} - {park.name}",
                    internal_reference=(
                        f"NE-{'VS' if period_type == SettlementPeriodType.ADVANCE else 'EA'}"
                        f"-{model.year}-{str(model.id)[:8]}-{str(item.lease_id)[:8]}"
                    ),
                    park_id=model.park_id,
                    lease_id=item.lease_id,
                    settlement_id=model.id,
                    lines=tuple(lines),
                )
                invoice = self._invoices.create_invoice(draft, actor_id)
                item.invoice_id = invoice.id
                invoices.append(invoice)

            model.status = SettlementStatus.SETTLED.value
            model.settled_at = self._clock.now()
            model.updated_by_id = actor_id
            self._session.flush()

        logger.info(
            "settlement_settled",
            extra={
                "settlement_id": str(model.id),
                "documents": len(invoices),
                "period_label": period.label,
            },
        )
        self._record(
            tenant_id,
            "settlement_settled",
            model.id,
            actor_id,
            {"documents": [i.invoice_number for i in invoices]},
        )
        return SettlementInvoices(settlement=model.to_dto(), invoices=tuple(invoices))

    def _line(
        self,
        text: str,
        component: SettlementComponent,
        amount: Decimal,
        settlement_id: UUID,
    ) -> InvoiceLine:
        return InvoiceLine.flat(
            text,
            amount,
            self._tax_treatment(component),
            self._tax_rates,
            reference_type=ReferenceType.LEASE_REVENUE_SETTLEMENT,
            reference_id=settlement_id,
        )

    def _advance_documents(
        self, model: LeaseRevenueSettlementModel, period: ServicePeriod
    ) -> list[tuple[LeaseRevenueSettlementItemModel, InvoiceType, list[InvoiceLine]]]:
        plans = []
        for item in model.items:
            if item.subtotal_eur <= ZERO:
                continue
            lines = [
                self._line(
                    f"Vorschuss {COMPONENT_LABELS[component]}\n{period.label}",
                    component,
                    amount,
                    model.id,
                )
                for component, amount in item.component_amounts().items()
                if amount != ZERO
            ]
            plans.append((item, InvoiceType.CREDIT_NOTE, lines))
        return plans

    def _final_documents(
        self,
        tenant_id: UUID,
        model: LeaseRevenueSettlementModel,
        period: ServicePeriod,
    ) -> list[tuple[LeaseRevenueSettlementItemModel, InvoiceType, list[InvoiceLine]]]:
        advances = self._advance_components(tenant_id, model.park_id, model.year)
        plans = []
        for item in model.items:
            advance = advances.get(item.lease_id, _zero_components())
            if sum(advance.values(), ZERO) != item.advance_paid_eur:
                raise SettlementStateError(
                    str(model.id),
                    model.status,
                    "settle (advance payments changed since calculation; recalculate)",
                )
            final = item.component_amounts()

            if item.remainder_eur > ZERO:
                lines = [
                    self._line(
                        f"Jahresnutzungsentgelt {COMPONENT_LABELS[c]}\n{period.label}",
                        c,
                        amount,
                        model.id,
                    )
                    for c, amount in final.items()
                    if amount != ZERO
                ]
                lines += [
                    self._line(
                        f"Verrechnung Vorschuss {COMPONENT_LABELS[c]}\n{period.label}",
                        c,
                        -amount,
                        model.id,
                    )
                    for c, amount in advance.items()
                    if amount != ZERO
                ]
                plans.append((item, InvoiceType.CREDIT_NOTE, lines))
            elif item.remainder_eur < ZERO:
                lines = [
                    self._line(
                        f"Rueckforderung Vorschuss {COMPONENT_LABELS[c]}\n{period.label}",
                        c,
                        advance[c] - final[c],
                        model.id,
                    )
                    for c in SettlementComponent
                    if advance[c] != final[c]
                ]
                plans.append((item, InvoiceType.INVOICE, lines))
        return plans

    def close(self, tenant_id: UUID, settlement_id: UUID, actor_id: UUID) -> Settlement:
        """SETTLED -> CLOSED."""
        with atomic(self._session):
            model = self._load(tenant_id, settlement_id, lock=True)
            self._require_status(model, "close")
            model.status = SettlementStatus.CLOSED.value
            model.closed_at = self._clock.now()
            model.updated_by_id = actor_id
            self._session.flush()

        logger.info("settlement_closed", extra={"settlement_id": str(model.id)})
        self._record(tenant_id, "settlement_closed", model.id, actor_id, {})
        return model.to_dto()

    def get(self, tenant_id: UUID, settlement_id: UUID) -> Settlement:
        return self._load(tenant_id, settlement_id).to_dto()

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _find_period(
        self,
        tenant_id: UUID,
        park_id: UUID,
        year: int,
        period_type: SettlementPeriodType,
        month: int | None,
    ) -> LeaseRevenueSettlementModel | None:
        return self._session.execute(
            select(LeaseRevenueSettlementModel)
            .where(
                LeaseRevenueSettlementModel.tenant_id == tenant_id,
                LeaseRevenueSettlementModel.park_id == park_id,
                LeaseRevenueSettlementModel.year == year,
                LeaseRevenueSettlementModel.period_type == period_type.value,
                LeaseRevenueSettlementModel.month_key == (month or 0),
            )
            .with_for_update()
        ).scalar_one_or_none()

    def _load(
        self, tenant_id: UUID, settlement_id: UUID, lock: bool = False
    ) -> LeaseRevenueSettlementModel:
        stmt = select(LeaseRevenueSettlementModel).where(
            LeaseRevenueSettlementModel.id == settlement_id,
            LeaseRevenueSettlementModel.tenant_id == tenant_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        model = self._session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise SettlementNotFoundError(str(settlement_id))
        return model

    @staticmethod
    def _require_status(model: LeaseRevenueSettlementModel, action: str) -> None:
        if SettlementStatus(model.status) not in ALLOWED_TRANSITIONS[action]:
            raise SettlementStateError(str(model.id), model.status, action)

    def _record(
        self,
        tenant_id: UUID,
        action: str,
        settlement_id: UUID,
        actor_id: UUID,
        payload: dict[str, Any],
    ) -> None:
        emit_audit(
            self._audit,
            AuditEntry(
                tenant_id=tenant_id,
                action=action,
                entity_type="LeaseRevenueSettlement",
                entity_id=settlement_id,
                actor_id=actor_id,
                occurred_at=self._clock.now(),
                payload=payload,
            ),
        )
