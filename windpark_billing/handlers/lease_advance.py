"""
Monthly lease handlers: advance credit notes and lease payment invoices.

Contract:
    ``LeaseAdvanceHandler`` issues one CREDIT_NOTE (Pacht-Vorschuss) per
    lessor and month; ``LeasePaymentHandler`` issues one INVOICE
    (Pachtzahlung) per lessor and month.  Both bill one line per active
    lease of the lessor, prorated by the days the lease covers the month.

Architecture: windpark_billing/handlers.  Fee math lives in
windpark_engines.lease_fees; documents are written through InvoiceService.

Invariants enforced:
    - One document per lessor and period, keyed by the internal reference
      ``{prefix}-{year}-{month:02d}-{lessor_id[:8]}``.  An existing
      non-cancelled document marks the lessor skipped unless ``force_run``.
    - Each lessor's number allocation and insert share one SAVEPOINT: a
      failed lessor burns no number and leaves no partial document.
    - Per-lessor failures never abort the run.

Failure modes:
    - InvalidPeriodError: month outside 1..12 (aborts the run).
    - ParkNotFoundError: ``park_id`` unknown to the tenant (aborts the run).
    - RecipientDataError: lessor without IBAN or postal address (per lessor).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from uuid import UUID

from windpark_engines.lease_fees import (
    billable_period,
    calculate_monthly_lease_amount,
    calculate_proration_factor,
    month_bounds,
    month_name,
    partial_month_label,
    prorated_amount,
)
from windpark_kernel.db.types import ZERO
from windpark_kernel.domain.values import InvoiceType, TaxType
from windpark_kernel.exceptions import InvalidPeriodError, RecipientDataError
from windpark_kernel.logging_config import get_logger
from windpark_modules.invoicing.models import (
    InvoiceDraft,
    InvoiceLine,
    RecipientType,
    ReferenceType,
)
from windpark_modules.masterdata.orm import LeaseModel, PersonModel
from windpark_modules.masterdata.queries import (
    get_park,
    lease_area_inputs,
    lease_park,
    load_active_leases,
    park_fee_rates,
)

from windpark_billing.domain.parameters import LeaseAdvanceParameters
from windpark_billing.domain.types import (
    BillingRuleType,
    ExecuteOptions,
    ExecutionResult,
    InvoiceOutcome,
)
from windpark_billing.handlers.base import HandlerContext

logger = get_logger("billing.handlers.lease")

NOT_ACTIVE_IN_MONTH = "Pachtvertrag nicht aktiv in diesem Monat"
ZERO_AMOUNT = "Berechneter Betrag ist 0 oder negativ"


def plot_description(lease: LeaseModel) -> str:
    """``Flst. 12 (Gem. Neustadt), Flst. 45`` for the plots of a lease."""
    parts = []
    for plot in lease.plots:
        district = f" (Gem. {plot.cadastral_district})" if plot.cadastral_district else ""
        parts.append(f"Flst. {plot.plot_number or '?'}{district}")
    return ", ".join(parts)


@dataclass
class _LessorGroup:
    lessor: PersonModel
    leases: list[LeaseModel] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.lessor.display_name


@dataclass(frozen=True)
class _Period:
    year: int
    month: int

    @property
    def label(self) -> str:
        return f"{month_name(self.month)} {self.year}"


class MonthlyLeaseHandler:
    """Shared per-lessor billing loop of the two monthly lease rule types."""

    _rule_type: BillingRuleType
    invoice_type: InvoiceType
    reference_prefix: str
    label: str
    reference_type: ReferenceType
    requires_iban: bool = True

    @property
    def rule_type(self) -> BillingRuleType:
        return self._rule_type

    def run(
        self,
        context: HandlerContext,
        params: LeaseAdvanceParameters,
        options: ExecuteOptions,
    ) -> ExecutionResult:
        year = params.year or context.today.year
        month = params.month or context.today.month
        if not 1 <= month <= 12:
            raise InvalidPeriodError(year, month, "month must be 1..12")
        period = _Period(year, month)

        if params.park_id is not None:
            get_park(context.session, context.tenant_id, params.park_id)

        tax_type = params.tax_type or TaxType.EXEMPT
        due_days = (
            params.due_days
            if params.due_days is not None
            else context.settings.payment_term_days
        )

        groups: dict[UUID, _LessorGroup] = {}
        for lease in load_active_leases(context.session, context.tenant_id, params.park_id):
            groups.setdefault(lease.lessor_id, _LessorGroup(lease.lessor)).leases.append(lease)

        outcomes = [
            self._bill_lessor(context, group, period, params.park_id, tax_type, due_days, options)
            for group in groups.values()
        ]

        logger.info(
            "lease_billing_completed",
            extra={
                "rule_type": self.rule_type.value,
                "year": year,
                "month": month,
                "lessor_count": len(groups),
                "dry_run": options.dry_run,
            },
        )
        return ExecutionResult.from_outcomes(
            outcomes,
            metadata={
                "year": year,
                "month": month,
                "parkId": str(params.park_id) if params.park_id else None,
                "lessorCount": len(groups),
            },
            dry_run=options.dry_run,
        )

    # -----------------------------------------------------------------
    # Per lessor
    # -----------------------------------------------------------------

    def _internal_reference(self, period: _Period, lessor_id: UUID) -> str:
        return f"{self.reference_prefix}-{period.year}-{period.month:02d}-{str(lessor_id)[:8]}"

    def _lines(
        self,
        context: HandlerContext,
        group: _LessorGroup,
        period: _Period,
        park_id: UUID | None,
        tax_type: TaxType,
    ) -> tuple[list[InvoiceLine], date | None, date | None]:
        lines: list[InvoiceLine] = []
        service_start: date | None = None
        service_end: date | None = None
        for lease in group.leases:
            factor = calculate_proration_factor(
                period.year, period.month, lease.start_date, lease.end_date
            )
            if factor <= ZERO:
                continue
            start, end = billable_period(
                period.year, period.month, lease.start_date, lease.end_date
            )
            service_start = start if service_start is None else min(service_start, start)
            service_end = end if service_end is None else max(service_end, end)

            full_month = calculate_monthly_lease_amount(
                lease_area_inputs(lease), park_fee_rates(lease_park(lease, park_id))
            )
            amount = prorated_amount(full_month, factor)
            if amount <= ZERO:
                continue

            description = f"{self.label} {period.label}{partial_month_label(factor)}"
            plots = plot_description(lease)
            if plots:
                description = f"{description}\n{plots}"
            lines.append(
                InvoiceLine.flat(
                    description,
                    amount,
                    tax_type,
                    context.tax_rates,
                    reference_type=self.reference_type,
                    reference_id=lease.id,
                )
            )
        return lines, service_start, service_end

    def _missing_recipient_data(self, lessor: PersonModel) -> list[str]:
        missing = []
        if self.requires_iban and not lessor.iban:
            missing.append("IBAN")
        if lessor.postal_address is None:
            missing.append("Adresse")
        return missing

    def _bill_lessor(
        self,
        context: HandlerContext,
        group: _LessorGroup,
        period: _Period,
        park_id: UUID | None,
        tax_type: TaxType,
        due_days: int,
        options: ExecuteOptions,
    ) -> InvoiceOutcome:
        active = [
            lease
            for lease in group.leases
            if billable_period(period.year, period.month, lease.start_date, lease.end_date)
        ]
        if not active:
            return InvoiceOutcome.skip(group.name, NOT_ACTIVE_IN_MONTH)

        reference = self._internal_reference(period, group.lessor.id)
        if not options.force_run:
            existing = context.invoice_service.find_active_by_internal_reference(
                context.tenant_id, reference, self.invoice_type
            )
            if existing is not None:
                return InvoiceOutcome.skip(
                    group.name,
                    f"{self.label} fuer {period.label} bereits erstellt "
                    f"({existing.invoice_number})",
                )

        lines, service_start, service_end = self._lines(
            context, group, period, park_id, tax_type
        )
        if not lines:
            return InvoiceOutcome.failure(group.name, ZERO_AMOUNT)

        missing = self._missing_recipient_data(group.lessor)
        if missing:
            error = RecipientDataError(group.name, missing)
            logger.warning(
                "lessor_data_incomplete",
                extra={"lessor_id": str(group.lessor.id), "missing": missing},
            )
            return InvoiceOutcome.failure(group.name, str(error))

        gross = sum((line.gross_amount for line in lines), ZERO)
        if options.dry_run:
            return InvoiceOutcome.previewed(group.name, gross)

        _, month_end = month_bounds(period.year, period.month)
        invoice_date = context.today
        try:
            with context.session.begin_nested():
                number = context.number_allocator.allocate(
                    context.tenant_id, self.invoice_type, 1, as_of=invoice_date
                ).first
                invoice = context.invoice_service.create_invoice(
                    InvoiceDraft(
                        tenant_id=context.tenant_id,
                        invoice_type=self.invoice_type,
                        invoice_number=number,
                        invoice_date=invoice_date,
                        due_date=invoice_date + timedelta(days=due_days),
                        recipient_type=RecipientType.LESSOR,
                        recipient_name=group.name,
                        recipient_address=group.lessor.postal_address,
                        recipient_person_id=group.lessor.id,
                        lines=tuple(lines),
                        service_start_date=service_start,
                        service_end_date=service_end or month_end,
                        payment_reference=f"{self.label} {period.label}",
                        internal_reference=reference,
                        lease_id=active[0].id if len(active) == 1 else None,
                        park_id=park_id,
                        notes=_bank_notes(group.lessor),
                    ),
                    context.actor_id,
                )
        except Exception as exc:
            logger.exception(
                "lessor_billing_failed",
                extra={"lessor_id": str(group.lessor.id), "internal_reference": reference},
            )
            return InvoiceOutcome.failure(group.name, str(exc))

        return InvoiceOutcome.created(
            group.name, invoice.gross_amount, invoice.id, invoice.invoice_number
        )


def _bank_notes(lessor: PersonModel) -> str | None:
    if not lessor.iban:
        return None
    notes = f"IBAN: {lessor.iban}"
    if lessor.bic:
        notes = f"{notes}\nBIC: {lessor.bic}"
    return notes


class LeaseAdvanceHandler(MonthlyLeaseHandler):
    """Monthly advance credit notes to lessors (Pacht-Vorschuss)."""

    _rule_type = BillingRuleType.LEASE_ADVANCE
    invoice_type = InvoiceType.CREDIT_NOTE
    reference_prefix = "PV"
    label = "Pacht-Vorschuss"
    reference_type = ReferenceType.LEASE_ADVANCE


class LeasePaymentHandler(MonthlyLeaseHandler):
    """Monthly lease payment invoices (Pachtzahlung)."""

    _rule_type = BillingRuleType.LEASE_PAYMENT
    invoice_type = InvoiceType.INVOICE
    reference_prefix = "PZ"
    label = "Pachtzahlung"
    reference_type = ReferenceType.LEASE_PAYMENT
    requires_iban = False
