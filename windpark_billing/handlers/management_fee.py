"""
MANAGEMENT_FEE rule handler.

Bills the management company's fee as one INVOICE per quarter: either a
fixed amount or a percentage of a base value.

Base values:
    TOTAL_CAPITAL    -- ``total_capital`` of the fund, or of all active funds.
    NET_ASSET_VALUE  -- capital contributions of active shareholders.
    ANNUAL_REVENUE   -- net operator revenue of the last 12 months, of one
                        park when ``park_id`` is set.

The duplicate key is ``VG-{year}-Q{quarter}-{rule_id[:8]}``.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from windpark_kernel.db.types import HUNDRED, ZERO, round_money
from windpark_kernel.domain.values import InvoiceType, TaxType
from windpark_kernel.logging_config import get_logger
from windpark_modules.invoicing.models import (
    InvoiceDraft,
    InvoiceLine,
    RecipientType,
    ReferenceType,
)
from windpark_modules.masterdata.orm import (
    ACTIVE,
    EnergyRevenueModel,
    FundModel,
    ShareholderModel,
)
from windpark_modules.masterdata.queries import (
    active_shareholders,
    get_fund,
    get_park,
    sum_decimals,
)

from windpark_billing.domain.parameters import (
    CalculationType,
    FeeBaseValue,
    ManagementFeeParameters,
)
from windpark_billing.domain.schedule import add_months
from windpark_billing.domain.types import (
    BillingRuleType,
    ExecuteOptions,
    ExecutionResult,
    InvoiceOutcome,
)
from windpark_billing.handlers.base import HandlerContext

logger = get_logger("billing.handlers.management_fee")

DEFAULT_RECIPIENT = "Verwaltungsgesellschaft"


def quarter_of(day: date) -> int:
    return (day.month - 1) // 3 + 1


def _total_capital(session: Session, tenant_id: UUID, fund_id: UUID | None) -> Decimal:
    if fund_id is not None:
        return get_fund(session, tenant_id, fund_id).total_capital or ZERO
    funds = session.execute(
        select(FundModel.total_capital).where(
            FundModel.tenant_id == tenant_id, FundModel.status == ACTIVE
        )
    ).scalars()
    return sum_decimals(funds)


def _net_asset_value(session: Session, tenant_id: UUID, fund_id: UUID | None) -> Decimal:
    if fund_id is not None:
        fund = get_fund(session, tenant_id, fund_id)
        return sum_decimals(s.capital_contribution for s in active_shareholders(fund))
    contributions = session.execute(
        select(ShareholderModel.capital_contribution)
        .join(FundModel, FundModel.id == ShareholderModel.fund_id)
        .where(
            FundModel.tenant_id == tenant_id,
            FundModel.status == ACTIVE,
            ShareholderModel.status == ACTIVE,
        )
    ).scalars()
    return sum_decimals(contributions)


def _annual_revenue(
    session: Session, tenant_id: UUID, park_id: UUID | None, today: date
) -> Decimal:
    cutoff_year, cutoff_month = add_months(today.year, today.month, -12)
    stmt = select(EnergyRevenueModel.net_operator_revenue_eur).where(
        EnergyRevenueModel.tenant_id == tenant_id,
        or_(
            EnergyRevenueModel.year > cutoff_year,
            and_(
                EnergyRevenueModel.year == cutoff_year,
                or_(
                    EnergyRevenueModel.month.is_(None),
                    EnergyRevenueModel.month >= cutoff_month,
                ),
            ),
        ),
    )
    if park_id is not None:
        get_park(session, tenant_id, park_id)
        stmt = stmt.where(EnergyRevenueModel.park_id == park_id)
    return sum_decimals(session.execute(stmt).scalars())


def base_value_for(
    session: Session,
    tenant_id: UUID,
    params: ManagementFeeParameters,
    today: date,
) -> Decimal:
    """The amount a PERCENTAGE fee is computed from."""
    if params.base_value == FeeBaseValue.TOTAL_CAPITAL:
        return _total_capital(session, tenant_id, params.fund_id)
    if params.base_value == FeeBaseValue.NET_ASSET_VALUE:
        return _net_asset_value(session, tenant_id, params.fund_id)
    if params.base_value == FeeBaseValue.ANNUAL_REVENUE:
        return _annual_revenue(session, tenant_id, params.park_id, today)
    return ZERO


class ManagementFeeHandler:
    """Quarterly management fee invoice."""

    @property
    def rule_type(self) -> BillingRuleType:
        return BillingRuleType.MANAGEMENT_FEE

    def _net_amount(
        self, context: HandlerContext, params: ManagementFeeParameters
    ) -> tuple[Decimal, str]:
        if params.calculation_type == CalculationType.FIXED:
            amount = round_money(params.amount)
            return amount, f"Fester Betrag: {amount} EUR"
        base = base_value_for(context.session, context.tenant_id, params, context.today)
        amount = round_money(base * params.percentage / HUNDRED)
        return amount, (
            f"{params.percentage}% von {round_money(base)} EUR "
            f"({params.base_value.value}) = {amount} EUR"
        )

    def run(
        self,
        context: HandlerContext,
        params: ManagementFeeParameters,
        options: ExecuteOptions,
    ) -> ExecutionResult:
        recipient = params.recipient_name or DEFAULT_RECIPIENT
        today = context.today
        quarter = quarter_of(today)
        reference = f"VG-{today.year}-Q{quarter}-{str(context.rule_id)[:8]}"
        metadata = {
            "calculationType": params.calculation_type.value,
            "quarter": quarter,
            "year": today.year,
        }

        if not options.force_run:
            existing = context.invoice_service.find_active_by_internal_reference(
                context.tenant_id, reference, InvoiceType.INVOICE
            )
            if existing is not None:
                return ExecutionResult.from_outcomes(
                    [
                        InvoiceOutcome.skip(
                            recipient,
                            f"Verwaltungsgebuehr Q{quarter}/{today.year} bereits erstellt "
                            f"({existing.invoice_number})",
                        )
                    ],
                    metadata=metadata,
                    dry_run=options.dry_run,
                )

        net_amount, calculation = self._net_amount(context, params)
        metadata["calculationDetails"] = calculation
        if net_amount <= ZERO:
            return ExecutionResult.from_outcomes(
                [InvoiceOutcome.failure(recipient, "Berechneter Betrag ist 0 oder negativ")],
                metadata=metadata,
                dry_run=options.dry_run,
            )

        line = InvoiceLine.flat(
            params.description or f"Verwaltungsgebuehr Q{quarter}/{today.year}",
            net_amount,
            params.tax_type or TaxType.STANDARD,
            context.tax_rates,
            reference_type=ReferenceType.MANAGEMENT_FEE,
            reference_id=context.rule_id,
        )
        if options.dry_run:
            return ExecutionResult.from_outcomes(
                [InvoiceOutcome.previewed(recipient, line.gross_amount)],
                metadata=metadata,
                dry_run=True,
            )

        number = context.number_allocator.allocate(
            context.tenant_id, InvoiceType.INVOICE, 1, as_of=today
        ).first
        invoice = context.invoice_service.create_invoice(
            InvoiceDraft(
                tenant_id=context.tenant_id,
                invoice_type=InvoiceType.INVOICE,
                invoice_number=number,
                invoice_date=today,
                due_date=today + timedelta(days=context.settings.payment_term_days),
                recipient_type=RecipientType.OTHER,
                recipient_name=recipient,
                recipient_address=params.recipient_address,
                lines=(line,),
                payment_reference=number,
                internal_reference=reference,
                notes=f"Berechnung: {calculation}",
                fund_id=params.fund_id,
                park_id=params.park_id,
            ),
            context.actor_id,
        )
        logger.info(
            "management_fee_invoiced",
            extra={
                "invoice_number": invoice.invoice_number,
                "net_amount": str(net_amount),
                "calculation_type": params.calculation_type.value,
            },
        )
        return ExecutionResult.from_outcomes(
            [
                InvoiceOutcome.created(
                    recipient, invoice.gross_amount, invoice.id, invoice.invoice_number
                )
            ],
            metadata=metadata,
        )
