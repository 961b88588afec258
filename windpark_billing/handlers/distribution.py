"""
DISTRIBUTION rule handler.

Creates a fund distribution and executes it right away: one credit note per
eligible shareholder.  A dry run returns the split without persisting.
Fund or shareholder problems (unknown fund, no eligible shareholders, all
weights zero) raise and fail the whole run.
"""

from __future__ import annotations

from windpark_kernel.logging_config import get_logger

from windpark_billing.domain.parameters import DistributionParameters
from windpark_billing.domain.types import (
    BillingRuleType,
    ExecuteOptions,
    ExecutionResult,
    InvoiceOutcome,
)
from windpark_billing.handlers.base import HandlerContext

logger = get_logger("billing.handlers.distribution")


class DistributionHandler:
    """Profit distribution to the shareholders of a fund."""

    @property
    def rule_type(self) -> BillingRuleType:
        return BillingRuleType.DISTRIBUTION

    def run(
        self,
        context: HandlerContext,
        params: DistributionParameters,
        options: ExecuteOptions,
    ) -> ExecutionResult:
        distribution_date = params.distribution_date or context.today
        description = params.description or f"Ausschuettung {distribution_date.year}"
        service = context.distribution_service

        if options.dry_run:
            preview = service.preview(
                context.tenant_id,
                params.fund_id,
                params.total_amount,
                distribution_date,
                description,
            )
            return ExecutionResult.from_outcomes(
                [InvoiceOutcome.previewed(i.recipient_name, i.amount) for i in preview.items],
                metadata={
                    "fundId": str(params.fund_id),
                    "totalAmount": str(preview.total_amount),
                    "distributionDate": distribution_date.isoformat(),
                },
                dry_run=True,
            )

        execution = service.create_and_execute(
            context.tenant_id,
            params.fund_id,
            params.total_amount,
            distribution_date,
            context.settings,
            context.actor_id,
            description=description,
        )
        distribution = execution.distribution
        invoices = {invoice.id: invoice for invoice in execution.invoices}

        outcomes = []
        for item in execution.distribution.items:
            invoice = invoices.get(item.invoice_id)
            if invoice is None:
                outcomes.append(
                    InvoiceOutcome.failure(item.recipient_name, "Keine Gutschrift erstellt")
                )
                continue
            outcomes.append(
                InvoiceOutcome.created(
                    item.recipient_name, item.amount, invoice.id, invoice.invoice_number
                )
            )

        if params.notify_shareholders:
            logger.info(
                "distribution_notification_requested",
                extra={
                    "distribution_id": str(distribution.id),
                    "shareholder_count": len(outcomes),
                },
            )

        return ExecutionResult.from_outcomes(
            outcomes,
            metadata={
                "distributionId": str(distribution.id),
                "distributionNumber": distribution.distribution_number,
                "fundId": str(params.fund_id),
                "totalAmount": str(distribution.total_amount),
                "distributionDate": distribution_date.isoformat(),
            },
        )
