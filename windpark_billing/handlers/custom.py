"""
CUSTOM rule handler.

Issues one INVOICE or CREDIT_NOTE per period from explicit line items
(quantity x unit price, tax type per item).  The duplicate key is
``CU-{yyyy-mm}-{rule_id[:8]}``.
"""

from __future__ import annotations

from datetime import timedelta

from windpark_kernel.db.types import ZERO
from windpark_kernel.domain.values import TaxType
from windpark_kernel.logging_config import get_logger
from windpark_modules.invoicing.models import (
    InvoiceDraft,
    InvoiceLine,
    RecipientType,
    ReferenceType,
)

from windpark_billing.domain.parameters import CustomRuleParameters
from windpark_billing.domain.types import (
    BillingRuleType,
    ExecuteOptions,
    ExecutionResult,
    InvoiceOutcome,
)
from windpark_billing.handlers.base import HandlerContext

logger = get_logger("billing.handlers.custom")

DEFAULT_RECIPIENT = "Empfaenger"


class CustomRuleHandler:
    """Free-form recurring document."""

    @property
    def rule_type(self) -> BillingRuleType:
        return BillingRuleType.CUSTOM

    def run(
        self,
        context: HandlerContext,
        params: CustomRuleParameters,
        options: ExecuteOptions,
    ) -> ExecutionResult:
        recipient = params.recipient_name or DEFAULT_RECIPIENT
        today = context.today
        reference = f"CU-{today:%Y-%m}-{str(context.rule_id)[:8]}"
        metadata = {"invoiceType": params.invoice_type.value, "itemCount": len(params.items)}

        if not options.force_run:
            existing = context.invoice_service.find_active_by_internal_reference(
                context.tenant_id, reference, params.invoice_type
            )
            if existing is not None:
                return ExecutionResult.from_outcomes(
                    [
                        InvoiceOutcome.skip(
                            recipient,
                            f"Beleg fuer {today:%m/%Y} bereits erstellt "
                            f"({existing.invoice_number})",
                        )
                    ],
                    metadata=metadata,
                    dry_run=options.dry_run,
                )

        default_tax = params.tax_type or TaxType.STANDARD
        lines = tuple(
            InvoiceLine.priced(
                item.description,
                item.quantity,
                item.unit_price,
                item.tax_type or default_tax,
                context.tax_rates,
                unit=item.unit or "pauschal",
                reference_type=ReferenceType.CUSTOM,
                reference_id=context.rule_id,
            )
            for item in params.items
        )
        gross = sum((line.gross_amount for line in lines), ZERO)
        if gross <= ZERO:
            return ExecutionResult.from_outcomes(
                [InvoiceOutcome.failure(recipient, "Gesamtbetrag ist 0 oder negativ")],
                metadata=metadata,
                dry_run=options.dry_run,
            )

        if options.dry_run:
            return ExecutionResult.from_outcomes(
                [InvoiceOutcome.previewed(recipient, gross)], metadata=metadata, dry_run=True
            )

        number = context.number_allocator.allocate(
            context.tenant_id, params.invoice_type, 1, as_of=today
        ).first
        invoice = context.invoice_service.create_invoice(
            InvoiceDraft(
                tenant_id=context.tenant_id,
                invoice_type=params.invoice_type,
                invoice_number=number,
                invoice_date=today,
                due_date=today + timedelta(days=context.settings.payment_term_days),
                recipient_type=params.recipient_type or RecipientType.OTHER,
                recipient_name=recipient,
                recipient_address=params.recipient_address,
                lines=lines,
                payment_reference=number,
                internal_reference=reference,
                notes=params.notes,
                fund_id=params.fund_id,
                park_id=params.park_id,
                shareholder_id=params.shareholder_id,
                lease_id=params.lease_id,
            ),
            context.actor_id,
        )
        logger.info(
            "custom_document_created",
            extra={"invoice_number": invoice.invoice_number, "line_count": len(lines)},
        )
        return ExecutionResult.from_outcomes(
            [
                InvoiceOutcome.created(
                    recipient, invoice.gross_amount, invoice.id, invoice.invoice_number
                )
            ],
            metadata=metadata,
        )
