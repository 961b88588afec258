"""
InvoiceService -- persistence boundary for invoices and credit notes.

Responsibility:
    Writes an ``InvoiceDraft`` (header plus lines) and answers the duplicate
    detection queries of the billing handlers.

Architecture position:
    Modules layer.  Called by billing rule handlers, the distribution
    service and the lease revenue settlement service.

Invariants enforced:
    - Header net/tax/gross are the sums of the lines.
    - Never commits; callers own the unit of work.

Failure modes:
    - IntegrityError on a duplicate invoice number (an allocator bug).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from windpark_kernel.domain.clock import Clock, SystemClock
from windpark_kernel.domain.values import InvoiceType
from windpark_kernel.logging_config import get_logger
from windpark_modules.invoicing.models import Invoice, InvoiceDraft, InvoiceStatus
from windpark_modules.invoicing.orm import InvoiceItemModel, InvoiceModel

logger = get_logger("modules.invoicing.service")


class InvoiceService:
    """Creates and looks up invoices for one session."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def create_invoice(self, draft: InvoiceDraft, actor_id: UUID) -> Invoice:
        """Persist a draft and return the stored invoice."""
        model = InvoiceModel(
            tenant_id=draft.tenant_id,
            invoice_type=draft.invoice_type.value,
            invoice_number=draft.invoice_number,
            invoice_date=draft.invoice_date,
            due_date=draft.due_date,
            status=InvoiceStatus.DRAFT.value,
            recipient_type=draft.recipient_type.value,
            recipient_name=draft.recipient_name,
            recipient_address=draft.recipient_address,
            recipient_person_id=draft.recipient_person_id,
            service_start_date=draft.service_start_date,
            service_end_date=draft.service_end_date,
            payment_reference=draft.payment_reference,
            internal_reference=draft.internal_reference,
            notes=draft.notes,
            net_amount=draft.net_amount,
            tax_amount=draft.tax_amount,
            gross_amount=draft.gross_amount,
            fund_id=draft.fund_id,
            park_id=draft.park_id,
            lease_id=draft.lease_id,
            shareholder_id=draft.shareholder_id,
            settlement_id=draft.settlement_id,
            created_by_id=actor_id,
        )
        for position, line in enumerate(draft.lines, start=1):
            model.items.append(
                InvoiceItemModel(
                    position=position,
                    description=line.description,
                    quantity=line.quantity,
                    unit=line.unit,
                    unit_price=line.unit_price,
                    net_amount=line.net_amount,
                    tax_type=line.tax_type.value,
                    tax_rate=line.tax_rate,
                    tax_amount=line.tax_amount,
                    gross_amount=line.gross_amount,
                    reference_type=line.reference_type.value if line.reference_type else None,
                    reference_id=line.reference_id,
                    created_by_id=actor_id,
                )
            )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(model.id),
                "invoice_number": model.invoice_number,
                "invoice_type": model.invoice_type,
                "gross_amount": str(model.gross_amount),
                "line_count": len(draft.lines),
            },
        )
        return model.to_dto()

    def find_active_by_internal_reference(
        self,
        tenant_id: UUID,
        internal_reference: str,
        invoice_type: InvoiceType | None = None,
    ) -> Invoice | None:
        """Non-cancelled invoice carrying ``internal_reference``, if any."""
        stmt = select(InvoiceModel).where(
            InvoiceModel.tenant_id == tenant_id,
            InvoiceModel.internal_reference == internal_reference,
            InvoiceModel.status != InvoiceStatus.CANCELLED.value,
        )
        if invoice_type is not None:
            stmt = stmt.where(InvoiceModel.invoice_type == InvoiceType(invoice_type).value)
        model = self._session.execute(stmt.limit(1)).scalar_one_or_none()
        return model.to_dto() if model else None

    def get_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice | None:
        model = self._session.execute(
            select(InvoiceModel).where(
                InvoiceModel.id == invoice_id, InvoiceModel.tenant_id == tenant_id
            )
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def list_for_settlement(self, tenant_id: UUID, settlement_id: UUID) -> list[Invoice]:
        models = self._session.execute(
            select(InvoiceModel)
            .where(
                InvoiceModel.tenant_id == tenant_id,
                InvoiceModel.settlement_id == settlement_id,
            )
            .order_by(InvoiceModel.invoice_number)
        ).scalars()
        return [m.to_dto() for m in models]
