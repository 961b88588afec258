"""
DistributionService -- fund profit distributions to shareholders.

Responsibility:
    Computes the shareholder split of a distribution amount, persists the
    DRAFT distribution under a sequential ``AS-{year}-{seq}`` number, and on
    execution issues one credit note per shareholder.

Architecture position:
    Modules layer.  Reads master data (funds, shareholders), calls the pure
    distribution engine, writes through InvoiceService and the
    InvoiceNumberAllocator.  Called by the DISTRIBUTION rule handler.

Invariants enforced:
    - ``|sum(percentage) - 100| <= 0.01`` and ``sum(amount) == total``.
    - DRAFT distributions may be deleted; EXECUTED distributions are final.
    - Creation and execution are each one unit of work (``atomic``);
      ``create_and_execute`` runs both in a single unit.
    - Credit note numbers for one execution are allocated as one batch.

Failure modes:
    - FundNotFoundError: fund missing or owned by another tenant.
    - NoEligibleShareholdersError / ZeroDistributionWeightError.
    - InvalidDistributionAmountError: total amount <= 0.
    - DistributionNotFoundError / DistributionStateError.

Audit relevance:
    ``distribution_created``, ``distribution_executed`` and
    ``distribution_deleted`` are logged and handed to the audit sink once
    their unit of work has completed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from windpark_config.schema import NumberingConfig
from windpark_engines.distribution import ShareholderWeight, compute_distribution_split
from windpark_kernel.db.engine import atomic
from windpark_kernel.db.types import ZERO, round_money, to_decimal
from windpark_kernel.domain.clock import Clock, SystemClock
from windpark_kernel.domain.tenant import TenantSettings
from windpark_kernel.domain.values import InvoiceType, TaxType
from windpark_kernel.exceptions import (
    DistributionNotFoundError,
    DistributionStateError,
    InvalidDistributionAmountError,
    NoEligibleShareholdersError,
    ZeroDistributionWeightError,
)
from windpark_kernel.logging_config import get_logger
from windpark_kernel.services.audit import AuditEntry, AuditSink, emit_audit
from windpark_kernel.services.number_allocator import (
    InvoiceNumberAllocator,
    format_document_number,
)
from windpark_kernel.services.sequence_service import SequenceService
from windpark_modules.distribution.models import (
    Distribution,
    DistributionItem,
    DistributionPreview,
    DistributionStatus,
)
from windpark_modules.distribution.orm import DistributionItemModel, DistributionModel
from windpark_modules.invoicing.models import (
    Invoice,
    InvoiceDraft,
    InvoiceLine,
    RecipientType,
    ReferenceType,
)
from windpark_modules.invoicing.service import InvoiceService
from windpark_modules.masterdata.orm import ShareholderModel
from windpark_modules.masterdata.queries import active_shareholders, get_fund

logger = get_logger("modules.distribution.service")

DEFAULT_DESCRIPTION = "Ausschuettung"


@dataclass(frozen=True)
class DistributionExecution:
    """An executed distribution and the credit notes it produced."""

    distribution: Distribution
    invoices: tuple[Invoice, ...]


def line_description(description: str | None, percentage: Decimal) -> str:
    return f"{description or DEFAULT_DESCRIPTION} - Anteil {percentage:.3f}%"


def bank_notes(shareholder: ShareholderModel) -> str | None:
    person = shareholder.person
    if not person.iban:
        return None
    lines = ["Bankverbindung:", f"IBAN: {person.iban}"]
    if person.bic:
        lines.append(f"BIC: {person.bic}")
    return "\n".join(lines)


class DistributionService:
    """
    Creates, previews, executes and deletes fund distributions.

    Contract:
        Every public method is tenant-scoped; a distribution or fund of
        another tenant is reported as not found.

    Non-goals:
        - Does NOT commit the caller's transaction.
        - Does NOT notify shareholders (mailing is an external concern).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        number_allocator: InvoiceNumberAllocator | None = None,
        invoice_service: InvoiceService | None = None,
        numbering: NumberingConfig | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._numbering = numbering or NumberingConfig()
        self._allocator = number_allocator or InvoiceNumberAllocator(
            session,
            self._clock,
            prefixes=self._numbering.prefixes(),
            digits=self._numbering.invoice_digits,
        )
        self._invoices = invoice_service or InvoiceService(session, self._clock)
        self._sequences = SequenceService(session)
        self._audit = audit_sink

    # -----------------------------------------------------------------
    # Split
    # -----------------------------------------------------------------

    def _split(
        self, tenant_id: UUID, fund_id: UUID, total_amount: Decimal
    ) -> list[tuple[ShareholderModel, Decimal, Decimal]]:
        total_amount = to_decimal(total_amount)
        if total_amount <= ZERO:
            raise InvalidDistributionAmountError(total_amount)

        fund = get_fund(self._session, tenant_id, fund_id)
        shareholders = active_shareholders(fund)
        if not shareholders:
            raise NoEligibleShareholdersError(str(fund_id))

        weights = [
            ShareholderWeight(
                shareholder_id=s.id,
                distribution_percentage=s.distribution_percentage,
                ownership_percentage=s.ownership_percentage,
            )
            for s in shareholders
        ]
        eligible = [(s, w) for s, w in zip(shareholders, weights) if w.weight > ZERO]
        if not eligible:
            raise ZeroDistributionWeightError(str(fund_id))

        split = compute_distribution_split(
            total_amount=round_money(total_amount),
            shareholders=[w for _, w in eligible],
        )
        return [
            (shareholder, share.percentage, share.amount)
            for (shareholder, _), share in zip(eligible, split.shares)
        ]

    def preview(
        self,
        tenant_id: UUID,
        fund_id: UUID,
        total_amount: Decimal,
        distribution_date: date | None = None,
        description: str | None = None,
    ) -> DistributionPreview:
        """Compute the split without persisting anything."""
        rows = self._split(tenant_id, fund_id, total_amount)
        return DistributionPreview(
            fund_id=fund_id,
            total_amount=round_money(to_decimal(total_amount)),
            distribution_date=distribution_date or self._clock.today(),
            description=description,
            items=tuple(
                DistributionItem(
                    shareholder_id=s.id,
                    shareholder_number=s.shareholder_number,
                    recipient_name=s.person.display_name,
                    percentage=pct,
                    amount=amount,
                )
                for s, pct, amount in rows
            ),
        )

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def create(
        self,
        tenant_id: UUID,
        fund_id: UUID,
        total_amount: Decimal,
        distribution_date: date,
        actor_id: UUID,
        description: str | None = None,
    ) -> Distribution:
        """Persist a DRAFT distribution with its items."""
        rows = self._split(tenant_id, fund_id, total_amount)
        with atomic(self._session):
            model = self._insert(
                tenant_id, fund_id, total_amount, distribution_date, actor_id, description, rows
            )

        self._record(
            tenant_id,
            "distribution_created",
            actor_id,
            model.id,
            model.distribution_number,
            model.total_amount,
        )
        return model.to_dto()

    def execute(
        self,
        tenant_id: UUID,
        distribution_id: UUID,
        settings: TenantSettings,
        actor_id: UUID,
    ) -> DistributionExecution:
        """
        Issue one credit note per item and mark the distribution EXECUTED.

        Raises:
            DistributionNotFoundError: unknown or cross-tenant id.
            DistributionStateError: distribution is not DRAFT.
        """
        with atomic(self._session):
            model = self._load(tenant_id, distribution_id, lock=True)
            if model.status != DistributionStatus.DRAFT.value:
                raise DistributionStateError(str(distribution_id), model.status, "execute")
            invoices = self._issue_credit_notes(tenant_id, model, settings, actor_id)

        self._record(
            tenant_id,
            "distribution_executed",
            actor_id,
            model.id,
            model.distribution_number,
            model.total_amount,
        )
        return DistributionExecution(distribution=model.to_dto(), invoices=invoices)

    def create_and_execute(
        self,
        tenant_id: UUID,
        fund_id: UUID,
        total_amount: Decimal,
        distribution_date: date,
        settings: TenantSettings,
        actor_id: UUID,
        description: str | None = None,
    ) -> DistributionExecution:
        """
        Create a distribution and issue its credit notes in one unit of work.

        Only one audit entry (``distribution_executed``) is handed to the
        sink, after the credit notes exist; a failure leaves neither the
        distribution nor an audit entry behind.
        """
        rows = self._split(tenant_id, fund_id, total_amount)
        with atomic(self._session):
            model = self._insert(
                tenant_id, fund_id, total_amount, distribution_date, actor_id, description, rows
            )
            invoices = self._issue_credit_notes(tenant_id, model, settings, actor_id)

        self._record(
            tenant_id,
            "distribution_executed",
            actor_id,
            model.id,
            model.distribution_number,
            model.total_amount,
        )
        return DistributionExecution(distribution=model.to_dto(), invoices=invoices)

    def delete(self, tenant_id: UUID, distribution_id: UUID, actor_id: UUID) -> None:
        """Delete a DRAFT distribution."""
        with atomic(self._session):
            model = self._load(tenant_id, distribution_id, lock=True)
            if model.status != DistributionStatus.DRAFT.value:
                raise DistributionStateError(str(distribution_id), model.status, "delete")
            snapshot = (model.id, model.distribution_number, model.total_amount)
            self._session.delete(model)
            self._session.flush()

        logger.info(
            "distribution_deleted",
            extra={"distribution_id": str(distribution_id)},
        )
        self._record(tenant_id, "distribution_deleted", actor_id, *snapshot)

    def get(self, tenant_id: UUID, distribution_id: UUID) -> Distribution:
        return self._load(tenant_id, distribution_id).to_dto()

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _insert(
        self,
        tenant_id: UUID,
        fund_id: UUID,
        total_amount: Decimal,
        distribution_date: date,
        actor_id: UUID,
        description: str | None,
        rows: list[tuple[ShareholderModel, Decimal, Decimal]],
    ) -> DistributionModel:
        reserved = self._sequences.reserve(
            tenant_id, SequenceService.DISTRIBUTION, distribution_date.year
        )
        number = format_document_number(
            self._numbering.distribution_prefix,
            distribution_date.year,
            reserved.first,
            self._numbering.distribution_digits,
        )
        model = DistributionModel(
            tenant_id=tenant_id,
            fund_id=fund_id,
            distribution_number=number,
            total_amount=round_money(to_decimal(total_amount)),
            distribution_date=distribution_date,
            description=description,
            status=DistributionStatus.DRAFT.value,
            created_by_id=actor_id,
        )
        for shareholder, pct, amount in rows:
            model.items.append(
                DistributionItemModel(
                    shareholder_id=shareholder.id,
                    shareholder=shareholder,
                    percentage=pct,
                    amount=amount,
                    created_by_id=actor_id,
                )
            )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "distribution_created",
            extra={
                "distribution_id": str(model.id),
                "distribution_number": number,
                "fund_id": str(fund_id),
                "total_amount": str(model.total_amount),
                "item_count": len(rows),
            },
        )
        return model

    def _issue_credit_notes(
        self,
        tenant_id: UUID,
        model: DistributionModel,
        settings: TenantSettings,
        actor_id: UUID,
    ) -> tuple[Invoice, ...]:
        items = list(model.items)
        numbers = self._allocator.allocate(
            tenant_id,
            InvoiceType.CREDIT_NOTE,
            count=len(items),
            as_of=model.distribution_date,
        )
        due_date = model.distribution_date + timedelta(days=settings.payment_term_days)

        invoices: list[Invoice] = []
        for item, number in zip(items, numbers):
            shareholder = item.shareholder
            person = shareholder.person
            draft = InvoiceDraft(
                tenant_id=tenant_id,
                invoice_type=InvoiceType.CREDIT_NOTE,
                invoice_number=number,
                invoice_date=model.distribution_date,
                due_date=due_date,
                recipient_type=RecipientType.SHAREHOLDER,
                recipient_name=person.display_name,
                recipient_address="\n".join(person.address_lines) or None,
                recipient_person_id=person.id,
                payment_reference=(
                    f"{model.distribution_number}-{shareholder.shareholder_number}"
                ),
                internal_reference=model.distribution_number,
                notes=bank_notes(shareholder),
                fund_id=model.fund_id,
                shareholder_id=shareholder.id,
                lines=(
                    InvoiceLine.flat(
                        line_description(model.description, item.percentage),
                        item.amount,
                        TaxType.EXEMPT,
                        reference_type=ReferenceType.DISTRIBUTION,
                        reference_id=model.id,
                    ),
                ),
            )
            invoice = self._invoices.create_invoice(draft, actor_id)
            item.invoice_id = invoice.id
            invoices.append(invoice)

        model.status = DistributionStatus.EXECUTED.value
        model.executed_at = self._clock.now()
        model.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "distribution_executed",
            extra={
                "distribution_id": str(model.id),
                "distribution_number": model.distribution_number,
                "credit_notes": len(invoices),
            },
        )
        return tuple(invoices)

    def _load(
        self, tenant_id: UUID, distribution_id: UUID, lock: bool = False
    ) -> DistributionModel:
        stmt = select(DistributionModel).where(
            DistributionModel.id == distribution_id,
            DistributionModel.tenant_id == tenant_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        model = self._session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise DistributionNotFoundError(str(distribution_id))
        return model

    def _record(
        self,
        tenant_id: UUID,
        action: str,
        actor_id: UUID,
        distribution_id: UUID,
        number: str,
        total_amount: Decimal,
    ) -> None:
        emit_audit(
            self._audit,
            AuditEntry(
                tenant_id=tenant_id,
                action=action,
                entity_type="Distribution",
                entity_id=distribution_id,
                actor_id=actor_id,
                occurred_at=self._clock.now(),
                payload={
                    "distribution_number": number,
                    "total_amount": str(total_amount),
                },
            ),
        )
