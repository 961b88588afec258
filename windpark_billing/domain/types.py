"""
windpark_billing.domain.types -- Pure frozen dataclasses for billing rules.

ZERO I/O.  Enums for rule types, frequencies and execution status, the
execute options, and the execution result returned by every handler.

Invariants enforced:
    - All DTOs are frozen dataclasses with tuples for collections.
    - The aggregate status of a run is derived in one place
      (``aggregate_status``): skipped items never count as failures.
    - ``ExecutionDetails.to_dict()`` is the JSON shape persisted in
      ``billing_rule_executions.details`` (camelCase keys, amounts as
      strings).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from windpark_kernel.db.types import ZERO


# =============================================================================
# Enums
# =============================================================================


class BillingRuleType(str, Enum):
    """Closed set of rule types; one handler per member."""

    LEASE_PAYMENT = "LEASE_PAYMENT"
    LEASE_ADVANCE = "LEASE_ADVANCE"
    DISTRIBUTION = "DISTRIBUTION"
    MANAGEMENT_FEE = "MANAGEMENT_FEE"
    CUSTOM = "CUSTOM"


class BillingFrequency(str, Enum):
    """Recurrence of a billing rule."""

    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    SEMI_ANNUAL = "SEMI_ANNUAL"
    ANNUAL = "ANNUAL"
    CUSTOM_CRON = "CUSTOM_CRON"

    @property
    def months(self) -> int | None:
        """Calendar months per period (None for cron schedules)."""
        return _FREQUENCY_MONTHS.get(self)


_FREQUENCY_MONTHS = {
    BillingFrequency.MONTHLY: 1,
    BillingFrequency.QUARTERLY: 3,
    BillingFrequency.SEMI_ANNUAL: 6,
    BillingFrequency.ANNUAL: 12,
}


class ExecutionStatus(str, Enum):
    """Outcome of a rule execution."""

    RUNNING = "running"  # Row open, handler in progress
    SUCCESS = "success"  # No item failed
    FAILED = "failed"  # Items failed and none succeeded
    PARTIAL = "partial"  # Some items failed


def aggregate_status(successful: int, failed: int) -> ExecutionStatus:
    if failed == 0:
        return ExecutionStatus.SUCCESS
    if successful == 0:
        return ExecutionStatus.FAILED
    return ExecutionStatus.PARTIAL


# =============================================================================
# Execution DTOs
# =============================================================================


@dataclass(frozen=True)
class ExecuteOptions:
    """``dry_run``: preview only.  ``force_run``: ignore due-ness and
    duplicate guards."""

    dry_run: bool = False
    force_run: bool = False


@dataclass(frozen=True)
class InvoiceOutcome:
    """Result for one beneficiary of a run."""

    recipient_name: str
    success: bool
    amount: Decimal = ZERO
    invoice_id: UUID | None = None
    invoice_number: str | None = None
    error: str | None = None
    skipped: bool = False

    @classmethod
    def created(
        cls, recipient_name: str, amount: Decimal, invoice_id: UUID, invoice_number: str
    ) -> InvoiceOutcome:
        return cls(
            recipient_name=recipient_name,
            success=True,
            amount=amount,
            invoice_id=invoice_id,
            invoice_number=invoice_number,
        )

    @classmethod
    def previewed(cls, recipient_name: str, amount: Decimal) -> InvoiceOutcome:
        return cls(recipient_name=recipient_name, success=True, amount=amount)

    @classmethod
    def failure(cls, recipient_name: str, error: str) -> InvoiceOutcome:
        return cls(recipient_name=recipient_name, success=False, error=error)

    @classmethod
    def skip(cls, recipient_name: str, reason: str) -> InvoiceOutcome:
        return cls(recipient_name=recipient_name, success=False, error=reason, skipped=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "invoiceId": str(self.invoice_id) if self.invoice_id else None,
            "invoiceNumber": self.invoice_number,
            "recipientName": self.recipient_name,
            "amount": str(self.amount),
            "error": self.error,
        }


@dataclass(frozen=True)
class ExecutionSummary:
    total_processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalProcessed": self.total_processed,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass(frozen=True)
class ExecutionDetails:
    summary: ExecutionSummary = field(default_factory=ExecutionSummary)
    invoices: tuple[InvoiceOutcome, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "invoices": [o.to_dict() for o in self.invoices],
            "metadata": dict(self.metadata),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class ExecutionResult:
    """What a handler (and the executor) returns for one rule run."""

    status: ExecutionStatus
    invoices_created: int = 0
    total_amount: Decimal = ZERO
    error_message: str | None = None
    details: ExecutionDetails = field(default_factory=ExecutionDetails)
    execution_id: UUID | None = None

    @classmethod
    def from_outcomes(
        cls,
        outcomes: list[InvoiceOutcome] | tuple[InvoiceOutcome, ...],
        metadata: dict[str, Any] | None = None,
        warnings: tuple[str, ...] = (),
        dry_run: bool = False,
    ) -> ExecutionResult:
        """Aggregate per-beneficiary outcomes into a run result.

        Dry runs count previewed documents as successful but report zero
        ``invoices_created``.
        """
        successful = [o for o in outcomes if o.success]
        skipped = [o for o in outcomes if o.skipped]
        failed = [o for o in outcomes if not o.success and not o.skipped]
        status = aggregate_status(len(successful), len(failed))
        error_message = None
        if failed:
            error_message = (
                f"{len(failed)} von {len(outcomes)} Belegen konnten nicht erstellt werden"
            )
        return cls(
            status=status,
            invoices_created=0 if dry_run else len(successful),
            total_amount=sum((o.amount for o in successful), ZERO),
            error_message=error_message,
            details=ExecutionDetails(
                summary=ExecutionSummary(
                    total_processed=len(outcomes),
                    successful=len(successful),
                    failed=len(failed),
                    skipped=len(skipped),
                ),
                invoices=tuple(outcomes),
                metadata=dict(metadata or {}),
                warnings=tuple(warnings),
            ),
        )

    @classmethod
    def skipped_run(cls, reason: str, metadata: dict[str, Any] | None = None) -> ExecutionResult:
        """A run that did nothing because the rule was not due (or inactive)."""
        return cls(
            status=ExecutionStatus.SUCCESS,
            details=ExecutionDetails(
                metadata={**(metadata or {}), "skipped_reason": reason},
            ),
        )

    @classmethod
    def failure(cls, error_message: str, metadata: dict[str, Any] | None = None) -> ExecutionResult:
        """A run aborted by an exception before or during the handler."""
        return cls(
            status=ExecutionStatus.FAILED,
            error_message=error_message,
            details=ExecutionDetails(metadata=dict(metadata or {})),
        )

    def with_execution_id(self, execution_id: UUID) -> ExecutionResult:
        return replace(self, execution_id=execution_id)

    def with_metadata(self, **extra: Any) -> ExecutionResult:
        details = replace(self.details, metadata={**self.details.metadata, **extra})
        return replace(self, details=details)


# =============================================================================
# Rule DTOs
# =============================================================================


@dataclass(frozen=True)
class BillingRule:
    """Immutable snapshot of a billing rule."""

    id: UUID
    tenant_id: UUID
    name: str
    rule_type: BillingRuleType
    frequency: BillingFrequency
    parameters: dict[str, Any] = field(default_factory=dict)
    description: str | None = None
    cron_pattern: str | None = None
    day_of_month: int | None = None
    is_active: bool = True
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class BillingRuleExecution:
    """Immutable snapshot of one recorded rule execution."""

    id: UUID
    rule_id: UUID
    status: ExecutionStatus
    started_at: datetime
    completed_at: datetime | None = None
    invoices_created: int = 0
    total_amount: Decimal = ZERO
    error_message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UpcomingRun:
    rule_id: UUID
    rule_name: str
    rule_type: BillingRuleType
    frequency: BillingFrequency
    next_run_at: datetime
