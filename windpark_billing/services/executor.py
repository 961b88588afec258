"""
RuleExecutor -- runs one billing rule through its handler.

Contract:
    ``execute(rule_id, options)`` locks the rule, decodes its parameters,
    resolves the handler, runs it inside a SAVEPOINT and records the
    outcome.  Dry runs preview inside a SAVEPOINT that is always rolled
    back and leave no trace.

Architecture: windpark_billing/services.  Imports from windpark_billing.domain,
    windpark_billing.models, windpark_billing.handlers, module services and
    kernel services.

Invariants enforced:
    - Rule row locked (SELECT ... FOR UPDATE) for the whole execution.
    - Without ``force_run`` an inactive or not-yet-due rule is skipped;
      nothing is persisted for a skip.
    - Parameters are decoded before any side effect.
    - The next run is planned before the handler runs.  A failing handler
      or an unplannable schedule rolls back the SAVEPOINT and is recorded
      as a ``failed`` execution; the schedule only advances when the run
      did not fail.
    - All timestamps come from the injected Clock.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from windpark_config import ConfiguredTenantSettingsProvider
from windpark_config.schema import BillingConfiguration
from windpark_kernel.domain.clock import Clock, SystemClock
from windpark_kernel.domain.tenant import TenantSettingsProvider
from windpark_kernel.exceptions import BillingRuleNotFoundError
from windpark_kernel.logging_config import LogContext, get_logger
from windpark_kernel.services.audit import AuditEntry, AuditSink, emit_audit
from windpark_kernel.services.number_allocator import InvoiceNumberAllocator
from windpark_modules.distribution.service import DistributionService
from windpark_modules.invoicing.service import InvoiceService

from windpark_billing.domain.parameters import decode_parameters
from windpark_billing.domain.schedule import calculate_next_run, is_due
from windpark_billing.domain.types import (
    ExecuteOptions,
    ExecutionResult,
    ExecutionStatus,
)
from windpark_billing.handlers.base import HandlerContext, HandlerRegistry
from windpark_billing.models.billing_rule import BillingRuleExecutionModel, BillingRuleModel

logger = get_logger("billing.executor")

SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")

RULE_INACTIVE = "rule_inactive"
NOT_DUE = "not_due"


class RuleExecutor:
    """Executes billing rules with SAVEPOINT isolation.

    Contract:
        - ``execute()`` returns an ExecutionResult for every run, including
          skips and handler failures.
        - ``BillingRuleNotFoundError``, ``InvalidRuleParametersError`` and
          ``HandlerNotRegisteredError`` propagate before anything is written.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT loop over due rules -- that is the scheduler's job.
    """

    def __init__(
        self,
        session: Session,
        handler_registry: HandlerRegistry,
        clock: Clock | None = None,
        config: BillingConfiguration | None = None,
        settings_provider: TenantSettingsProvider | None = None,
        audit_sink: AuditSink | None = None,
        number_allocator: InvoiceNumberAllocator | None = None,
        invoice_service: InvoiceService | None = None,
        distribution_service: DistributionService | None = None,
        actor_id: UUID | None = None,
    ):
        self._session = session
        self._registry = handler_registry
        self._clock = clock or SystemClock()
        self._config = config or BillingConfiguration(config_id="builtin")
        self._settings = settings_provider or ConfiguredTenantSettingsProvider(self._config)
        self._audit = audit_sink
        self._actor_id = actor_id or SYSTEM_ACTOR_ID
        numbering = self._config.numbering
        self._allocator = number_allocator or InvoiceNumberAllocator(
            session,
            self._clock,
            prefixes=numbering.prefixes(),
            digits=numbering.invoice_digits,
        )
        self._invoices = invoice_service or InvoiceService(session, self._clock)
        self._distributions = distribution_service or DistributionService(
            session,
            self._clock,
            number_allocator=self._allocator,
            invoice_service=self._invoices,
            numbering=numbering,
            audit_sink=audit_sink,
        )

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def execute(
        self,
        rule_id: UUID,
        options: ExecuteOptions | None = None,
        *,
        tenant_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> ExecutionResult:
        """Execute one rule.

        Args:
            rule_id: The rule to run.
            options: Dry run / force run flags (default: real, guarded run).
            tenant_id: When given, a rule of another tenant is not found.
            actor_id: Who triggered the run (default: the system actor).

        Raises:
            BillingRuleNotFoundError: Unknown or cross-tenant rule.
            InvalidRuleParametersError: Parameters do not decode.
            HandlerNotRegisteredError: No handler for the rule type.
        """
        options = options or ExecuteOptions()
        actor_id = actor_id or self._actor_id

        rule = self._session.execute(
            select(BillingRuleModel).where(BillingRuleModel.id == rule_id).with_for_update()
        ).scalar_one_or_none()
        if rule is None or (tenant_id is not None and rule.tenant_id != tenant_id):
            raise BillingRuleNotFoundError(str(rule_id))

        with LogContext.bind(tenant_id=rule.tenant_id, rule_id=rule.id, actor_id=actor_id):
            params = decode_parameters(rule.rule_type, rule.parameters)
            handler = self._registry.get(rule.rule_type)
            now = self._clock.now()

            if not options.force_run:
                skip_reason = self._skip_reason(rule, now)
                if skip_reason is not None:
                    logger.info(
                        "rule_execution_skipped",
                        extra={"skipped_reason": skip_reason, "dry_run": options.dry_run},
                    )
                    return ExecutionResult.skipped_run(
                        skip_reason,
                        metadata={
                            "nextRunAt": rule.next_run_at.isoformat()
                            if rule.next_run_at
                            else None,
                        },
                    )

            context = HandlerContext(
                tenant_id=rule.tenant_id,
                rule_id=rule.id,
                session=self._session,
                as_of=now,
                settings=self._settings.get_tenant_settings(rule.tenant_id),
                actor_id=actor_id,
                clock=self._clock,
                number_allocator=self._allocator,
                invoice_service=self._invoices,
                distribution_service=self._distributions,
                tax_rates=self._config.tax_rates.as_mapping(),
                audit_sink=self._audit,
            )

            if options.dry_run:
                return self._dry_run(rule, handler, context, params, options)
            return self._real_run(rule, handler, context, params, options, now, actor_id)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _skip_reason(self, rule: BillingRuleModel, now) -> str | None:
        if not rule.is_active:
            return RULE_INACTIVE
        if rule.next_run_at is not None and not is_due(True, rule.next_run_at, now):
            return NOT_DUE
        return None

    def _dry_run(self, rule, handler, context, params, options) -> ExecutionResult:
        savepoint = self._session.begin_nested()
        try:
            result = handler.run(context, params, options)
        except Exception as exc:
            logger.exception(
                "rule_dry_run_failed", extra={"rule_type": rule.rule_type}
            )
            result = ExecutionResult.failure(
                str(exc), metadata={"errorType": type(exc).__name__}
            )
        finally:
            savepoint.rollback()
        return result.with_metadata(dryRun=True)

    def _real_run(
        self, rule, handler, context, params, options, now, actor_id
    ) -> ExecutionResult:
        execution = BillingRuleExecutionModel(
            rule_id=rule.id,
            tenant_id=rule.tenant_id,
            status=ExecutionStatus.RUNNING.value,
            started_at=now,
            created_by_id=actor_id,
        )
        self._session.add(execution)
        self._session.flush()

        with LogContext.bind(execution_id=execution.id):
            logger.info(
                "rule_execution_started",
                extra={
                    "rule_type": rule.rule_type,
                    "force_run": options.force_run,
                },
            )

            savepoint = self._session.begin_nested()
            try:
                next_run_at = calculate_next_run(
                    rule.frequency, now, now, rule.day_of_month, rule.cron_pattern
                )
                result = handler.run(context, params, options)
                savepoint.commit()
            except Exception as exc:
                savepoint.rollback()
                logger.exception(
                    "rule_execution_failed", extra={"rule_type": rule.rule_type}
                )
                result = ExecutionResult.failure(
                    str(exc), metadata={"errorType": type(exc).__name__}
                )

            completed_at = self._clock.now()
            execution.status = result.status.value
            execution.completed_at = completed_at
            execution.invoices_created = result.invoices_created
            execution.total_amount = result.total_amount
            execution.error_message = result.error_message
            execution.details = result.details.to_dict()
            execution.updated_by_id = actor_id

            if result.status != ExecutionStatus.FAILED:
                rule.last_run_at = now
                rule.next_run_at = next_run_at
                rule.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "rule_execution_completed",
                extra={
                    "status": result.status.value,
                    "invoices_created": result.invoices_created,
                    "total_amount": str(result.total_amount),
                    "next_run_at": rule.next_run_at,
                },
            )

        emit_audit(
            self._audit,
            AuditEntry(
                tenant_id=rule.tenant_id,
                action="billing_rule_executed",
                entity_type="BillingRule",
                entity_id=rule.id,
                actor_id=actor_id,
                occurred_at=completed_at,
                payload={
                    "executionId": str(execution.id),
                    "status": result.status.value,
                    "invoicesCreated": result.invoices_created,
                    "totalAmount": str(result.total_amount),
                },
            ),
        )
        return result.with_execution_id(execution.id)
