"""
BillingRuleService -- administration of billing rules.

Responsibility:
    Create, update, (de)activate and delete rules; list executions and
    upcoming runs; re-plan schedules; validate cron patterns.

Architecture position:
    windpark_billing/services.  Writes only ``billing_rules``; execution
    rows are owned by RuleExecutor.

Invariants enforced:
    - Parameters and schedule are validated before a rule is written.
    - ``next_run_at`` is recomputed whenever the schedule changes or the
      rule is activated; it is always in the future.
    - A rule with recorded executions cannot be deleted.

Failure modes:
    - InvalidRuleParametersError / InvalidScheduleError on create/update.
    - BillingRuleNotFoundError for unknown or cross-tenant rules.
    - BillingRuleInUseError on delete.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from windpark_kernel.db.engine import atomic
from windpark_kernel.domain.clock import Clock, SystemClock
from windpark_kernel.exceptions import (
    BillingRuleInUseError,
    BillingRuleNotFoundError,
    InvalidScheduleError,
)
from windpark_kernel.logging_config import get_logger
from windpark_kernel.services.audit import AuditEntry, AuditSink, emit_audit

from windpark_billing.domain import schedule
from windpark_billing.domain.parameters import decode_parameters
from windpark_billing.domain.types import (
    BillingFrequency,
    BillingRule,
    BillingRuleExecution,
    BillingRuleType,
    UpcomingRun,
)
from windpark_billing.models.billing_rule import BillingRuleExecutionModel, BillingRuleModel

logger = get_logger("billing.rule_service")


@dataclass(frozen=True)
class CronValidation:
    valid: bool
    error: str | None = None
    next_runs: tuple[datetime, ...] = ()


class BillingRuleService:
    """Tenant-scoped rule administration.  Does not commit the caller's transaction."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._audit = audit_sink

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def create(
        self,
        tenant_id: UUID,
        name: str,
        rule_type: BillingRuleType | str,
        frequency: BillingFrequency | str,
        parameters: dict[str, Any],
        actor_id: UUID,
        description: str | None = None,
        cron_pattern: str | None = None,
        day_of_month: int | None = None,
        is_active: bool = True,
    ) -> BillingRule:
        if not name or not name.strip():
            raise ValueError("rule name is required")
        params = decode_parameters(rule_type, parameters)
        frequency = schedule.validate_schedule(frequency, cron_pattern, day_of_month)
        if frequency != BillingFrequency.CUSTOM_CRON:
            cron_pattern = None
        now = self._clock.now()

        with atomic(self._session):
            model = BillingRuleModel(
                tenant_id=tenant_id,
                name=name.strip(),
                description=description,
                rule_type=BillingRuleType(rule_type).value,
                frequency=frequency.value,
                cron_pattern=cron_pattern,
                day_of_month=day_of_month,
                parameters=params.to_dict(),
                is_active=is_active,
                next_run_at=schedule.calculate_next_run(
                    frequency, None, now, day_of_month, cron_pattern
                ),
                created_by_id=actor_id,
            )
            self._session.add(model)
            self._session.flush()

        logger.info(
            "billing_rule_created",
            extra={
                "rule_id": str(model.id),
                "rule_type": model.rule_type,
                "frequency": model.frequency,
                "next_run_at": model.next_run_at,
            },
        )
        self._record(model, "billing_rule_created", actor_id)
        return model.to_dto()

    def update(
        self,
        tenant_id: UUID,
        rule_id: UUID,
        actor_id: UUID,
        *,
        name: str | None = None,
        description: str | None = None,
        frequency: BillingFrequency | str | None = None,
        cron_pattern: str | None = None,
        day_of_month: int | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> BillingRule:
        """Change the given fields; ``None`` leaves a field unchanged."""
        with atomic(self._session):
            model = self._load(tenant_id, rule_id, lock=True)
            changed: list[str] = []

            if name is not None:
                if not name.strip():
                    raise ValueError("rule name is required")
                model.name = name.strip()
                changed.append("name")
            if description is not None:
                model.description = description
                changed.append("description")
            if parameters is not None:
                model.parameters = decode_parameters(model.rule_type, parameters).to_dict()
                changed.append("parameters")

            schedule_changed = any(
                v is not None for v in (frequency, cron_pattern, day_of_month)
            )
            if schedule_changed:
                new_frequency = schedule.validate_schedule(
                    frequency if frequency is not None else model.frequency,
                    cron_pattern if cron_pattern is not None else model.cron_pattern,
                    day_of_month if day_of_month is not None else model.day_of_month,
                )
                model.frequency = new_frequency.value
                if cron_pattern is not None:
                    model.cron_pattern = cron_pattern
                if new_frequency != BillingFrequency.CUSTOM_CRON:
                    model.cron_pattern = None
                if day_of_month is not None:
                    model.day_of_month = day_of_month
                model.next_run_at = self._plan(model)
                changed.append("schedule")

            model.updated_by_id = actor_id
            self._session.flush()

        logger.info(
            "billing_rule_updated",
            extra={"rule_id": str(model.id), "changed": changed},
        )
        self._record(model, "billing_rule_updated", actor_id, {"changed": changed})
        return model.to_dto()

    def activate(self, tenant_id: UUID, rule_id: UUID, actor_id: UUID) -> BillingRule:
        with atomic(self._session):
            model = self._load(tenant_id, rule_id, lock=True)
            model.is_active = True
            model.next_run_at = self._plan(model)
            model.updated_by_id = actor_id
            self._session.flush()
        logger.info(
            "billing_rule_activated",
            extra={"rule_id": str(model.id), "next_run_at": model.next_run_at},
        )
        self._record(model, "billing_rule_activated", actor_id)
        return model.to_dto()

    def deactivate(self, tenant_id: UUID, rule_id: UUID, actor_id: UUID) -> BillingRule:
        with atomic(self._session):
            model = self._load(tenant_id, rule_id, lock=True)
            model.is_active = False
            model.updated_by_id = actor_id
            self._session.flush()
        logger.info("billing_rule_deactivated", extra={"rule_id": str(model.id)})
        self._record(model, "billing_rule_deactivated", actor_id)
        return model.to_dto()

    def delete(self, tenant_id: UUID, rule_id: UUID, actor_id: UUID) -> None:
        with atomic(self._session):
            model = self._load(tenant_id, rule_id, lock=True)
            execution_count = self._session.execute(
                select(func.count())
                .select_from(BillingRuleExecutionModel)
                .where(BillingRuleExecutionModel.rule_id == rule_id)
            ).scalar_one()
            if execution_count:
                raise BillingRuleInUseError(str(rule_id), execution_count)
            self._record(model, "billing_rule_deleted", actor_id)
            self._session.delete(model)
            self._session.flush()
        logger.info("billing_rule_deleted", extra={"rule_id": str(rule_id)})

    def refresh_schedules(self, tenant_id: UUID | None = None) -> int:
        """Re-plan ``next_run_at`` of every active rule; returns how many changed."""
        stmt = select(BillingRuleModel).where(BillingRuleModel.is_active == True)  # noqa: E712
        if tenant_id is not None:
            stmt = stmt.where(BillingRuleModel.tenant_id == tenant_id)
        changed = 0
        with atomic(self._session):
            for model in self._session.execute(stmt.with_for_update()).scalars():
                try:
                    next_run = self._plan(model)
                except InvalidScheduleError:
                    logger.warning(
                        "billing_rule_schedule_invalid", extra={"rule_id": str(model.id)}
                    )
                    continue
                if next_run != model.next_run_at:
                    model.next_run_at = next_run
                    changed += 1
            self._session.flush()
        logger.info("billing_rule_schedules_refreshed", extra={"changed": changed})
        return changed

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    def get(self, tenant_id: UUID, rule_id: UUID) -> BillingRule:
        return self._load(tenant_id, rule_id).to_dto()

    def list_rules(
        self,
        tenant_id: UUID,
        active_only: bool = False,
        rule_type: BillingRuleType | str | None = None,
    ) -> list[BillingRule]:
        stmt = select(BillingRuleModel).where(BillingRuleModel.tenant_id == tenant_id)
        if active_only:
            stmt = stmt.where(BillingRuleModel.is_active == True)  # noqa: E712
        if rule_type is not None:
            stmt = stmt.where(BillingRuleModel.rule_type == BillingRuleType(rule_type).value)
        stmt = stmt.order_by(BillingRuleModel.name, BillingRuleModel.id)
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def list_executions(
        self, tenant_id: UUID, rule_id: UUID, limit: int = 20
    ) -> list[BillingRuleExecution]:
        """Executions of a rule, newest first."""
        self._load(tenant_id, rule_id)
        models = self._session.execute(
            select(BillingRuleExecutionModel)
            .where(BillingRuleExecutionModel.rule_id == rule_id)
            .order_by(BillingRuleExecutionModel.started_at.desc())
            .limit(limit)
        ).scalars()
        return [m.to_dto() for m in models]

    def upcoming_runs(self, tenant_id: UUID | None = None, limit: int = 10) -> list[UpcomingRun]:
        stmt = select(BillingRuleModel).where(
            BillingRuleModel.is_active == True,  # noqa: E712
            BillingRuleModel.next_run_at.is_not(None),
        )
        if tenant_id is not None:
            stmt = stmt.where(BillingRuleModel.tenant_id == tenant_id)
        stmt = stmt.order_by(BillingRuleModel.next_run_at).limit(limit)
        return [
            UpcomingRun(
                rule_id=m.id,
                rule_name=m.name,
                rule_type=BillingRuleType(m.rule_type),
                frequency=BillingFrequency(m.frequency),
                next_run_at=m.next_run_at,
            )
            for m in self._session.execute(stmt).scalars()
        ]

    def validate_cron_pattern(self, pattern: str, count: int = 5) -> CronValidation:
        try:
            schedule.validate_cron_expression(pattern)
            runs = schedule.next_cron_runs(pattern, self._clock.now(), count)
        except InvalidScheduleError as exc:
            return CronValidation(valid=False, error=exc.reason)
        except ValueError as exc:
            return CronValidation(valid=False, error=str(exc))
        return CronValidation(valid=True, next_runs=tuple(runs))

    @staticmethod
    def describe_schedule(rule: BillingRule) -> str:
        return schedule.describe_schedule(rule.frequency, rule.day_of_month, rule.cron_pattern)

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _plan(self, model: BillingRuleModel) -> datetime:
        return schedule.calculate_next_run(
            model.frequency,
            model.last_run_at,
            self._clock.now(),
            model.day_of_month,
            model.cron_pattern,
        )

    def _load(self, tenant_id: UUID, rule_id: UUID, lock: bool = False) -> BillingRuleModel:
        stmt = select(BillingRuleModel).where(
            BillingRuleModel.id == rule_id, BillingRuleModel.tenant_id == tenant_id
        )
        if lock:
            stmt = stmt.with_for_update()
        model = self._session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise BillingRuleNotFoundError(str(rule_id))
        return model

    def _record(
        self,
        model: BillingRuleModel,
        action: str,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> None:
        emit_audit(
            self._audit,
            AuditEntry(
                tenant_id=model.tenant_id,
                action=action,
                entity_type="BillingRule",
                entity_id=model.id,
                actor_id=actor_id,
                occurred_at=self._clock.now(),
                payload={"name": model.name, "ruleType": model.rule_type, **(payload or {})},
            ),
        )
