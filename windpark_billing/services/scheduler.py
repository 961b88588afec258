"""
RuleScheduler -- In-process polling scheduler for billing rules.

Contract:
    Polls due rules on a configurable interval and executes each through
    ``RuleExecutor`` in its own session and transaction.

Architecture: windpark_billing/services.  Uses windpark_billing.domain.schedule
    for due-ness and windpark_billing.services.executor for execution.

Invariants enforced:
    - All timestamps from the injected Clock.
    - One rule's failure never stops the loop: its transaction is rolled
      back, the error logged, and the next rule runs.
    - Graceful shutdown: the stop signal is checked between rules.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from windpark_kernel.domain.clock import Clock, SystemClock
from windpark_kernel.logging_config import get_logger

from windpark_billing.domain.types import BillingRule, ExecutionResult
from windpark_billing.models.billing_rule import BillingRuleModel
from windpark_billing.services.executor import RuleExecutor

logger = get_logger("billing.scheduler")


def due_rules(
    session: Session, now: datetime, tenant_id: UUID | None = None
) -> list[BillingRule]:
    """Active rules with ``next_run_at <= now``, earliest first."""
    stmt = select(BillingRuleModel).where(
        BillingRuleModel.is_active == True,  # noqa: E712
        BillingRuleModel.next_run_at.is_not(None),
        BillingRuleModel.next_run_at <= now,
    )
    if tenant_id is not None:
        stmt = stmt.where(BillingRuleModel.tenant_id == tenant_id)
    stmt = stmt.order_by(BillingRuleModel.next_run_at, BillingRuleModel.id)
    return [model.to_dto() for model in session.execute(stmt).scalars()]


class RuleScheduler:
    """In-process polling scheduler for billing rules.

    Contract:
        - ``tick()`` executes every due rule once.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election); concurrent
          schedulers are serialized by the executor's row lock and
          due-ness re-check.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        executor_factory: Callable[[Session], RuleExecutor],
        clock: Clock | None = None,
        tick_interval_seconds: float = 60.0,
        tenant_id: UUID | None = None,
    ):
        self._session_factory = session_factory
        self._executor_factory = executor_factory
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._tenant_id = tenant_id
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> dict[UUID, ExecutionResult]:
        """Execute all due rules (public for testing).

        Returns the results of the rules that ran, keyed by rule id.
        """
        now = self._clock.now()
        session = self._session_factory()
        try:
            rules = due_rules(session, now, self._tenant_id)
        finally:
            session.close()

        results: dict[UUID, ExecutionResult] = {}
        for rule in rules:
            if self._stop_event.is_set():
                break
            result = self._run_rule(rule)
            if result is not None:
                results[rule.id] = result

        if rules:
            logger.info(
                "scheduler_tick_completed",
                extra={"due_count": len(rules), "executed_count": len(results)},
            )
        return results

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="billing-rule-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current rule to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_rule(self, rule: BillingRule) -> ExecutionResult | None:
        session = self._session_factory()
        try:
            result = self._executor_factory(session).execute(rule.id)
            session.commit()
            return result
        except Exception:
            session.rollback()
            logger.exception(
                "scheduled_rule_failed",
                extra={"rule_id": str(rule.id), "rule_name": rule.name},
            )
            return None
        finally:
            session.close()

    def _run_loop(self) -> None:
        """Background polling loop. Exits when stop_event is set."""
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)
