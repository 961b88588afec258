"""
BillingOrchestrator -- DI container for the billing rule engine.

Contract:
    Wires the handler registry, executor, scheduler and module services from
    one session, clock and configuration.  Single place where all billing
    dependencies are composed.

Architecture: windpark_billing (top-level).  This is the canonical entry
    point for configuring and running billing rules.

Invariants enforced:
    - Clock injection: all services receive the same Clock.
    - Audit: the same AuditSink is wired into every service.
    - Number allocation: one InvoiceNumberAllocator per session, configured
      from the active numbering settings.
"""

from __future__ import annotations

from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from windpark_config import ConfiguredTenantSettingsProvider, get_active_config
from windpark_config.schema import BillingConfiguration
from windpark_kernel.domain.clock import Clock, SystemClock
from windpark_kernel.domain.tenant import TenantSettingsProvider
from windpark_kernel.logging_config import get_logger
from windpark_kernel.services.audit import AuditSink, LoggingAuditSink
from windpark_kernel.services.number_allocator import InvoiceNumberAllocator
from windpark_modules.distribution.service import DistributionService
from windpark_modules.invoicing.service import InvoiceService
from windpark_modules.lease_revenue.service import LeaseRevenueSettlementService

from windpark_billing.handlers.base import HandlerRegistry, default_handler_registry
from windpark_billing.services.executor import SYSTEM_ACTOR_ID, RuleExecutor
from windpark_billing.services.rule_service import BillingRuleService
from windpark_billing.services.scheduler import RuleScheduler

logger = get_logger("billing.orchestrator")


class BillingOrchestrator:
    """DI container for the billing rule engine.

    Contract:
        - ``from_session()`` factory creates a fully wired orchestrator.
        - ``create_executor()`` returns a RuleExecutor for ad-hoc runs.
        - ``create_scheduler()`` returns a RuleScheduler for background use.

    Non-goals:
        - Does NOT start the scheduler automatically -- caller decides.
        - Does NOT manage session lifecycle -- caller controls commits.
    """

    def __init__(
        self,
        session: Session,
        handler_registry: HandlerRegistry,
        config: BillingConfiguration,
        clock: Clock | None = None,
        settings_provider: TenantSettingsProvider | None = None,
        audit_sink: AuditSink | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        self._session = session
        self._registry = handler_registry
        self._config = config
        self._clock = clock or SystemClock()
        self._settings = settings_provider or ConfiguredTenantSettingsProvider(config)
        self._audit = audit_sink
        self._actor_id = actor_id or SYSTEM_ACTOR_ID
        self._allocator = self._make_allocator(session)
        self._invoices = InvoiceService(session, self._clock)

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        clock: Clock | None = None,
        config: BillingConfiguration | None = None,
        actor_id: UUID | None = None,
        audit_sink: AuditSink | None = None,
        settings_provider: TenantSettingsProvider | None = None,
        handler_registry: HandlerRegistry | None = None,
    ) -> BillingOrchestrator:
        """Create a fully wired BillingOrchestrator from a session.

        Args:
            session: SQLAlchemy session for persistence.
            clock: Optional clock for deterministic testing.
            config: Billing configuration (default: the active YAML set).
            actor_id: Actor for scheduled runs (default: the system actor).
            audit_sink: Audit receiver (default: the structured log).
            settings_provider: Tenant settings (default: from the config).
            handler_registry: Optional pre-configured registry.  If None,
                uses the default registry with every rule type.
        """
        return cls(
            session=session,
            handler_registry=handler_registry or default_handler_registry(),
            config=config or get_active_config(),
            clock=clock or SystemClock(),
            settings_provider=settings_provider,
            audit_sink=audit_sink if audit_sink is not None else LoggingAuditSink(),
            actor_id=actor_id,
        )

    def _make_allocator(self, session: Session) -> InvoiceNumberAllocator:
        numbering = self._config.numbering
        return InvoiceNumberAllocator(
            session,
            self._clock,
            prefixes=numbering.prefixes(),
            digits=numbering.invoice_digits,
        )

    # -------------------------------------------------------------------------
    # Executor
    # -------------------------------------------------------------------------

    def create_executor(self, session: Session | None = None) -> RuleExecutor:
        """Create a RuleExecutor wired with the orchestrator's dependencies.

        Args:
            session: Optional session override. If None, uses the
                orchestrator's session.
        """
        target_session = session or self._session
        own_session = session is None
        return RuleExecutor(
            session=target_session,
            handler_registry=self._registry,
            clock=self._clock,
            config=self._config,
            settings_provider=self._settings,
            audit_sink=self._audit,
            number_allocator=self._allocator if own_session else None,
            invoice_service=self._invoices if own_session else None,
            actor_id=self._actor_id,
        )

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------

    def create_scheduler(
        self,
        session_factory: Callable[[], Session],
        tick_interval_seconds: float | None = None,
        tenant_id: UUID | None = None,
    ) -> RuleScheduler:
        """Create a RuleScheduler wired with the orchestrator's dependencies.

        Args:
            session_factory: Callable returning a new session per rule.
            tick_interval_seconds: Polling interval (default: from config).
            tenant_id: Restrict the scheduler to one tenant.
        """
        return RuleScheduler(
            session_factory=session_factory,
            executor_factory=self.create_executor,
            clock=self._clock,
            tick_interval_seconds=(
                tick_interval_seconds
                if tick_interval_seconds is not None
                else self._config.scheduler.tick_interval_seconds
            ),
            tenant_id=tenant_id,
        )

    # -------------------------------------------------------------------------
    # Module services
    # -------------------------------------------------------------------------

    def rule_service(self) -> BillingRuleService:
        return BillingRuleService(self._session, self._clock, self._audit)

    def distribution_service(self) -> DistributionService:
        return DistributionService(
            self._session,
            self._clock,
            number_allocator=self._allocator,
            invoice_service=self._invoices,
            numbering=self._config.numbering,
            audit_sink=self._audit,
        )

    def settlement_service(self) -> LeaseRevenueSettlementService:
        return LeaseRevenueSettlementService(
            self._session,
            self._clock,
            number_allocator=self._allocator,
            invoice_service=self._invoices,
            settlement_config=self._config.settlement,
            tax_rates=self._config.tax_rates.as_mapping(),
            audit_sink=self._audit,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> BillingConfiguration:
        return self._config

    @property
    def handler_registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def settings_provider(self) -> TenantSettingsProvider:
        return self._settings

    @property
    def actor_id(self) -> UUID:
        return self._actor_id
