"""
RuleHandler protocol, HandlerContext, and HandlerRegistry.

Contract:
    ``RuleHandler`` defines the interface every rule-type handler implements.
    ``HandlerRegistry`` stores handlers keyed by ``BillingRuleType``.
    ``default_handler_registry()`` returns a registry with one handler per
    rule type and verifies that none is missing.

Architecture:
    windpark_billing/handlers.  Handlers read master data and write invoices
    through module services; they never commit and never touch the rule
    or execution rows (the executor owns both).

Invariants enforced:
    - One handler per rule type; the registry is closed over
      ``BillingRuleType``.
    - Per-beneficiary failures are caught inside the handler and reported as
      outcomes; only run-level errors (bad period, unknown park) raise.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from windpark_kernel.domain.clock import Clock
from windpark_kernel.domain.tenant import TenantSettings
from windpark_kernel.domain.values import TaxType
from windpark_kernel.exceptions import HandlerNotRegisteredError
from windpark_kernel.services.audit import AuditSink
from windpark_kernel.services.number_allocator import InvoiceNumberAllocator
from windpark_modules.distribution.service import DistributionService
from windpark_modules.invoicing.service import InvoiceService

from windpark_billing.domain.types import BillingRuleType, ExecuteOptions, ExecutionResult


# =============================================================================
# Context
# =============================================================================


@dataclass(frozen=True)
class HandlerContext:
    """Everything a handler needs for one run, resolved by the executor."""

    tenant_id: UUID
    rule_id: UUID
    session: Session
    as_of: datetime
    settings: TenantSettings
    actor_id: UUID
    clock: Clock
    number_allocator: InvoiceNumberAllocator
    invoice_service: InvoiceService
    distribution_service: DistributionService
    tax_rates: Mapping[TaxType, Decimal] | None = None
    audit_sink: AuditSink | None = None

    @property
    def today(self) -> date:
        return self.as_of.date()


# =============================================================================
# RuleHandler Protocol
# =============================================================================


@runtime_checkable
class RuleHandler(Protocol):
    """Protocol for rule-type handlers.

    Contract:
        - ``rule_type``: the BillingRuleType this handler serves.
        - ``run()``: produce (or, on a dry run, preview) the documents of one
          period and return an ExecutionResult.

    Non-goals:
        - Does NOT manage transactions -- the executor owns the SAVEPOINT.
        - Does NOT update the rule schedule.
    """

    @property
    def rule_type(self) -> BillingRuleType: ...

    def run(
        self,
        context: HandlerContext,
        params: Any,
        options: ExecuteOptions,
    ) -> ExecutionResult:
        ...


# =============================================================================
# HandlerRegistry
# =============================================================================


class HandlerRegistry:
    """Registry mapping rule types to handler implementations.

    Contract:
        - ``register()`` adds a handler; raises ValueError on duplicate.
        - ``get()`` retrieves by rule type; raises HandlerNotRegisteredError.
        - ``list()`` returns all registered rule types.
    """

    def __init__(self) -> None:
        self._handlers: dict[BillingRuleType, RuleHandler] = {}

    def register(self, handler: RuleHandler) -> None:
        """Register a handler.

        Raises:
            ValueError: If a handler for the same rule type is already registered.
        """
        rule_type = BillingRuleType(handler.rule_type)
        if rule_type in self._handlers:
            raise ValueError(f"Handler for '{rule_type.value}' is already registered")
        self._handlers[rule_type] = handler

    def get(self, rule_type: BillingRuleType | str) -> RuleHandler:
        """Retrieve the handler of ``rule_type``.

        Raises:
            HandlerNotRegisteredError: If no handler serves the rule type.
        """
        try:
            return self._handlers[BillingRuleType(rule_type)]
        except (KeyError, ValueError):
            raise HandlerNotRegisteredError(
                str(getattr(rule_type, "value", rule_type)),
                [t.value for t in self.list()],
            ) from None

    def list(self) -> tuple[BillingRuleType, ...]:
        """All registered rule types, sorted by value."""
        return tuple(sorted(self._handlers, key=lambda t: t.value))

    def verify_complete(self) -> None:
        """Raise HandlerNotRegisteredError for the first rule type without a handler."""
        for rule_type in BillingRuleType:
            if rule_type not in self._handlers:
                raise HandlerNotRegisteredError(
                    rule_type.value, [t.value for t in self.list()]
                )

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, rule_type: object) -> bool:
        try:
            return BillingRuleType(rule_type) in self._handlers
        except ValueError:
            return False


def default_handler_registry() -> HandlerRegistry:
    """Registry with the built-in handler of every rule type."""
    from windpark_billing.handlers.custom import CustomRuleHandler
    from windpark_billing.handlers.distribution import DistributionHandler
    from windpark_billing.handlers.lease_advance import (
        LeaseAdvanceHandler,
        LeasePaymentHandler,
    )
    from windpark_billing.handlers.management_fee import ManagementFeeHandler

    registry = HandlerRegistry()
    registry.register(LeasePaymentHandler())
    registry.register(LeaseAdvanceHandler())
    registry.register(DistributionHandler())
    registry.register(ManagementFeeHandler())
    registry.register(CustomRuleHandler())
    registry.verify_complete()
    return registry
