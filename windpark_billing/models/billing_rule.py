"""
ORM models for billing rules and their execution history.

Contract:
    BillingRuleModel persists the rule definition and its schedule state;
    BillingRuleExecutionModel records one real execution.  Both expose
    ``to_dto()``.

Architecture: windpark_billing/models. Imports from windpark_kernel.db.base only.

Invariants enforced:
    - ``next_run_at > last_run_at`` once both are set (maintained by the
      executor through ``calculate_next_run``).
    - An execution row is immutable once ``completed_at`` is set.
    - Rules are never deleted while executions reference them (FK without
      cascade).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from windpark_kernel.db.base import TrackedBase, UUIDString
from windpark_kernel.db.types import ZERO

if TYPE_CHECKING:
    from windpark_billing.domain.types import BillingRule, BillingRuleExecution


class BillingRuleModel(TrackedBase):
    """A recurring billing rule of one tenant."""

    __tablename__ = "billing_rules"

    __table_args__ = (
        Index("ix_billing_rules_due", "is_active", "next_run_at"),
        Index("ix_billing_rules_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rule_type: Mapped[str] = mapped_column(String(50), nullable=False)
    frequency: Mapped[str] = mapped_column(String(50), nullable=False)
    cron_pattern: Mapped[str | None] = mapped_column(String(100), nullable=True)
    day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    parameters: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_run_at: Mapped[datetime | None] = mapped_column(nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(nullable=True)

    executions: Mapped[list["BillingRuleExecutionModel"]] = relationship(
        back_populates="rule",
        order_by="BillingRuleExecutionModel.started_at",
    )

    def to_dto(self) -> BillingRule:
        from windpark_billing.domain.types import (
            BillingFrequency,
            BillingRule,
            BillingRuleType,
        )

        return BillingRule(
            id=self.id,
            tenant_id=self.tenant_id,
            name=self.name,
            rule_type=BillingRuleType(self.rule_type),
            frequency=BillingFrequency(self.frequency),
            parameters=dict(self.parameters or {}),
            description=self.description,
            cron_pattern=self.cron_pattern,
            day_of_month=self.day_of_month,
            is_active=self.is_active,
            last_run_at=self.last_run_at,
            next_run_at=self.next_run_at,
            created_at=self.created_at,
        )


class BillingRuleExecutionModel(TrackedBase):
    """One recorded (non dry-run) execution of a billing rule."""

    __tablename__ = "billing_rule_executions"

    __table_args__ = (
        Index("ix_billing_rule_executions_rule", "rule_id", "started_at"),
    )

    rule_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("billing_rules.id"), nullable=False
    )
    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    invoices_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    rule: Mapped[BillingRuleModel] = relationship(back_populates="executions")

    def to_dto(self) -> BillingRuleExecution:
        from windpark_billing.domain.types import BillingRuleExecution, ExecutionStatus

        return BillingRuleExecution(
            id=self.id,
            rule_id=self.rule_id,
            status=ExecutionStatus(self.status),
            started_at=self.started_at,
            completed_at=self.completed_at,
            invoices_created=self.invoices_created,
            total_amount=self.total_amount,
            error_message=self.error_message,
            details=dict(self.details or {}),
        )
