"""Distribution DTOs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from windpark_kernel.db.types import ZERO


class DistributionStatus(str, Enum):
    DRAFT = "DRAFT"
    EXECUTED = "EXECUTED"


@dataclass(frozen=True)
class DistributionItem:
    shareholder_id: UUID
    shareholder_number: str
    recipient_name: str
    percentage: Decimal
    amount: Decimal
    invoice_id: UUID | None = None


@dataclass(frozen=True)
class Distribution:
    id: UUID
    tenant_id: UUID
    fund_id: UUID
    distribution_number: str
    total_amount: Decimal
    distribution_date: date
    status: DistributionStatus
    items: tuple[DistributionItem, ...]
    description: str | None = None
    executed_at: datetime | None = None

    @property
    def amount_sum(self) -> Decimal:
        return sum((i.amount for i in self.items), ZERO)

    @property
    def percentage_sum(self) -> Decimal:
        return sum((i.percentage for i in self.items), ZERO)


@dataclass(frozen=True)
class DistributionPreview:
    """Split of a distribution that has not been persisted."""

    fund_id: UUID
    total_amount: Decimal
    distribution_date: date
    items: tuple[DistributionItem, ...]
    description: str | None = None
