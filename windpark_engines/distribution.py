"""
Module: windpark_engines.distribution
Responsibility:
    Split a fund's profit distribution across its active shareholders by
    weight (distribution percentage, else ownership percentage).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The distribution service
    loads shareholders and raises the typed errors for empty or zero-weight
    funds before calling in.

Invariants enforced:
    - Percentages are normalized to 100 (4 decimals); their sum is exactly
      100.0000.
    - Amounts are rounded half away from zero to cents; their sum is exactly
      ``total_amount`` (residue to the largest share).

Failure modes:
    - ValueError on no shareholders, zero total weight or a non-positive
      total amount.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from windpark_engines.allocation import allocate_by_weights, assign_residue
from windpark_engines.tracer import traced_engine
from windpark_kernel.db.types import HUNDRED, ZERO, round_percent


@dataclass(frozen=True)
class ShareholderWeight:
    """Distribution-relevant view of one shareholder."""

    shareholder_id: UUID
    distribution_percentage: Decimal | None = None
    ownership_percentage: Decimal | None = None

    @property
    def weight(self) -> Decimal:
        if self.distribution_percentage is not None:
            return self.distribution_percentage
        if self.ownership_percentage is not None:
            return self.ownership_percentage
        return ZERO


@dataclass(frozen=True)
class DistributionShare:
    shareholder_id: UUID
    percentage: Decimal
    amount: Decimal


@dataclass(frozen=True)
class DistributionSplit:
    total_amount: Decimal
    shares: tuple[DistributionShare, ...]

    @property
    def percentage_sum(self) -> Decimal:
        return sum((s.percentage for s in self.shares), ZERO)

    @property
    def amount_sum(self) -> Decimal:
        return sum((s.amount for s in self.shares), ZERO)


def total_weight(shareholders: Sequence[ShareholderWeight]) -> Decimal:
    return sum((s.weight for s in shareholders), ZERO)


@traced_engine("distribution", "1.0", fingerprint_fields=("total_amount",))
def compute_distribution_split(
    *,
    total_amount: Decimal,
    shareholders: Sequence[ShareholderWeight],
) -> DistributionSplit:
    """
    Normalize shareholder weights and split ``total_amount``.

    Raises:
        ValueError: empty shareholder list, zero total weight, or
            ``total_amount <= 0``.
    """
    if total_amount <= ZERO:
        raise ValueError("Distribution amount must be positive")
    if not shareholders:
        raise ValueError("No shareholders to distribute to")
    weights = [s.weight for s in shareholders]
    weight_sum = total_weight(shareholders)
    if weight_sum <= ZERO:
        raise ValueError("Sum of shareholder weights is zero")

    percentages = assign_residue(
        [round_percent(w / weight_sum * HUNDRED) for w in weights],
        HUNDRED,
        weights,
    )
    amounts = allocate_by_weights(total_amount, weights)

    return DistributionSplit(
        total_amount=total_amount,
        shares=tuple(
            DistributionShare(
                shareholder_id=s.shareholder_id,
                percentage=pct,
                amount=amount,
            )
            for s, pct, amount in zip(shareholders, percentages, amounts)
        ),
    )
