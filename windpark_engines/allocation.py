"""
Module: windpark_engines.allocation
Responsibility:
    Split a monetary total across weighted targets with deterministic
    rounding, and push a rounding residue onto one designated target.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``sum(allocate_by_weights(total, w)) == total`` exactly.
    - The residue goes to the target with the largest weight (first one on
      ties), so the adjustment lands where it is relatively smallest.

Failure modes:
    - ValueError on an empty target list, a negative weight or a zero total
      weight.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from windpark_kernel.db.types import round_money

ZERO = Decimal("0")


def largest_index(weights: Sequence[Decimal]) -> int:
    """Index of the largest weight; the first one wins ties."""
    best = 0
    for i, weight in enumerate(weights):
        if weight > weights[best]:
            best = i
    return best


def allocate_by_weights(
    total: Decimal,
    weights: Sequence[Decimal],
    places: int = 2,
) -> tuple[Decimal, ...]:
    """
    Allocate ``total`` proportionally to ``weights``.

    Each share is ``round(total * w / sum(w))``; the residue between the
    rounded shares and ``total`` is added to the largest-weight share.

    Raises:
        ValueError: empty weights, negative weight, or zero weight sum.
    """
    if not weights:
        raise ValueError("Cannot allocate across zero targets")
    if any(w < ZERO for w in weights):
        raise ValueError("Allocation weights cannot be negative")
    weight_sum = sum(weights, ZERO)
    if weight_sum == ZERO:
        raise ValueError("Allocation weights sum to zero")

    shares = [round_money(total * w / weight_sum, places) for w in weights]
    return tuple(assign_residue(shares, total, weights))


def assign_residue(
    amounts: Sequence[Decimal],
    target_total: Decimal,
    weights: Sequence[Decimal] | None = None,
) -> list[Decimal]:
    """
    Return ``amounts`` with ``target_total - sum(amounts)`` added to one item.

    The receiving item is the one with the largest weight (or the largest
    amount when no weights are given).  Empty input is returned unchanged.
    """
    result = list(amounts)
    if not result:
        return result
    residue = target_total - sum(result, ZERO)
    if residue != ZERO:
        idx = largest_index(list(weights) if weights is not None else result)
        result[idx] += residue
    return result
