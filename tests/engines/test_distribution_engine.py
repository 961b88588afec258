"""
Tests for windpark_engines.distribution.

Covers:
- Weight resolution (distribution %, else ownership %, else 0)
- The 50/30/20 split of 10,000.00
- Sum invariants for amounts and percentages (property-based)
- Rejection of empty, zero-weight and non-positive inputs
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from windpark_engines.distribution import (
    ShareholderWeight,
    compute_distribution_split,
    total_weight,
)


def _holders(*weights):
    return [ShareholderWeight(uuid4(), distribution_percentage=w) for w in weights]


class TestShareholderWeight:
    def test_distribution_percentage_wins(self):
        w = ShareholderWeight(uuid4(), Decimal("40"), Decimal("25"))
        assert w.weight == Decimal("40")

    def test_falls_back_to_ownership(self):
        w = ShareholderWeight(uuid4(), None, Decimal("25"))
        assert w.weight == Decimal("25")

    def test_zero_without_percentages(self):
        assert ShareholderWeight(uuid4()).weight == Decimal("0")
        assert total_weight([ShareholderWeight(uuid4())]) == Decimal("0")


class TestComputeDistributionSplit:
    def test_fifty_thirty_twenty(self):
        split = compute_distribution_split(
            total_amount=Decimal("10000.00"),
            shareholders=_holders(Decimal("50"), Decimal("30"), Decimal("20")),
        )
        assert [s.amount for s in split.shares] == [
            Decimal("5000.00"),
            Decimal("3000.00"),
            Decimal("2000.00"),
        ]
        assert [s.percentage for s in split.shares] == [
            Decimal("50.0000"),
            Decimal("30.0000"),
            Decimal("20.0000"),
        ]

    def test_weights_are_normalized(self):
        # Weights need not add up to 100
        split = compute_distribution_split(
            total_amount=Decimal("300.00"),
            shareholders=_holders(Decimal("1"), Decimal("2")),
        )
        assert [s.amount for s in split.shares] == [Decimal("100.00"), Decimal("200.00")]
        assert split.percentage_sum == Decimal("100")

    def test_thirds_sum_exactly(self):
        split = compute_distribution_split(
            total_amount=Decimal("100.00"),
            shareholders=_holders(Decimal("1"), Decimal("1"), Decimal("1")),
        )
        assert split.amount_sum == Decimal("100.00")
        assert split.percentage_sum == Decimal("100.0000")

    def test_non_positive_total_rejected(self):
        with pytest.raises(ValueError, match="positive"):
            compute_distribution_split(
                total_amount=Decimal("0"), shareholders=_holders(Decimal("1"))
            )

    def test_no_shareholders_rejected(self):
        with pytest.raises(ValueError, match="No shareholders"):
            compute_distribution_split(total_amount=Decimal("1"), shareholders=[])

    def test_zero_weights_rejected(self):
        with pytest.raises(ValueError, match="zero"):
            compute_distribution_split(
                total_amount=Decimal("1"), shareholders=[ShareholderWeight(uuid4())]
            )

    @given(
        total=st.decimals(min_value="0.01", max_value="10000000", places=2),
        weights=st.lists(
            st.decimals(min_value="0.0001", max_value="100", places=4),
            min_size=1,
            max_size=40,
        ),
    )
    @settings(max_examples=200)
    def test_sums_are_exact(self, total, weights):
        split = compute_distribution_split(
            total_amount=total, shareholders=_holders(*weights)
        )
        assert split.amount_sum == total
        assert split.percentage_sum == Decimal("100")
