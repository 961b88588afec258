"""
Tests for windpark_engines.allocation.

Covers:
- Proportional allocation with exact totals
- Residue placement on the largest weight
- Rejection of empty, negative and zero-sum weights
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from windpark_engines.allocation import (
    allocate_by_weights,
    assign_residue,
    largest_index,
)


class TestAllocateByWeights:
    def test_even_split(self):
        assert allocate_by_weights(Decimal("90.00"), [Decimal("1")] * 3) == (
            Decimal("30.00"),
            Decimal("30.00"),
            Decimal("30.00"),
        )

    def test_residue_goes_to_largest_weight(self):
        # 100 / 3 = 33.33 each; the missing cent lands on the heaviest target
        shares = allocate_by_weights(
            Decimal("100.00"), [Decimal("1"), Decimal("2"), Decimal("1")]
        )
        assert shares == (Decimal("25.00"), Decimal("50.00"), Decimal("25.00"))

        shares = allocate_by_weights(Decimal("100.00"), [Decimal("1")] * 3)
        assert sum(shares) == Decimal("100.00")
        assert shares[0] == Decimal("33.34")

    def test_empty_targets_rejected(self):
        with pytest.raises(ValueError, match="zero targets"):
            allocate_by_weights(Decimal("10"), [])

    def test_negative_weight_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            allocate_by_weights(Decimal("10"), [Decimal("1"), Decimal("-1")])

    def test_zero_weight_sum_rejected(self):
        with pytest.raises(ValueError, match="sum to zero"):
            allocate_by_weights(Decimal("10"), [Decimal("0"), Decimal("0")])

    @given(
        total=st.decimals(min_value="0.01", max_value="1000000", places=2),
        weights=st.lists(
            st.decimals(min_value="0.01", max_value="1000", places=4),
            min_size=1,
            max_size=25,
        ),
    )
    @settings(max_examples=200)
    def test_sum_is_exact(self, total, weights):
        assert sum(allocate_by_weights(total, weights)) == total


class TestAssignResidue:
    def test_empty_input_unchanged(self):
        assert assign_residue([], Decimal("5")) == []

    def test_no_residue(self):
        amounts = [Decimal("1.00"), Decimal("2.00")]
        assert assign_residue(amounts, Decimal("3.00")) == amounts

    def test_residue_without_weights_uses_largest_amount(self):
        result = assign_residue([Decimal("1.00"), Decimal("5.00")], Decimal("6.01"))
        assert result == [Decimal("1.00"), Decimal("5.01")]

    def test_first_wins_ties(self):
        assert largest_index([Decimal("2"), Decimal("2"), Decimal("1")]) == 0
