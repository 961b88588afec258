"""
Tests for windpark_engines.tax.

Covers:
- Default German VAT rates (19 / 7 / 0)
- Configurable rates
- Rounding half away from zero
"""

from decimal import Decimal

from windpark_engines.tax import DEFAULT_TAX_RATES, calculate_tax, tax_rate_for
from windpark_kernel.domain.values import TaxType


class TestCalculateTax:
    def test_standard_rate(self):
        result = calculate_tax(Decimal("100.00"), TaxType.STANDARD)
        assert result.tax_rate == Decimal("19")
        assert result.tax_amount == Decimal("19.00")
        assert result.gross_amount == Decimal("119.00")

    def test_reduced_rate(self):
        result = calculate_tax(Decimal("100.00"), TaxType.REDUCED)
        assert result.tax_amount == Decimal("7.00")

    def test_exempt_has_zero_tax(self):
        result = calculate_tax(Decimal("1234.56"), TaxType.EXEMPT)
        assert result.tax_amount == Decimal("0.00")
        assert result.gross_amount == result.net_amount

    def test_exempt_ignores_configured_rate(self):
        rates = {**DEFAULT_TAX_RATES, TaxType.EXEMPT: Decimal("5")}
        assert tax_rate_for(TaxType.EXEMPT, rates) == Decimal("0")

    def test_rounds_half_away_from_zero(self):
        # 0.50 * 19% = 0.095 -> 0.10
        result = calculate_tax(Decimal("0.50"), TaxType.STANDARD)
        assert result.tax_amount == Decimal("0.10")

    def test_net_is_rounded_to_cents(self):
        result = calculate_tax(Decimal("10.005"), TaxType.EXEMPT)
        assert result.net_amount == Decimal("10.01")

    def test_custom_rates(self):
        rates = {TaxType.STANDARD: Decimal("16"), TaxType.REDUCED: Decimal("5")}
        result = calculate_tax(Decimal("100"), TaxType.STANDARD, rates)
        assert result.gross_amount == Decimal("116.00")
