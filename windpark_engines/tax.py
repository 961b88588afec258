"""
Module: windpark_engines.tax
Responsibility:
    VAT computation for invoice lines: net amount plus tax type to tax rate,
    tax amount and gross amount.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Rates are passed in
    (from ``windpark_config``); DEFAULT_TAX_RATES mirrors the shipped
    default configuration.

Invariants enforced:
    - ``gross == net + tax`` with the tax amount rounded half away from zero.
    - EXEMPT lines always carry a zero tax amount.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal

from windpark_kernel.db.types import HUNDRED, round_money
from windpark_kernel.domain.values import TaxType

DEFAULT_TAX_RATES: Mapping[TaxType, Decimal] = {
    TaxType.STANDARD: Decimal("19"),
    TaxType.REDUCED: Decimal("7"),
    TaxType.EXEMPT: Decimal("0"),
}


@dataclass(frozen=True)
class TaxAmounts:
    """Net, rate, tax and gross for one line."""

    tax_type: TaxType
    net_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    gross_amount: Decimal


def tax_rate_for(
    tax_type: TaxType, rates: Mapping[TaxType, Decimal] | None = None
) -> Decimal:
    """Rate in percent for a tax type."""
    table = rates or DEFAULT_TAX_RATES
    if tax_type == TaxType.EXEMPT:
        return Decimal("0")
    return table[TaxType(tax_type)]


def calculate_tax(
    net_amount: Decimal,
    tax_type: TaxType,
    rates: Mapping[TaxType, Decimal] | None = None,
) -> TaxAmounts:
    """Compute tax and gross amount for a net amount."""
    net = round_money(net_amount)
    rate = tax_rate_for(tax_type, rates)
    tax = round_money(net * rate / HUNDRED)
    return TaxAmounts(
        tax_type=TaxType(tax_type),
        net_amount=net,
        tax_rate=rate,
        tax_amount=tax,
        gross_amount=net + tax,
    )
