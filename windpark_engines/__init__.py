"""
Module: windpark_engines
Responsibility:
    Package entrypoint for the pure calculators of the billing system:
    weighted allocation, VAT, profit distribution, monthly lease fees and
    lease revenue settlement.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import windpark_kernel (types, values, logging).
    MUST NOT import windpark_modules or windpark_billing.

Invariants enforced:
    - Engines never read the clock.  Dates are passed in.
    - Decimal-only arithmetic, rounded half away from zero.
    - Identical inputs produce identical outputs.
"""

from windpark_engines.allocation import allocate_by_weights, assign_residue
from windpark_engines.distribution import (
    DistributionShare,
    DistributionSplit,
    ShareholderWeight,
    compute_distribution_split,
)
from windpark_engines.lease_fees import (
    AreaType,
    CompensationType,
    ParkFeeRates,
    PlotAreaInput,
    calculate_monthly_lease_amount,
    calculate_proration_factor,
)
from windpark_engines.settlement import (
    AdvanceInterval,
    LeaseFeeBasis,
    RevenuePhase,
    SettlementCalculation,
    SettlementComponent,
    SettlementInput,
    SettlementPeriodType,
    calculate_advance_fees,
    calculate_settlement_fees,
)
from windpark_engines.tax import TaxAmounts, calculate_tax

__all__ = [
    "AdvanceInterval",
    "AreaType",
    "CompensationType",
    "DistributionShare",
    "DistributionSplit",
    "LeaseFeeBasis",
    "ParkFeeRates",
    "PlotAreaInput",
    "RevenuePhase",
    "SettlementCalculation",
    "SettlementComponent",
    "SettlementInput",
    "SettlementPeriodType",
    "ShareholderWeight",
    "TaxAmounts",
    "allocate_by_weights",
    "assign_residue",
    "calculate_advance_fees",
    "calculate_monthly_lease_amount",
    "calculate_proration_factor",
    "calculate_settlement_fees",
    "calculate_tax",
    "compute_distribution_split",
]
