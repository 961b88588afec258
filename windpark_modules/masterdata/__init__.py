"""
Master Data Module (``windpark_modules.masterdata``).

Responsibility
--------------
Persisted shape of parks, turbines, plots, persons, leases, funds,
shareholders and energy revenues, plus tenant-scoped lookups that convert
rows into calculator inputs.
"""

from windpark_modules.masterdata.orm import (
    EnergyRevenueModel,
    FundModel,
    LeaseModel,
    LeasePlotModel,
    ParkModel,
    ParkRevenuePhaseModel,
    PersonModel,
    PlotAreaModel,
    PlotModel,
    ShareholderModel,
    TurbineModel,
)

__all__ = [
    "EnergyRevenueModel",
    "FundModel",
    "LeaseModel",
    "LeasePlotModel",
    "ParkModel",
    "ParkRevenuePhaseModel",
    "PersonModel",
    "PlotAreaModel",
    "PlotModel",
    "ShareholderModel",
    "TurbineModel",
]
