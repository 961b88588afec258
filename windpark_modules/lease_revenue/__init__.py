"""
Lease Revenue Module (``windpark_modules.lease_revenue``).

Responsibility
--------------
Yearly usage fee settlements of a park and their advances: creation with
the duplicate/merge policy, calculation, credit note generation, closing
and the import of historical years.
"""

from windpark_modules.lease_revenue.loader import (
    LoadedSettlementInput,
    load_settlement_input,
)
from windpark_modules.lease_revenue.models import (
    Settlement,
    SettlementCreation,
    SettlementInvoices,
    SettlementItem,
    SettlementStatus,
)
from windpark_modules.lease_revenue.service import LeaseRevenueSettlementService

__all__ = [
    "LeaseRevenueSettlementService",
    "LoadedSettlementInput",
    "Settlement",
    "SettlementCreation",
    "SettlementInvoices",
    "SettlementItem",
    "SettlementStatus",
    "load_settlement_input",
]
