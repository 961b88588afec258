"""
windpark_billing.models -- ORM models for billing rule persistence.

Architecture: windpark_billing/models. Imports from windpark_kernel.db.base only.
"""

from windpark_billing.models.billing_rule import (
    BillingRuleExecutionModel,
    BillingRuleModel,
)

__all__ = [
    "BillingRuleExecutionModel",
    "BillingRuleModel",
]
