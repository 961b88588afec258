"""
windpark_billing.services -- Rule execution, scheduling and administration.
"""

from windpark_billing.services.executor import RuleExecutor
from windpark_billing.services.rule_service import BillingRuleService, CronValidation
from windpark_billing.services.scheduler import RuleScheduler, due_rules

__all__ = [
    "BillingRuleService",
    "CronValidation",
    "RuleExecutor",
    "RuleScheduler",
    "due_rules",
]
