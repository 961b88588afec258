"""
windpark_billing.domain -- Pure types, parameter structs and schedule math.

ZERO I/O.  All types are frozen dataclasses.
"""

from windpark_billing.domain.types import (
    BillingFrequency,
    BillingRule,
    BillingRuleExecution,
    BillingRuleType,
    ExecuteOptions,
    ExecutionDetails,
    ExecutionResult,
    ExecutionStatus,
    ExecutionSummary,
    InvoiceOutcome,
    UpcomingRun,
)

__all__ = [
    "BillingFrequency",
    "BillingRule",
    "BillingRuleExecution",
    "BillingRuleType",
    "ExecuteOptions",
    "ExecutionDetails",
    "ExecutionResult",
    "ExecutionStatus",
    "ExecutionSummary",
    "InvoiceOutcome",
    "UpcomingRun",
]
