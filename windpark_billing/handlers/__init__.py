"""
windpark_billing.handlers -- One handler per billing rule type.
"""

from windpark_billing.handlers.base import (
    HandlerContext,
    HandlerRegistry,
    RuleHandler,
    default_handler_registry,
)

__all__ = [
    "HandlerContext",
    "HandlerRegistry",
    "RuleHandler",
    "default_handler_registry",
]
