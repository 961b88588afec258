"""
Windpark Kernel

Shared infrastructure for the wind-park billing system:
- SQLAlchemy declarative base, engine and unit-of-work helpers
- Deterministic clock
- Structured JSON logging
- Typed exception hierarchy
- Locked sequence counters and the invoice number allocator
- Tenant settings and audit sinks
"""

__version__ = "0.1.0"
