"""
Distribution Module (``windpark_modules.distribution``).

Responsibility
--------------
Fund profit distributions: DRAFT creation with a sequential number,
preview, execution into per-shareholder credit notes, deletion of drafts.
"""

from windpark_modules.distribution.models import (
    Distribution,
    DistributionItem,
    DistributionPreview,
    DistributionStatus,
)
from windpark_modules.distribution.service import (
    DistributionExecution,
    DistributionService,
)

__all__ = [
    "Distribution",
    "DistributionExecution",
    "DistributionItem",
    "DistributionPreview",
    "DistributionService",
    "DistributionStatus",
]
