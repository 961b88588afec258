"""
InvoiceNumberAllocator -- formatted, gap-free invoice and credit note numbers.

Responsibility:
    Turns a reserved SequenceService range into document numbers of the form
    ``{prefix}-{year}-{seq:05d}``.  Each invoice type has its own prefix and
    its own counter per tenant and year.

Architecture position:
    Kernel > Services.  Used by billing rule handlers, the distribution
    service and the lease revenue settlement service.

Invariants enforced:
    - ``allocate(count=n)`` returns n contiguous numbers that were never
      handed out before for the same tenant, type and year.
    - Numbers allocated inside a unit of work that rolls back are returned
      to the range (no gaps).

Failure modes:
    - InvalidAllocationRequestError on count < 1 or an unknown invoice type.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from windpark_kernel.domain.clock import Clock, SystemClock
from windpark_kernel.domain.values import InvoiceType
from windpark_kernel.exceptions import InvalidAllocationRequestError
from windpark_kernel.logging_config import get_logger
from windpark_kernel.services.sequence_service import SequenceService

logger = get_logger("services.number_allocator")

DEFAULT_PREFIXES: Mapping[InvoiceType, str] = {
    InvoiceType.INVOICE: "RE",
    InvoiceType.CREDIT_NOTE: "GS",
}


def format_document_number(prefix: str, year: int, sequence: int, digits: int) -> str:
    """Format ``PREFIX-YYYY-000NN``."""
    return f"{prefix}-{year}-{sequence:0{digits}d}"


@dataclass(frozen=True)
class AllocatedNumbers:
    """Contiguous block of allocated document numbers."""

    invoice_type: InvoiceType
    year: int
    numbers: tuple[str, ...]

    @property
    def first(self) -> str:
        return self.numbers[0]

    @property
    def last(self) -> str:
        return self.numbers[-1]

    def __len__(self) -> int:
        return len(self.numbers)

    def __iter__(self):
        return iter(self.numbers)


class InvoiceNumberAllocator:
    """
    Allocates invoice / credit note numbers from locked counters.

    Contract:
        ``allocate(tenant_id, invoice_type, count, as_of)`` returns
        ``count`` new numbers scoped to the year of ``as_of`` (default: the
        clock's today).

    Non-goals:
        - Does not commit.  Callers wrap allocation and invoice insert in
          one unit of work so a failed insert does not burn a number.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        prefixes: Mapping[InvoiceType, str] | None = None,
        digits: int = 5,
    ):
        self._sequences = SequenceService(session)
        self._clock = clock or SystemClock()
        self._prefixes = dict(prefixes or DEFAULT_PREFIXES)
        self._digits = digits

    def prefix_for(self, invoice_type: InvoiceType) -> str:
        try:
            return self._prefixes[InvoiceType(invoice_type)]
        except (KeyError, ValueError) as exc:
            raise InvalidAllocationRequestError(
                f"no number prefix configured for {invoice_type!r}"
            ) from exc

    def allocate(
        self,
        tenant_id: UUID,
        invoice_type: InvoiceType,
        count: int = 1,
        as_of: date | None = None,
    ) -> AllocatedNumbers:
        """
        Allocate ``count`` contiguous numbers.

        Raises:
            InvalidAllocationRequestError: count < 1 or unknown type.
        """
        prefix = self.prefix_for(invoice_type)
        year = (as_of or self._clock.today()).year
        reserved = self._sequences.reserve(
            tenant_id, InvoiceType(invoice_type).value, year, count
        )
        numbers = tuple(
            format_document_number(prefix, year, seq, self._digits)
            for seq in reserved.values
        )
        logger.info(
            "invoice_numbers_allocated",
            extra={
                "tenant_id": str(tenant_id),
                "invoice_type": InvoiceType(invoice_type).value,
                "year": year,
                "count": count,
                "first": numbers[0],
                "last": numbers[-1],
            },
        )
        return AllocatedNumbers(
            invoice_type=InvoiceType(invoice_type), year=year, numbers=numbers
        )
