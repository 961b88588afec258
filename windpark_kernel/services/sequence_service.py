"""
SequenceService -- gap-free number ranges via locked counter rows.

Responsibility:
    Hands out contiguous, strictly increasing integer ranges per
    (tenant, sequence key, year).  Invoice numbers, credit note numbers and
    distribution numbers are all formatted from these ranges.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by InvoiceNumberAllocator and DistributionService.

Invariants enforced:
    - Monotonic and gap-free: the locked counter row is the sole source of
      truth.  Counting existing documents (max + 1) is never used.
    - Transactional: a reserved range is only visible after the caller's
      transaction commits.  A rolled-back unit returns its range.

Failure modes:
    - IntegrityError: concurrent first use of a counter (handled with a
      savepoint rollback and a locked re-read).
    - InvalidAllocationRequestError: count < 1.

Audit relevance:
    Every reservation is logged at DEBUG level with key, year and range.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import Integer, String, UniqueConstraint, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from windpark_kernel.db.base import Base
from windpark_kernel.exceptions import InvalidAllocationRequestError
from windpark_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    One row per (tenant, key, year).  Row-level locking serializes
    concurrent reservations on the same range.
    """

    __tablename__ = "sequence_counters"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "sequence_key", "year", name="uq_sequence_counter_scope"
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    sequence_key: Mapped[str] = mapped_column(String(50), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


@dataclass(frozen=True)
class SequenceRange:
    """Inclusive range of reserved sequence values."""

    first: int
    last: int

    @property
    def values(self) -> tuple[int, ...]:
        return tuple(range(self.first, self.last + 1))

    def __len__(self) -> int:
        return self.last - self.first + 1


class SequenceService:
    """
    Service for reserving transactional sequence ranges.

    Contract:
        ``reserve(tenant_id, key, year, count)`` returns ``count`` values
        directly following the highest value ever reserved for that scope.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller controls boundaries.

    Usage:
        with atomic(session):
            rng = sequence_service.reserve(tenant_id, "INVOICE", 2025, 3)
            # If the unit rolls back, the range is not consumed
    """

    DISTRIBUTION = "DISTRIBUTION"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(
        self, tenant_id: UUID, sequence_key: str, year: int
    ) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.tenant_id == tenant_id,
                SequenceCounter.sequence_key == sequence_key,
                SequenceCounter.year == year,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def reserve(
        self, tenant_id: UUID, sequence_key: str, year: int, count: int = 1
    ) -> SequenceRange:
        """
        Reserve ``count`` contiguous values for a scope.

        Preconditions:
            - ``count >= 1``.
            - The caller is within an active transaction or unit of work.

        Postconditions:
            - Returns a range starting at current_value + 1.
            - The counter row stays locked until the transaction completes.

        Raises:
            InvalidAllocationRequestError: If count < 1.
        """
        if count < 1:
            raise InvalidAllocationRequestError(f"count must be >= 1, got {count}")

        counter = self._locked_counter(tenant_id, sequence_key, year)

        if counter is None:
            # First use of this scope.  Another transaction may create the
            # row at the same time; the savepoint keeps the caller's work.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(
                    tenant_id=tenant_id,
                    sequence_key=sequence_key,
                    year=year,
                    current_value=count,
                )
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                reserved = SequenceRange(first=1, last=count)
                logger.debug(
                    "sequence_reserved",
                    extra={
                        "sequence_key": sequence_key,
                        "year": year,
                        "first": reserved.first,
                        "last": reserved.last,
                    },
                )
                return reserved
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_key": sequence_key, "year": year},
                )
                savepoint.rollback()
                counter = self._locked_counter(tenant_id, sequence_key, year)
                if counter is None:
                    raise

        first = counter.current_value + 1
        counter.current_value += count
        self._session.flush()
        reserved = SequenceRange(first=first, last=counter.current_value)
        logger.debug(
            "sequence_reserved",
            extra={
                "sequence_key": sequence_key,
                "year": year,
                "first": reserved.first,
                "last": reserved.last,
            },
        )
        return reserved

    def current_value(self, tenant_id: UUID, sequence_key: str, year: int) -> int | None:
        """Current value of a scope without reserving, or None if unused."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.tenant_id == tenant_id,
                SequenceCounter.sequence_key == sequence_key,
                SequenceCounter.year == year,
            )
        ).scalar_one_or_none()
