"""
Pure schedule evaluation for billing rules.

Contract:
    ``calculate_next_run()`` and ``is_due()`` are PURE -- no I/O, no clock
    reads.  The caller passes ``now``; the scheduler compares the stored
    ``next_run_at`` with it.

Architecture: windpark_billing/domain.  ZERO I/O.

Invariants enforced:
    - A computed run time is always strictly after ``now``: missed periods
      are skipped forward (self-healing), never replayed.
    - Calendar frequencies step ``k * months`` from the anchor, so the
      day-of-month clamp (31 -> 30/29/28) never drifts.
    - Run times are midnight in the timezone of the anchor.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo

from windpark_kernel.exceptions import InvalidScheduleError

from windpark_billing.domain.types import BillingFrequency

MIN_DAY_OF_MONTH = 1
MAX_DAY_OF_MONTH = 28

# Feb 29 can be eight years apart (2096 -> 2104).
CRON_SEARCH_DAYS = 8 * 366

_FREQUENCY_LABELS = {
    BillingFrequency.MONTHLY: "Monatlich",
    BillingFrequency.QUARTERLY: "Vierteljaehrlich",
    BillingFrequency.SEMI_ANNUAL: "Halbjaehrlich",
    BillingFrequency.ANNUAL: "Jaehrlich",
}


# =============================================================================
# CronSpec (lightweight cron parser)
# =============================================================================


@dataclass(frozen=True)
class CronSpec:
    """Parsed cron expression (minute hour day_of_month month day_of_week).

    Each field is a frozenset of valid integer values.
    Supports: *, values, lists, ranges (1-5), steps (*/5, 1-10/2).
    """

    minutes: frozenset[int] = field(default_factory=lambda: frozenset(range(60)))
    hours: frozenset[int] = field(default_factory=lambda: frozenset(range(24)))
    days_of_month: frozenset[int] = field(default_factory=lambda: frozenset(range(1, 32)))
    months: frozenset[int] = field(default_factory=lambda: frozenset(range(1, 13)))
    days_of_week: frozenset[int] = field(default_factory=lambda: frozenset(range(7)))


def _parse_cron_field(field_str: str, min_val: int, max_val: int) -> frozenset[int]:
    """Parse a single cron field into a frozenset of valid values.

    Raises:
        ValueError: If the field is syntactically invalid or values out of range.
    """
    values: set[int] = set()

    for part in field_str.split(","):
        part = part.strip()
        if not part:
            raise ValueError(f"Empty list element in '{field_str}'")

        if "/" in part:
            range_part, step_str = part.split("/", 1)
            step = int(step_str)
            if step <= 0:
                raise ValueError(f"Step must be positive: {step}")

            if range_part == "*":
                start, end = min_val, max_val
            elif "-" in range_part:
                s, e = range_part.split("-", 1)
                start, end = int(s), int(e)
            else:
                start = int(range_part)
                end = max_val
            if start < min_val or end > max_val or start > end:
                raise ValueError(f"Range {start}-{end} outside [{min_val}, {max_val}]")
            values.update(range(start, end + 1, step))

        elif part == "*":
            values.update(range(min_val, max_val + 1))

        elif "-" in part:
            s, e = part.split("-", 1)
            start, end = int(s), int(e)
            if start > end:
                raise ValueError(f"Range start > end: {start}-{end}")
            if start < min_val or end > max_val:
                raise ValueError(f"Range {start}-{end} outside [{min_val}, {max_val}]")
            values.update(range(start, end + 1))

        else:
            v = int(part)
            if v < min_val or v > max_val:
                raise ValueError(f"Value {v} outside range [{min_val}, {max_val}]")
            values.add(v)

    return frozenset(values)


def parse_cron(expression: str) -> CronSpec:
    """Parse a 5-field cron expression into a CronSpec.

    Format: ``minute hour day_of_month month day_of_week``.  Day of week
    accepts 0-7 where both 0 and 7 mean Sunday.

    Raises:
        ValueError: If expression is malformed.
    """
    parts = expression.strip().split()
    if len(parts) != 5:
        raise ValueError(
            f"Cron expression must have 5 fields, got {len(parts)}: '{expression}'"
        )

    days_of_week = _parse_cron_field(parts[4], 0, 7)
    if 7 in days_of_week:
        days_of_week = (days_of_week - {7}) | {0}

    return CronSpec(
        minutes=_parse_cron_field(parts[0], 0, 59),
        hours=_parse_cron_field(parts[1], 0, 23),
        days_of_month=_parse_cron_field(parts[2], 1, 31),
        months=_parse_cron_field(parts[3], 1, 12),
        days_of_week=days_of_week,
    )


def _matches_day(spec: CronSpec, dt: datetime) -> bool:
    # Cron weekday 0=Sunday; Python weekday() 0=Monday
    cron_dow = (dt.weekday() + 1) % 7
    return (
        dt.day in spec.days_of_month
        and dt.month in spec.months
        and cron_dow in spec.days_of_week
    )


def matches_cron(spec: CronSpec, dt: datetime) -> bool:
    """Check if a datetime matches a cron spec (all fields must match)."""
    return dt.minute in spec.minutes and dt.hour in spec.hours and _matches_day(spec, dt)


def next_cron_match(spec: CronSpec, after: datetime) -> datetime:
    """First datetime strictly after ``after`` that matches the cron spec.

    Non-matching days are skipped whole; the search is bounded to
    ``CRON_SEARCH_DAYS``.

    Raises:
        ValueError: If no match found within the search window.
    """
    candidate = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
    limit = after + timedelta(days=CRON_SEARCH_DAYS)

    while candidate <= limit:
        if not _matches_day(spec, candidate):
            candidate = candidate.replace(hour=0, minute=0) + timedelta(days=1)
            continue
        if candidate.hour not in spec.hours:
            candidate = candidate.replace(minute=0) + timedelta(hours=1)
            continue
        if candidate.minute in spec.minutes:
            return candidate
        candidate += timedelta(minutes=1)

    raise ValueError(f"No cron match found within {CRON_SEARCH_DAYS} days after {after}")


def next_cron_runs(expression: str, after: datetime, count: int = 5) -> list[datetime]:
    """The next ``count`` run times of a cron expression."""
    spec = parse_cron(expression)
    runs: list[datetime] = []
    cursor = after
    for _ in range(count):
        cursor = next_cron_match(spec, cursor)
        runs.append(cursor)
    return runs


# =============================================================================
# Calendar frequencies
# =============================================================================


def add_months(year: int, month: int, months: int) -> tuple[int, int]:
    """(year, month) shifted by ``months`` calendar months."""
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def _run_at(year: int, month: int, day_of_month: int, tz: tzinfo | None) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, min(day_of_month, last_day), tzinfo=tz)


def _comparable(now: datetime, tz: tzinfo | None) -> datetime:
    """``now`` in the anchor's timezone flavour (aware vs naive)."""
    if tz is None:
        return now.replace(tzinfo=None) if now.tzinfo is not None else now
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def calculate_next_run(
    frequency: BillingFrequency | str,
    last_run_at: datetime | None,
    now: datetime,
    day_of_month: int | None = None,
    cron_pattern: str | None = None,
) -> datetime:
    """Next execution time of a rule, strictly after ``now``.

    Calendar frequencies add 1/3/6/12 months to ``last_run_at`` (or, for a
    rule that never ran, take the next ``day_of_month`` after ``now``) and
    keep adding periods while the candidate is not in the future.

    Raises:
        InvalidScheduleError: CUSTOM_CRON without a valid pattern.
    """
    frequency = BillingFrequency(frequency)

    if frequency == BillingFrequency.CUSTOM_CRON:
        spec = validate_cron_expression(cron_pattern, frequency)
        try:
            return next_cron_match(spec, now)
        except ValueError as exc:
            raise InvalidScheduleError(frequency.value, str(exc)) from exc

    day = day_of_month or 1

    if last_run_at is None:
        tz = now.tzinfo
        year, month = now.year, now.month
        step = 1
        k = 0
    else:
        tz = last_run_at.tzinfo
        year, month = last_run_at.year, last_run_at.month
        step = frequency.months
        k = 1

    reference = _comparable(now, tz)
    while True:
        candidate = _run_at(*add_months(year, month, k * step), day, tz)
        if candidate > reference:
            return candidate
        k += 1


def is_due(is_active: bool, next_run_at: datetime | None, now: datetime) -> bool:
    """An active rule with ``next_run_at <= now``."""
    if not is_active or next_run_at is None:
        return False
    return next_run_at <= _comparable(now, next_run_at.tzinfo)


# =============================================================================
# Validation and labels
# =============================================================================


def validate_cron_expression(
    pattern: str | None, frequency: BillingFrequency | str = BillingFrequency.CUSTOM_CRON
) -> CronSpec:
    """Parse ``pattern`` or raise InvalidScheduleError."""
    frequency = BillingFrequency(frequency).value
    if not pattern or not pattern.strip():
        raise InvalidScheduleError(frequency, "cron pattern is required")
    try:
        return parse_cron(pattern)
    except ValueError as exc:
        raise InvalidScheduleError(frequency, f"invalid cron pattern: {exc}") from exc


def validate_schedule(
    frequency: BillingFrequency | str,
    cron_pattern: str | None = None,
    day_of_month: int | None = None,
) -> BillingFrequency:
    try:
        frequency = BillingFrequency(frequency)
    except ValueError:
        raise InvalidScheduleError(str(frequency), "unknown frequency") from None
    if frequency == BillingFrequency.CUSTOM_CRON:
        validate_cron_expression(cron_pattern, frequency)
    if day_of_month is not None and not (
        MIN_DAY_OF_MONTH <= day_of_month <= MAX_DAY_OF_MONTH
    ):
        raise InvalidScheduleError(
            frequency.value,
            f"day_of_month must be {MIN_DAY_OF_MONTH}..{MAX_DAY_OF_MONTH}, got {day_of_month}",
        )
    return frequency


def describe_schedule(
    frequency: BillingFrequency | str,
    day_of_month: int | None = None,
    cron_pattern: str | None = None,
) -> str:
    """German label, e.g. ``Monatlich am 15.``."""
    frequency = BillingFrequency(frequency)
    label = _FREQUENCY_LABELS.get(frequency)
    if label is not None:
        return f"{label} am {day_of_month or 1}."
    return cron_pattern or "Benutzerdefiniert"
