"""Recurrence resolution for planned-transaction templates.

Dates are derived by period index from the template anchor (``first_occurrence``):
the Nth occurrence is the anchor advanced by ``N * interval`` periods and then
passed through the month's day-selection policy. A resolved date is never used
as the next anchor, so month-end clamping does not drift.
"""

import calendar
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from planner.logger import get_logger
from planner.models.template import DayOfMonthType, PeriodType
from planner.models.transaction import TransactionType
from planner.services.errors import InvalidRecurrenceConfig, OutOfRangeWindow
from planner.utils.occurrence_ids import (
    is_virtual_occurrence_id,
    parse_virtual_occurrence_id,
    virtual_occurrence_id,
)

logger = get_logger(__name__)

__all__ = [
    "RecurrenceRule",
    "VirtualOccurrence",
    "compute_occurrences",
    "generate_virtual_occurrences",
    "is_virtual_occurrence_id",
    "next_occurrence",
    "parse_virtual_occurrence_id",
    "validate_recurrence",
    "virtual_occurrence_id",
]

# Fixed-length periods, in days
PERIOD_DAYS = {
    PeriodType.DAILY: 1,
    PeriodType.WEEKLY: 7,
    PeriodType.FORTNIGHTLY: 14,
}

# Upper bound of one period, used to size the next-occurrence lookahead
PERIOD_HORIZON_DAYS = {
    PeriodType.DAILY: 1,
    PeriodType.WEEKLY: 7,
    PeriodType.FORTNIGHTLY: 14,
    PeriodType.MONTHLY: 31,
    PeriodType.ANNUALLY: 366,
}


@dataclass(frozen=True)
class RecurrenceRule:
    """Recurrence fields of a template, detached from persistence."""

    period_type: PeriodType
    first_occurrence: date
    interval: int = 1
    end_date: date | None = None
    day_of_month: int | None = None
    day_of_month_type: DayOfMonthType | None = None
    # 0=Sunday .. 6=Saturday
    day_of_week: int | None = None

    @classmethod
    def from_template(cls, template: Any) -> "RecurrenceRule":
        return cls(
            period_type=template.period_type,
            first_occurrence=template.first_occurrence,
            interval=template.interval if template.interval is not None else 1,
            end_date=template.end_date,
            day_of_month=template.day_of_month,
            day_of_month_type=template.day_of_month_type,
            day_of_week=template.day_of_week,
        )


def validate_recurrence(rule: RecurrenceRule) -> None:
    """Reject recurrence configurations the resolver cannot honour.

    Raises:
        InvalidRecurrenceConfig: With a message naming the offending field.
    """
    if rule.interval < 1:
        raise InvalidRecurrenceConfig("interval must be at least 1")
    if rule.day_of_month is not None and not 1 <= rule.day_of_month <= 31:
        raise InvalidRecurrenceConfig("day_of_month must be between 1 and 31")
    if rule.day_of_week is not None and not 0 <= rule.day_of_week <= 6:
        raise InvalidRecurrenceConfig("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    if rule.end_date is not None and rule.end_date < rule.first_occurrence:
        raise InvalidRecurrenceConfig("end_date must not be before first_occurrence")

    policy = rule.day_of_month_type
    if policy is None:
        return
    if rule.period_type != PeriodType.MONTHLY and not (
        rule.period_type == PeriodType.ANNUALLY and policy == DayOfMonthType.FIXED
    ):
        raise InvalidRecurrenceConfig(
            f"day_of_month_type {policy.value} is only valid for monthly templates"
        )
    if policy == DayOfMonthType.FIXED and rule.day_of_month is None:
        raise InvalidRecurrenceConfig("FIXED day_of_month_type requires day_of_month")
    if policy in (DayOfMonthType.FIRST_OF_WEEK, DayOfMonthType.LAST_OF_WEEK) and rule.day_of_week is None:
        raise InvalidRecurrenceConfig(f"{policy.value} day_of_month_type requires day_of_week")


# =============================================================================
# Day-selection policies
# =============================================================================


def _last_day(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _python_weekday(day_of_week: int) -> int:
    """Convert 0=Sunday numbering to ``date.weekday()`` (0=Monday)."""
    return (day_of_week - 1) % 7


def _fixed_day(year: int, month: int, rule: RecurrenceRule) -> date:
    day = rule.day_of_month or rule.first_occurrence.day
    return date(year, month, min(day, _last_day(year, month)))


def _last_calendar_day(year: int, month: int, rule: RecurrenceRule) -> date:
    return date(year, month, _last_day(year, month))


def _first_weekday(year: int, month: int, rule: RecurrenceRule) -> date:
    current = date(year, month, 1)
    while current.weekday() >= 5:
        current += timedelta(days=1)
    return current


def _last_weekday(year: int, month: int, rule: RecurrenceRule) -> date:
    current = date(year, month, _last_day(year, month))
    while current.weekday() >= 5:
        current -= timedelta(days=1)
    return current


def _first_of_week(year: int, month: int, rule: RecurrenceRule) -> date:
    first = date(year, month, 1)
    offset = (_python_weekday(rule.day_of_week) - first.weekday()) % 7
    return first + timedelta(days=offset)


def _last_of_week(year: int, month: int, rule: RecurrenceRule) -> date:
    last = date(year, month, _last_day(year, month))
    offset = (last.weekday() - _python_weekday(rule.day_of_week)) % 7
    return last - timedelta(days=offset)


DAY_POLICIES: dict[DayOfMonthType, Callable[[int, int, RecurrenceRule], date]] = {
    DayOfMonthType.FIXED: _fixed_day,
    DayOfMonthType.LAST_DAY: _last_calendar_day,
    DayOfMonthType.FIRST_WEEKDAY: _first_weekday,
    DayOfMonthType.LAST_WEEKDAY: _last_weekday,
    DayOfMonthType.FIRST_OF_WEEK: _first_of_week,
    DayOfMonthType.LAST_OF_WEEK: _last_of_week,
}


def resolve_month_day(year: int, month: int, rule: RecurrenceRule) -> date:
    """Pick the occurrence date inside ``year``/``month`` for a monthly rule."""
    policy = rule.day_of_month_type or DayOfMonthType.FIXED
    return DAY_POLICIES[policy](year, month, rule)


# =============================================================================
# Resolver
# =============================================================================


def _check_window(start_date: date, end_date: date, max_window_days: int | None) -> None:
    if start_date > end_date:
        raise OutOfRangeWindow(f"start_date {start_date} is after end_date {end_date}")
    if max_window_days is not None and (end_date - start_date).days > max_window_days:
        raise OutOfRangeWindow(f"Date window exceeds {max_window_days} days")


def _fixed_period_dates(rule: RecurrenceRule, lower: date, upper: date) -> list[date]:
    step = PERIOD_DAYS[rule.period_type] * rule.interval
    first_index = math.ceil((lower - rule.first_occurrence).days / step)
    current = rule.first_occurrence + timedelta(days=first_index * step)
    dates: list[date] = []
    while current <= upper:
        dates.append(current)
        current += timedelta(days=step)
    return dates


def _monthly_dates(rule: RecurrenceRule, lower: date, upper: date) -> list[date]:
    anchor = rule.first_occurrence
    anchor_index = anchor.year * 12 + anchor.month - 1
    lower_index = lower.year * 12 + lower.month - 1
    upper_index = upper.year * 12 + upper.month - 1

    period = max(0, (lower_index - anchor_index) // rule.interval)
    dates: list[date] = []
    month_index = anchor_index + period * rule.interval
    while month_index <= upper_index:
        year, month = divmod(month_index, 12)
        resolved = resolve_month_day(year, month + 1, rule)
        if lower <= resolved <= upper:
            dates.append(resolved)
        period += 1
        month_index = anchor_index + period * rule.interval
    return dates


def _annual_dates(rule: RecurrenceRule, lower: date, upper: date) -> list[date]:
    anchor = rule.first_occurrence
    day = rule.day_of_month or anchor.day
    period = max(0, (lower.year - anchor.year) // rule.interval)
    dates: list[date] = []
    year = anchor.year + period * rule.interval
    while year <= upper.year:
        resolved = date(year, anchor.month, min(day, _last_day(year, anchor.month)))
        if lower <= resolved <= upper:
            dates.append(resolved)
        period += 1
        year = anchor.year + period * rule.interval
    return dates


def compute_occurrences(
    rule: RecurrenceRule,
    start_date: date,
    end_date: date,
    *,
    max_window_days: int | None = None,
) -> list[date]:
    """Return the occurrence dates of ``rule`` inside ``[start_date, end_date]``.

    The result is ascending and clipped to the template's own active span
    ``[first_occurrence, end_date]``.

    Raises:
        OutOfRangeWindow: If the window is inverted or wider than ``max_window_days``.
    """
    _check_window(start_date, end_date, max_window_days)

    lower = max(start_date, rule.first_occurrence)
    upper = end_date if rule.end_date is None else min(end_date, rule.end_date)
    if lower > upper:
        return []

    if rule.period_type in PERIOD_DAYS:
        return _fixed_period_dates(rule, lower, upper)
    if rule.period_type == PeriodType.MONTHLY:
        return _monthly_dates(rule, lower, upper)
    return _annual_dates(rule, lower, upper)


# =============================================================================
# Virtual occurrences
# =============================================================================


@dataclass(frozen=True)
class VirtualOccurrence:
    """A template slot that has not been persisted."""

    template_id: UUID
    occurrence_date: date
    user_id: UUID
    account_id: UUID
    amount: Decimal
    type: TransactionType
    name: str
    account_name: str = ""
    category_id: UUID | None = None
    category_name: str | None = None
    is_transfer: bool = False
    transfer_to_account_id: UUID | None = None
    description: str | None = None
    notes: str | None = None
    auto_match_enabled: bool = True
    skip_review: bool = False
    match_tolerance: Decimal | None = None
    match_window_days: int = 7

    @property
    def occurrence_id(self) -> str:
        return virtual_occurrence_id(self.template_id, self.occurrence_date)

    @property
    def occurrence_key(self) -> str:
        return self.occurrence_id

    @property
    def expected_date(self) -> date:
        return self.occurrence_date

    @property
    def is_virtual(self) -> bool:
        return True

    @property
    def is_skipped(self) -> bool:
        return False

    @classmethod
    def from_template(cls, template: Any, occurrence_date: date) -> "VirtualOccurrence":
        return cls(
            template_id=template.id,
            occurrence_date=occurrence_date,
            user_id=template.user_id,
            account_id=template.account_id,
            amount=template.amount,
            type=template.type,
            name=template.name,
            account_name=template.account_name,
            category_id=template.category_id,
            category_name=template.category_name,
            is_transfer=template.is_transfer,
            transfer_to_account_id=template.transfer_to_account_id,
            description=template.description,
            notes=template.notes,
            auto_match_enabled=template.auto_match_enabled,
            skip_review=template.skip_review,
            match_tolerance=template.match_tolerance,
            match_window_days=template.match_window_days,
        )


def generate_virtual_occurrences(
    template: Any,
    start_date: date,
    end_date: date,
    *,
    max_window_days: int | None = None,
) -> list[VirtualOccurrence]:
    """Expand an active template into virtual occurrences for a window."""
    _check_window(start_date, end_date, max_window_days)
    if not template.is_active:
        return []

    rule = RecurrenceRule.from_template(template)
    dates = compute_occurrences(rule, start_date, end_date)
    logger.debug(
        "Generated virtual occurrences",
        template_id=str(template.id),
        start_date=start_date.isoformat(),
        end_date=end_date.isoformat(),
        count=len(dates),
    )
    return [VirtualOccurrence.from_template(template, occurrence_date) for occurrence_date in dates]


def lookahead_days(rule: RecurrenceRule) -> int:
    """Window length that always contains the next occurrence, if any."""
    return (rule.interval + 1) * PERIOD_HORIZON_DAYS[rule.period_type]


def next_occurrence(template: Any, as_of: date) -> VirtualOccurrence | None:
    """Return the first virtual occurrence on or after ``as_of``.

    ``None`` when the template is inactive or already ended.
    """
    if not template.is_active:
        return None
    if template.end_date is not None and as_of > template.end_date:
        return None

    rule = RecurrenceRule.from_template(template)
    lower = max(as_of, rule.first_occurrence)
    dates = compute_occurrences(rule, lower, lower + timedelta(days=lookahead_days(rule)))
    if not dates:
        return None
    return VirtualOccurrence.from_template(template, dates[0])
