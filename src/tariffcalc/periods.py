"""Reporting period boundaries, navigation and labels.

Periods are half-open [start, end). Monthly and quarterly periods are anchored on a
billing day; when a month is shorter than the billing day the anchor is clamped to the
last day of that month. Timezone-aware inputs keep their tzinfo and all arithmetic is
done on wall-clock time, so a day is always midnight to midnight.
"""

import calendar
from datetime import date, datetime, time, timedelta

from .errors import InvalidBillingDay
from .models import IntervalBoundary, IntervalType


def validate_billing_day(billing_day: int) -> int:
    """Return billing_day if it is within 1..31, else raise InvalidBillingDay."""
    if isinstance(billing_day, bool) or not isinstance(billing_day, int) or not 1 <= billing_day <= 31:
        raise InvalidBillingDay(billing_day)
    return billing_day


def start_of_day(moment: datetime) -> datetime:
    """Midnight of the moment's calendar day, keeping tzinfo."""
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)


def add_months(year: int, month: int, months: int) -> tuple[int, int]:
    """Shift a (year, month) pair by a number of months."""
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def anchor_date(year: int, month: int, billing_day: int) -> date:
    """The billing anchor in a month, clamped to the month's length."""
    days_in_month = calendar.monthrange(year, month)[1]
    return date(year, month, min(billing_day, days_in_month))


def _at_midnight(day: date, tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tzinfo)


def _monthly(moment: datetime, billing_day: int) -> IntervalBoundary:
    anchor = anchor_date(moment.year, moment.month, billing_day)
    if moment.date() >= anchor:
        year, month = moment.year, moment.month
    else:
        year, month = add_months(moment.year, moment.month, -1)
    end_year, end_month = add_months(year, month, 1)
    return IntervalBoundary(
        start=_at_midnight(anchor_date(year, month, billing_day), moment.tzinfo),
        end=_at_midnight(anchor_date(end_year, end_month, billing_day), moment.tzinfo),
    )


def _quarterly(moment: datetime, billing_day: int) -> IntervalBoundary:
    # The quarter is chosen by the billing month the moment falls in.
    month_start = _monthly(moment, billing_day).start
    first_month = ((month_start.month - 1) // 3) * 3 + 1
    end_year, end_month = add_months(month_start.year, first_month, 3)
    return IntervalBoundary(
        start=_at_midnight(anchor_date(month_start.year, first_month, billing_day), moment.tzinfo),
        end=_at_midnight(anchor_date(end_year, end_month, billing_day), moment.tzinfo),
    )


def boundary(
    moment: datetime, interval_type: IntervalType | str, billing_day: int = 1
) -> IntervalBoundary:
    """The reporting period of the given type that contains moment.

    DAILY is midnight to midnight, WEEKLY runs Monday to Monday (ISO weeks), MONTHLY
    runs from one billing anchor to the next, and QUARTERLY spans three billing months
    starting in January, April, July or October.
    """
    validate_billing_day(billing_day)
    interval_type = IntervalType.parse(interval_type)
    day_start = start_of_day(moment)

    if interval_type is IntervalType.DAILY:
        return IntervalBoundary(day_start, day_start + timedelta(days=1))
    if interval_type is IntervalType.WEEKLY:
        week_start = day_start - timedelta(days=day_start.weekday())
        return IntervalBoundary(week_start, week_start + timedelta(days=7))
    if interval_type is IntervalType.MONTHLY:
        return _monthly(moment, billing_day)
    return _quarterly(moment, billing_day)


def shift(
    moment: datetime, interval_type: IntervalType | str, steps: int, billing_day: int = 1
) -> datetime:
    """Start of the period `steps` periods away from the one containing moment."""
    interval_type = IntervalType.parse(interval_type)
    current = boundary(moment, interval_type, billing_day)
    if steps == 0:
        return current.start

    if interval_type is IntervalType.DAILY:
        return current.start + timedelta(days=steps)
    if interval_type is IntervalType.WEEKLY:
        return current.start + timedelta(weeks=steps)

    months = steps * (3 if interval_type is IntervalType.QUARTERLY else 1)
    year, month = add_months(current.start.year, current.start.month, months)
    target = _at_midnight(anchor_date(year, month, billing_day), current.start.tzinfo)
    return boundary(target, interval_type, billing_day).start


def neighbours(
    moment: datetime,
    interval_type: IntervalType | str,
    billing_day: int,
    min_date: datetime,
    max_date: datetime,
) -> tuple[datetime | None, datetime | None]:
    """Starts of the previous and next periods, or None where they hold no data."""
    result = []
    for step in (-1, 1):
        target = shift(moment, interval_type, step, billing_day)
        period = boundary(target, interval_type, billing_day)
        allowed = period.overlaps_with_data(min_date, max_date) and not period.is_after_data(max_date)
        result.append(target if allowed else None)
    return result[0], result[1]


def _short(day: date, with_year: bool) -> str:
    return f"{day.day} {day:%b %Y}" if with_year else f"{day.day} {day:%b}"


def format_range(first_day: date, last_day: date) -> str:
    """Format an inclusive day range, showing the year once unless it changes."""
    if first_day.year == last_day.year:
        return f"{_short(first_day, False)} - {_short(last_day, True)}"
    return f"{_short(first_day, True)} - {_short(last_day, True)}"


def period_label(period: IntervalBoundary, interval_type: IntervalType | str, billing_day: int = 1) -> str:
    """Human readable label for a period (English month names)."""
    interval_type = IntervalType.parse(interval_type)
    first_day = period.start.date()
    last_day = (period.end - timedelta(days=1)).date()

    if interval_type is IntervalType.DAILY:
        return f"{first_day.day} {first_day:%B %Y}"
    if interval_type is IntervalType.WEEKLY:
        return format_range(first_day, last_day)
    if billing_day == 1:
        if interval_type is IntervalType.MONTHLY:
            return f"{first_day:%B %Y}"
        return f"{first_day:%B} - {last_day:%B %Y}"
    return format_range(first_day, last_day)
