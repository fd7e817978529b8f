from datetime import datetime, timezone

import pytest
from tariffcalc.errors import InvalidBillingDay
from tariffcalc.models import IntervalBoundary, IntervalType
from tariffcalc.periods import anchor_date, boundary, neighbours, period_label, shift


def test_daily_boundary():
    period = boundary(datetime(2024, 1, 15, 13, 45), IntervalType.DAILY)
    assert period == IntervalBoundary(datetime(2024, 1, 15), datetime(2024, 1, 16))


def test_weekly_boundary_starts_monday():
    # 2024-01-17 is a Wednesday
    period = boundary(datetime(2024, 1, 17, 8), "weekly")
    assert period.start == datetime(2024, 1, 15)
    assert period.end == datetime(2024, 1, 22)
    assert period.start.weekday() == 0


def test_monthly_boundary_with_billing_day():
    """Feb 10 with billing day 15 falls in the period that started Jan 15."""
    period = boundary(datetime(2024, 2, 10), IntervalType.MONTHLY, billing_day=15)
    assert period == IntervalBoundary(datetime(2024, 1, 15), datetime(2024, 2, 15))


def test_monthly_boundary_on_anchor_day():
    period = boundary(datetime(2024, 2, 15), IntervalType.MONTHLY, billing_day=15)
    assert period == IntervalBoundary(datetime(2024, 2, 15), datetime(2024, 3, 15))


def test_monthly_boundary_clamps_short_months():
    """Billing day 31 clamps to the last day of February."""
    assert anchor_date(2024, 2, 31).day == 29
    assert anchor_date(2023, 2, 31).day == 28

    before = boundary(datetime(2024, 2, 10), IntervalType.MONTHLY, billing_day=31)
    assert before == IntervalBoundary(datetime(2024, 1, 31), datetime(2024, 2, 29))

    after = boundary(datetime(2024, 2, 29, 12), IntervalType.MONTHLY, billing_day=31)
    assert after == IntervalBoundary(datetime(2024, 2, 29), datetime(2024, 3, 31))


def test_quarterly_boundary():
    period = boundary(datetime(2024, 5, 10), IntervalType.QUARTERLY)
    assert period == IntervalBoundary(datetime(2024, 4, 1), datetime(2024, 7, 1))


def test_quarterly_boundary_with_billing_day():
    """Apr 10 is still in the billing month starting Mar 15, so the first quarter."""
    period = boundary(datetime(2024, 4, 10), IntervalType.QUARTERLY, billing_day=15)
    assert period == IntervalBoundary(datetime(2024, 1, 15), datetime(2024, 4, 15))


@pytest.mark.parametrize("interval_type", list(IntervalType))
@pytest.mark.parametrize("billing_day", [1, 15, 31])
def test_boundary_contains_moment_and_is_stable(interval_type, billing_day):
    moment = datetime(2024, 3, 31, 23, 59)
    period = boundary(moment, interval_type, billing_day)
    assert period.contains(moment)
    assert boundary(period.start, interval_type, billing_day) == period


def test_boundary_keeps_timezone():
    moment = datetime(2024, 1, 15, 10, tzinfo=timezone.utc)
    period = boundary(moment, IntervalType.DAILY)
    assert period.start == datetime(2024, 1, 15, tzinfo=timezone.utc)
    assert period.start.tzinfo is timezone.utc


@pytest.mark.parametrize("billing_day", [0, 32, -1])
def test_invalid_billing_day(billing_day):
    with pytest.raises(InvalidBillingDay):
        boundary(datetime(2024, 1, 1), IntervalType.MONTHLY, billing_day)


def test_invalid_billing_day_is_value_error():
    with pytest.raises(ValueError):
        boundary(datetime(2024, 1, 1), IntervalType.DAILY, 40)


def test_shift_monthly_across_year():
    assert shift(datetime(2024, 1, 20), IntervalType.MONTHLY, -1) == datetime(2023, 12, 1)
    assert shift(datetime(2024, 12, 20), IntervalType.MONTHLY, 1) == datetime(2025, 1, 1)


def test_shift_monthly_with_clamped_anchor():
    assert shift(datetime(2024, 1, 31), IntervalType.MONTHLY, 1, billing_day=31) == datetime(2024, 2, 29)
    assert shift(datetime(2024, 2, 29), IntervalType.MONTHLY, 1, billing_day=31) == datetime(2024, 3, 31)


def test_shift_daily_weekly_quarterly():
    assert shift(datetime(2024, 3, 1, 9), IntervalType.DAILY, -1) == datetime(2024, 2, 29)
    assert shift(datetime(2024, 1, 17), IntervalType.WEEKLY, 2) == datetime(2024, 1, 29)
    assert shift(datetime(2024, 2, 1), IntervalType.QUARTERLY, -1) == datetime(2023, 10, 1)
    assert shift(datetime(2024, 2, 1), IntervalType.QUARTERLY, 0) == datetime(2024, 1, 1)


def test_neighbours_limited_by_data():
    min_date, max_date = datetime(2024, 1, 1), datetime(2024, 1, 20)

    previous, following = neighbours(datetime(2024, 1, 10), IntervalType.DAILY, 1, min_date, max_date)
    assert previous == datetime(2024, 1, 9)
    assert following == datetime(2024, 1, 11)

    previous, following = neighbours(datetime(2024, 1, 10), IntervalType.MONTHLY, 1, min_date, max_date)
    assert previous is None
    assert following is None


def test_labels():
    assert period_label(boundary(datetime(2024, 1, 15), "daily"), "daily") == "15 January 2024"
    assert period_label(boundary(datetime(2025, 1, 22), "weekly"), "weekly") == "20 Jan - 26 Jan 2025"
    assert period_label(boundary(datetime(2024, 1, 15), "monthly"), "monthly") == "January 2024"
    assert period_label(boundary(datetime(2024, 2, 1), "quarterly"), "quarterly") == "January - March 2024"


def test_labels_across_year_and_billing_day():
    week = boundary(datetime(2025, 1, 2), IntervalType.WEEKLY)
    assert period_label(week, IntervalType.WEEKLY) == "30 Dec 2024 - 5 Jan 2025"

    month = boundary(datetime(2024, 2, 10), IntervalType.MONTHLY, billing_day=15)
    assert period_label(month, IntervalType.MONTHLY, billing_day=15) == "15 Jan - 14 Feb 2024"

    december = boundary(datetime(2024, 12, 20), IntervalType.MONTHLY, billing_day=15)
    assert period_label(december, IntervalType.MONTHLY, billing_day=15) == "15 Dec 2024 - 14 Jan 2025"
