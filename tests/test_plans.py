"""
Unit tests for plan catalog and calendar month arithmetic
"""
from datetime import datetime, timezone

from services.plans import add_months, normalize_plan, plan_expiry
from tests.conftest import ms


def _date(value):
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def test_monthly_from_jan_31_clamps_to_end_of_february():
    end = _date(plan_expiry("monthly", ms(2024, 1, 31, 15, 30)))
    assert (end.year, end.month, end.day) == (2024, 2, 29)  # leap year
    assert (end.hour, end.minute) == (15, 30)

    end = _date(plan_expiry("monthly", ms(2023, 1, 31)))
    assert (end.year, end.month, end.day) == (2023, 2, 28)


def test_quarterly_and_annual_cross_year_boundaries():
    end = _date(plan_expiry("quarterly", ms(2023, 11, 30)))
    assert (end.year, end.month, end.day) == (2024, 2, 29)

    end = _date(plan_expiry("annual", ms(2024, 2, 29)))
    assert (end.year, end.month, end.day) == (2025, 2, 28)


def test_lifetime_has_no_expiry():
    assert plan_expiry("lifetime", ms(2024, 1, 1)) is None


def test_add_months_preserves_milliseconds():
    start = ms(2024, 3, 15) + 123
    assert add_months(start, 1) % 1000 == 123


def test_unknown_plan_defaults_to_monthly():
    assert normalize_plan(None) == "monthly"
    assert normalize_plan("weekly") == "monthly"
    assert normalize_plan("annual") == "annual"
