"""Tests for daily and weekly overtime splitting."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from cleaning_finance.calculators import get_overtime_rule, split_overtime
from cleaning_finance.calculators.overtime import allocate_overtime, iso_week, regular_hours_by_week
from cleaning_finance.errors import ConfigurationError

MONDAY = date(2024, 3, 11)


def week(hours_per_day: list[str], start: date = MONDAY) -> list[tuple[date, Decimal]]:
    return [(start + timedelta(days=i), Decimal(h)) for i, h in enumerate(hours_per_day)]


def totals(days) -> tuple[Decimal, Decimal]:
    return (
        sum((d.regular_hours for d in days), Decimal("0")),
        sum((d.overtime_hours for d in days), Decimal("0")),
    )


class TestRules:
    """Rule lookup per jurisdiction."""

    def test_lookup_is_case_insensitive(self):
        rule = get_overtime_rule("on")
        assert rule.jurisdiction_code == "ON"
        assert rule.weekly_threshold == Decimal("44")
        assert not rule.has_daily_rule

    def test_daily_rule_region(self):
        rule = get_overtime_rule("AB")
        assert rule.has_daily_rule
        assert rule.daily_threshold == Decimal("8")

    def test_unknown_region(self):
        with pytest.raises(ConfigurationError):
            get_overtime_rule("ZZ")


class TestDailyThreshold:
    """First pass: per-day cut."""

    def test_ten_hour_day_with_daily_rule(self):
        """10 hours under an 8/44 rule is 8 regular and 2 overtime."""
        days = split_overtime(week(["10"]), get_overtime_rule("AB"))
        assert days[0].regular_hours == Decimal("8")
        assert days[0].overtime_hours == Decimal("2")

    def test_ten_hour_day_without_daily_rule(self):
        days = split_overtime(week(["10"]), get_overtime_rule("ON"))
        assert days[0].regular_hours == Decimal("10")
        assert days[0].overtime_hours == Decimal("0")

    def test_same_day_items_are_merged(self):
        worked = [(MONDAY, Decimal("6")), (MONDAY, Decimal("4"))]
        days = split_overtime(worked, get_overtime_rule("AB"))
        assert len(days) == 1
        assert days[0].hours == Decimal("10")
        assert days[0].overtime_hours == Decimal("2")


class TestWeeklyThreshold:
    """Second pass: accumulated regular hours per ISO week."""

    def test_sixth_day_crosses_weekly_threshold(self):
        """Six 8-hour days in Ontario: the last 4 hours are overtime."""
        days = split_overtime(week(["8"] * 6), get_overtime_rule("ON"))
        assert totals(days) == (Decimal("44"), Decimal("4"))
        assert days[-1].regular_hours == Decimal("4")
        assert days[-1].overtime_hours == Decimal("4")

    def test_daily_overtime_does_not_count_toward_week(self):
        """Five 9-hour days at 8/44: daily overtime 5, regular 40, no weekly excess."""
        days = split_overtime(week(["9"] * 5), get_overtime_rule("AB"))
        assert totals(days) == (Decimal("40"), Decimal("5"))

    def test_both_rules_apply(self):
        """Adding an 8-hour Saturday pushes 4 more hours over 44."""
        days = split_overtime(week(["9"] * 5 + ["8"]), get_overtime_rule("AB"))
        assert totals(days) == (Decimal("44"), Decimal("9"))

    def test_weeks_are_counted_separately(self):
        """Two 40-hour weeks never reach a 44-hour threshold."""
        worked = week(["8"] * 5) + week(["8"] * 5, start=MONDAY + timedelta(days=7))
        days = split_overtime(worked, get_overtime_rule("ON"))
        assert totals(days) == (Decimal("80"), Decimal("0"))

    def test_input_order_does_not_matter(self):
        worked = list(reversed(week(["8"] * 6)))
        days = split_overtime(worked, get_overtime_rule("ON"))
        assert days[0].work_date == MONDAY
        assert days[-1].overtime_hours == Decimal("4")

    def test_prior_regular_hours_count_toward_week(self):
        """40 regular hours already paid this week leave 4 before the threshold."""
        wednesday = MONDAY + timedelta(days=2)
        days = split_overtime(
            [(wednesday, Decimal("10"))],
            get_overtime_rule("ON"),
            {iso_week(wednesday): Decimal("40")},
        )
        assert totals(days) == (Decimal("4"), Decimal("6"))

    def test_prior_hours_from_another_week_are_ignored(self):
        days = split_overtime(
            [(MONDAY, Decimal("10"))],
            get_overtime_rule("ON"),
            {iso_week(MONDAY - timedelta(days=1)): Decimal("44")},
        )
        assert totals(days) == (Decimal("10"), Decimal("0"))

    def test_regular_hours_by_week(self):
        days = split_overtime(week(["8"] * 6), get_overtime_rule("ON"))
        assert regular_hours_by_week(days) == {iso_week(MONDAY): Decimal("44")}


class TestAllocation:
    """Spreading a day's overtime back over its jobs."""

    def test_latest_item_absorbs_overtime_first(self):
        items = [(MONDAY, Decimal("6")), (MONDAY, Decimal("4"))]
        days = split_overtime(items, get_overtime_rule("AB"))
        allocated = allocate_overtime(items, days)
        assert allocated == [
            (Decimal("6"), Decimal("0")),
            (Decimal("2"), Decimal("2")),
        ]

    def test_overtime_spills_into_earlier_items(self):
        items = [(MONDAY, Decimal("7")), (MONDAY, Decimal("1")), (MONDAY, Decimal("2"))]
        days = split_overtime(items, get_overtime_rule("BC"))
        allocated = allocate_overtime(items, days)
        assert sum((o for _, o in allocated), Decimal("0")) == Decimal("2")
        assert allocated[2] == (Decimal("0"), Decimal("2"))
        assert allocated[1] == (Decimal("1"), Decimal("0"))
