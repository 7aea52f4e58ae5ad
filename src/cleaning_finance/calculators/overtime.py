"""Jurisdictional overtime rules and the daily/weekly split.

The split is two ordered passes over worked days: first each day is cut at
the daily threshold, then each ISO week's accumulated regular hours are
checked against the weekly threshold and the excess is moved to overtime.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping

from cleaning_finance.calculators.types import ZERO
from cleaning_finance.errors import ConfigurationError

# A daily threshold of 24 hours means the region has no daily rule.
NO_DAILY_RULE = Decimal("24")
DEFAULT_MULTIPLIER = Decimal("1.5")


@dataclass(frozen=True)
class OvertimeRule:
    """Overtime thresholds for one region."""

    jurisdiction_code: str
    daily_threshold: Decimal
    weekly_threshold: Decimal
    multiplier: Decimal = DEFAULT_MULTIPLIER

    @property
    def has_daily_rule(self) -> bool:
        return self.daily_threshold < NO_DAILY_RULE


def _rule(code: str, daily: str, weekly: str) -> OvertimeRule:
    return OvertimeRule(code, Decimal(daily), Decimal(weekly))


OVERTIME_RULES: dict[str, OvertimeRule] = {
    "ON": _rule("ON", "24", "44"),
    "QC": _rule("QC", "24", "40"),
    "BC": _rule("BC", "8", "40"),
    "AB": _rule("AB", "8", "44"),
    "MB": _rule("MB", "24", "40"),
    "SK": _rule("SK", "24", "40"),
    "NS": _rule("NS", "24", "48"),
    "NB": _rule("NB", "24", "44"),
    "NL": _rule("NL", "24", "40"),
    "PE": _rule("PE", "24", "48"),
    "NT": _rule("NT", "8", "40"),
    "YT": _rule("YT", "8", "40"),
    "NU": _rule("NU", "24", "40"),
}


def get_overtime_rule(jurisdiction_code: str) -> OvertimeRule:
    """Look up the rule for a jurisdiction code."""
    rule = OVERTIME_RULES.get(jurisdiction_code.upper())
    if rule is None:
        raise ConfigurationError(
            "jurisdiction_code", f"no overtime rule for '{jurisdiction_code}'"
        )
    return rule


IsoWeek = tuple[int, int]


def iso_week(value: date) -> IsoWeek:
    """(ISO year, ISO week number) of a date."""
    iso = value.isocalendar()
    return (iso[0], iso[1])


@dataclass
class DaySplit:
    """Regular/overtime hours for one worked day."""

    work_date: date
    hours: Decimal
    regular_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO


def merge_days(worked: Iterable[tuple[date, Decimal]]) -> list[DaySplit]:
    """Collapse (date, hours) pairs into one chronologically ordered row per day."""
    by_day: dict[date, Decimal] = OrderedDict()
    for work_date, hours in sorted(worked, key=lambda item: item[0]):
        by_day[work_date] = by_day.get(work_date, ZERO) + hours
    return [DaySplit(work_date=d, hours=h) for d, h in by_day.items()]


def split_overtime(
    worked: Iterable[tuple[date, Decimal]],
    rule: OvertimeRule,
    prior_regular_hours: Mapping[IsoWeek, Decimal] | None = None,
) -> list[DaySplit]:
    """Split worked hours into regular and overtime per day.

    ``prior_regular_hours`` holds regular hours already paid in each ISO
    week by earlier payroll periods; they count toward the weekly threshold.
    """
    days = merge_days(worked)

    # Pass 1: daily threshold
    for day in days:
        if rule.has_daily_rule and day.hours > rule.daily_threshold:
            day.regular_hours = rule.daily_threshold
            day.overtime_hours = day.hours - rule.daily_threshold
        else:
            day.regular_hours = day.hours
            day.overtime_hours = ZERO

    # Pass 2: weekly threshold over accumulated regular hours
    week_totals: dict[IsoWeek, Decimal] = dict(prior_regular_hours or {})
    for day in days:
        week = iso_week(day.work_date)
        accumulated = week_totals.get(week, ZERO)
        if accumulated + day.regular_hours > rule.weekly_threshold:
            excess = accumulated + day.regular_hours - rule.weekly_threshold
            moved = min(excess, day.regular_hours)
            day.regular_hours -= moved
            day.overtime_hours += moved
        week_totals[week] = accumulated + day.regular_hours

    return days


def regular_hours_by_week(days: Iterable[DaySplit]) -> dict[IsoWeek, Decimal]:
    """Sum of regular hours per ISO week."""
    totals: dict[IsoWeek, Decimal] = {}
    for day in days:
        week = iso_week(day.work_date)
        totals[week] = totals.get(week, ZERO) + day.regular_hours
    return totals


def allocate_overtime(
    items: list[tuple[date, Decimal]], days: list[DaySplit]
) -> list[tuple[Decimal, Decimal]]:
    """Distribute each day's overtime over that day's items, latest first.

    ``items`` must be in the order the work happened. Returns one
    (regular, overtime) pair per item, in input order.
    """
    remaining = {day.work_date: day.overtime_hours for day in days}
    result: list[tuple[Decimal, Decimal]] = [(ZERO, ZERO)] * len(items)
    for index in range(len(items) - 1, -1, -1):
        work_date, hours = items[index]
        overtime = min(hours, remaining.get(work_date, ZERO))
        remaining[work_date] = remaining.get(work_date, ZERO) - overtime
        result[index] = (hours - overtime, overtime)
    return result
