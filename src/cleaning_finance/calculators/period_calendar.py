"""Payroll period boundary rules.

Two rules exist and a tenant must pick one explicitly:

- ``pay_frequency``: the period starts on the reference date and spans the
  configured frequency.
- ``monday_biweekly``: the period starts on the Monday on or before the
  reference date and spans 14 days, whatever the pay frequency.

They disagree for tenants that are not Monday-aligned or not biweekly.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta

from cleaning_finance.calculators.types import PayFrequency, PeriodBoundaryRule, PeriodBounds
from cleaning_finance.errors import ConfigurationError


def _last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def period_by_frequency(start: date, frequency: PayFrequency) -> PeriodBounds:
    """Period beginning on ``start`` sized by pay frequency."""
    if frequency == PayFrequency.WEEKLY:
        end = start + timedelta(days=6)
    elif frequency == PayFrequency.BIWEEKLY:
        end = start + timedelta(days=13)
    elif frequency == PayFrequency.SEMIMONTHLY:
        # Halves are 1st-15th and 16th-end of month
        if start.day <= 15:
            end = date(start.year, start.month, 15)
        else:
            end = _last_day_of_month(start.year, start.month)
    elif frequency == PayFrequency.MONTHLY:
        if start.day == 1:
            end = _last_day_of_month(start.year, start.month)
        else:
            end = _add_months(start, 1) - timedelta(days=1)
    else:
        raise ConfigurationError("pay_frequency", f"unknown frequency '{frequency}'")
    return PeriodBounds(start_date=start, end_date=end, period_type=frequency)


def monday_biweekly_period(reference: date) -> PeriodBounds:
    """Fourteen-day period starting on the Monday on or before ``reference``."""
    start = reference - timedelta(days=reference.weekday())
    return PeriodBounds(
        start_date=start,
        end_date=start + timedelta(days=13),
        period_type=PayFrequency.BIWEEKLY,
    )


def next_period_bounds(
    reference: date,
    rule: PeriodBoundaryRule,
    frequency: PayFrequency,
) -> PeriodBounds:
    """Bounds of the period that should contain ``reference``."""
    if rule == PeriodBoundaryRule.MONDAY_BIWEEKLY:
        return monday_biweekly_period(reference)
    if rule == PeriodBoundaryRule.PAY_FREQUENCY:
        return period_by_frequency(reference, frequency)
    raise ConfigurationError("period_boundary_rule", f"unknown rule '{rule}'")
