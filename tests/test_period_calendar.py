"""Tests for payroll period boundary rules."""

from datetime import date

import pytest

from cleaning_finance.calculators import PayFrequency, PeriodBoundaryRule, next_period_bounds


def bounds(reference: date, frequency: PayFrequency, rule=PeriodBoundaryRule.PAY_FREQUENCY):
    result = next_period_bounds(reference, rule, frequency)
    return result.start_date, result.end_date


class TestPayFrequencyRule:
    """Period starts on the reference date."""

    def test_weekly(self):
        assert bounds(date(2024, 3, 12), PayFrequency.WEEKLY) == (date(2024, 3, 12), date(2024, 3, 18))

    def test_biweekly(self):
        assert bounds(date(2024, 3, 12), PayFrequency.BIWEEKLY) == (date(2024, 3, 12), date(2024, 3, 25))

    @pytest.mark.parametrize(
        "reference,expected_end",
        [
            (date(2024, 3, 1), date(2024, 3, 15)),
            (date(2024, 3, 16), date(2024, 3, 31)),
            (date(2024, 2, 16), date(2024, 2, 29)),
        ],
    )
    def test_semimonthly_halves(self, reference, expected_end):
        assert bounds(reference, PayFrequency.SEMIMONTHLY) == (reference, expected_end)

    def test_monthly_from_first(self):
        assert bounds(date(2024, 4, 1), PayFrequency.MONTHLY) == (date(2024, 4, 1), date(2024, 4, 30))

    def test_monthly_mid_month_clamps_short_month(self):
        """Jan 31 + one month clamps to Feb 29, so the period ends Feb 28."""
        assert bounds(date(2024, 1, 31), PayFrequency.MONTHLY) == (date(2024, 1, 31), date(2024, 2, 28))


class TestMondayBiweeklyRule:
    """Fourteen days from the Monday on or before the reference date."""

    def test_aligns_to_monday(self):
        result = next_period_bounds(
            date(2024, 3, 13), PeriodBoundaryRule.MONDAY_BIWEEKLY, PayFrequency.MONTHLY
        )
        assert result.start_date == date(2024, 3, 11)
        assert result.end_date == date(2024, 3, 24)
        assert result.period_type == PayFrequency.BIWEEKLY
        assert result.name == "2024-03-11 - 2024-03-24"

    def test_monday_reference_is_kept(self):
        start, end = bounds(date(2024, 3, 11), PayFrequency.WEEKLY, PeriodBoundaryRule.MONDAY_BIWEEKLY)
        assert start == date(2024, 3, 11)
        assert end == date(2024, 3, 24)

    def test_rules_disagree_for_unaligned_tenants(self):
        reference = date(2024, 3, 13)
        assert bounds(reference, PayFrequency.BIWEEKLY) != bounds(
            reference, PayFrequency.BIWEEKLY, PeriodBoundaryRule.MONDAY_BIWEEKLY
        )
