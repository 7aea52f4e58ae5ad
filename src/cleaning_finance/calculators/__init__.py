"""Pure calculators for compensation, overtime, contributions and periods."""

from cleaning_finance.calculators.compensation import CompensationCalculator
from cleaning_finance.calculators.contributions import (
    ContributionConfig,
    ContributionResult,
    calculate_contributions,
)
from cleaning_finance.calculators.overtime import OvertimeRule, get_overtime_rule, split_overtime
from cleaning_finance.calculators.period_calendar import next_period_bounds
from cleaning_finance.calculators.types import (
    CompensationModel,
    CompensationResult,
    CompensationTerms,
    PayFrequency,
    PeriodBoundaryRule,
    PeriodBounds,
    quantize_hours,
    quantize_money,
)

__all__ = [
    "CompensationCalculator",
    "CompensationModel",
    "CompensationResult",
    "CompensationTerms",
    "ContributionConfig",
    "ContributionResult",
    "OvertimeRule",
    "PayFrequency",
    "PeriodBoundaryRule",
    "PeriodBounds",
    "calculate_contributions",
    "get_overtime_rule",
    "next_period_bounds",
    "quantize_hours",
    "quantize_money",
    "split_overtime",
]
