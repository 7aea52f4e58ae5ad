"""Statutory pension and unemployment contributions with annual caps."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from cleaning_finance.calculators.types import ZERO, quantize_money

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ContributionConfig:
    """Employee contribution rates (percent) and annual caps for one tax year."""

    tax_year: int
    pension_employee_rate: Decimal
    pension_employer_rate: Decimal
    pension_max_contribution: Decimal
    unemployment_employee_rate: Decimal
    unemployment_employer_rate: Decimal
    unemployment_max_contribution: Decimal

    @classmethod
    def defaults(cls, tax_year: int) -> ContributionConfig:
        """Documented fallback rates."""
        return cls(
            tax_year=tax_year,
            pension_employee_rate=Decimal("5.95"),
            pension_employer_rate=Decimal("5.95"),
            pension_max_contribution=Decimal("3867.50"),
            unemployment_employee_rate=Decimal("1.58"),
            unemployment_employer_rate=Decimal("2.21"),
            unemployment_max_contribution=Decimal("1049.12"),
        )


@dataclass(frozen=True)
class ContributionResult:
    """Deductions for one worker in one period."""

    pension: Decimal
    unemployment: Decimal

    @property
    def total(self) -> Decimal:
        return self.pension + self.unemployment


def capped_contribution(
    gross: Decimal,
    rate_percent: Decimal,
    annual_max: Decimal,
    year_to_date: Decimal,
) -> Decimal:
    """``gross * rate`` limited to what is left under the annual maximum."""
    if gross <= ZERO:
        return ZERO
    amount = quantize_money(gross * rate_percent / HUNDRED)
    remaining = annual_max - year_to_date
    if remaining <= ZERO:
        return ZERO
    return min(amount, remaining)


def calculate_contributions(
    gross: Decimal,
    config: ContributionConfig,
    pension_ytd: Decimal = ZERO,
    unemployment_ytd: Decimal = ZERO,
) -> ContributionResult:
    """Employee deductions for one period's gross pay."""
    return ContributionResult(
        pension=capped_contribution(
            gross,
            config.pension_employee_rate,
            config.pension_max_contribution,
            pension_ytd,
        ),
        unemployment=capped_contribution(
            gross,
            config.unemployment_employee_rate,
            config.unemployment_max_contribution,
            unemployment_ytd,
        ),
    )
