"""Type definitions shared by the calculators."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

CENT = Decimal("0.01")
HOUR_PRECISION = Decimal("0.0001")
ZERO = Decimal("0")


def quantize_money(value: Decimal) -> Decimal:
    """Round to the currency's minor unit, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_hours(value: Decimal) -> Decimal:
    """Round worked hours to the precision they are stored at.

    Pay is always computed from the stored hours so that a job's amount due
    and the payroll line built from it agree to the cent.
    """
    return value.quantize(HOUR_PRECISION, rounding=ROUND_HALF_UP)


class CompensationModel(str, Enum):
    """How a worker is paid for a job."""

    HOURLY = "hourly"
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class PayFrequency(str, Enum):
    """Payroll period lengths."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    SEMIMONTHLY = "semimonthly"
    MONTHLY = "monthly"


class PeriodBoundaryRule(str, Enum):
    """How the next payroll period's boundaries are derived."""

    PAY_FREQUENCY = "pay_frequency"
    MONDAY_BIWEEKLY = "monday_biweekly"


@dataclass(frozen=True)
class CompensationTerms:
    """Model and rate snapshotted from a worker's profile."""

    model: CompensationModel
    rate: Decimal


@dataclass(frozen=True)
class CompensationResult:
    """Amount owed for one job, with the inputs it was computed from."""

    model: CompensationModel
    rate: Decimal
    hours_worked: Decimal
    job_total: Decimal
    amount_due: Decimal


@dataclass(frozen=True)
class PeriodBounds:
    """Inclusive date range for a payroll period."""

    start_date: date
    end_date: date
    period_type: PayFrequency

    @property
    def name(self) -> str:
        return f"{self.start_date.isoformat()} - {self.end_date.isoformat()}"
