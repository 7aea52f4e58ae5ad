"""Tests for the compensation calculator."""

from decimal import Decimal
from uuid import uuid4

import pytest

from cleaning_finance.calculators import CompensationCalculator, CompensationModel, CompensationTerms
from cleaning_finance.errors import ConfigurationError
from cleaning_finance.models import WorkerCompensationProfile


def profile(model: str, **rates) -> WorkerCompensationProfile:
    return WorkerCompensationProfile(
        tenant_id=uuid4(),
        worker_id=uuid4(),
        compensation_model=model,
        **rates,
    )


@pytest.fixture
def calculator() -> CompensationCalculator:
    return CompensationCalculator(default_hourly_rate=Decimal("15.00"))


class TestResolveTerms:
    """Picking the model and rate from a worker's profile."""

    def test_missing_profile_uses_default_hourly(self, calculator):
        """No profile falls back to the default hourly rate."""
        terms = calculator.resolve_terms(None)
        assert terms == CompensationTerms(CompensationModel.HOURLY, Decimal("15.00"))

    def test_hourly_profile_without_rate_uses_default(self, calculator):
        terms = calculator.resolve_terms(profile("hourly"))
        assert terms.rate == Decimal("15.00")

    def test_fixed_profile(self, calculator):
        terms = calculator.resolve_terms(profile("fixed", fixed_amount_per_job=Decimal("60.00")))
        assert terms.model == CompensationModel.FIXED
        assert terms.rate == Decimal("60.00")

    def test_percentage_without_rate_is_configuration_error(self, calculator):
        """A non-hourly model never silently falls back."""
        with pytest.raises(ConfigurationError) as exc_info:
            calculator.resolve_terms(profile("percentage"))
        assert exc_info.value.setting == "percentage_rate"

    def test_unknown_model_is_configuration_error(self, calculator):
        with pytest.raises(ConfigurationError):
            calculator.resolve_terms(profile("commission"))


class TestCalculate:
    """Amount due for one job."""

    def test_hourly(self, calculator):
        """2 hours at 25.00 is 50.00."""
        terms = CompensationTerms(CompensationModel.HOURLY, Decimal("25.00"))
        result = calculator.calculate(terms, Decimal("2"), Decimal("100.00"))

        assert result.amount_due == Decimal("50.00")
        assert result.hours_worked == Decimal("2.00")
        assert result.rate == Decimal("25.00")

    def test_hourly_partial_hours_round_half_up(self, calculator):
        """1h25m at 17.00 is 24.0833... which rounds to 24.08."""
        terms = CompensationTerms(CompensationModel.HOURLY, Decimal("17.00"))
        result = calculator.calculate(terms, Decimal(85) / Decimal(60), None)
        assert result.amount_due == Decimal("24.08")

    def test_fixed_ignores_hours_and_total(self, calculator):
        terms = CompensationTerms(CompensationModel.FIXED, Decimal("60.00"))
        result = calculator.calculate(terms, Decimal("7.5"), Decimal("300.00"))
        assert result.amount_due == Decimal("60.00")

    def test_percentage_of_job_total(self, calculator):
        """40% of 120.50 is 48.20."""
        terms = CompensationTerms(CompensationModel.PERCENTAGE, Decimal("40"))
        result = calculator.calculate(terms, Decimal("2"), Decimal("120.50"))
        assert result.amount_due == Decimal("48.20")
        assert result.job_total == Decimal("120.50")

    def test_percentage_without_total_fails(self, calculator):
        terms = CompensationTerms(CompensationModel.PERCENTAGE, Decimal("40"))
        with pytest.raises(ConfigurationError):
            calculator.calculate(terms, Decimal("2"), None)

    def test_zero_hours_is_zero(self, calculator):
        terms = CompensationTerms(CompensationModel.HOURLY, Decimal("25.00"))
        result = calculator.calculate(terms, Decimal("0"), None)
        assert result.amount_due == Decimal("0.00")

    @pytest.mark.parametrize(
        "hours,rate,total",
        [
            (Decimal("-1"), Decimal("25"), Decimal("100")),
            (Decimal("1"), Decimal("-25"), Decimal("100")),
            (Decimal("1"), Decimal("25"), Decimal("-100")),
        ],
    )
    def test_negative_inputs_rejected(self, calculator, hours, rate, total):
        terms = CompensationTerms(CompensationModel.HOURLY, rate)
        with pytest.raises(ConfigurationError):
            calculator.calculate(terms, hours, total)
