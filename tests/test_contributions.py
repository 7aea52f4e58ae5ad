"""Tests for statutory contributions with annual caps."""

from decimal import Decimal

from cleaning_finance.calculators import ContributionConfig, calculate_contributions


class TestContributions:
    """Pension and unemployment withholding."""

    config = ContributionConfig.defaults(2024)

    def test_uncapped(self):
        result = calculate_contributions(Decimal("1000.00"), self.config)
        assert result.pension == Decimal("59.50")
        assert result.unemployment == Decimal("15.80")
        assert result.total == Decimal("75.30")

    def test_rounding_half_up(self):
        result = calculate_contributions(Decimal("333.33"), self.config)
        assert result.pension == Decimal("19.83")
        assert result.unemployment == Decimal("5.27")

    def test_capped_at_remaining_room(self):
        """Only what is left under the annual maximum is withheld."""
        result = calculate_contributions(
            Decimal("1000.00"),
            self.config,
            pension_ytd=Decimal("3840.00"),
            unemployment_ytd=Decimal("1040.00"),
        )
        assert result.pension == Decimal("27.50")
        assert result.unemployment == Decimal("9.12")

    def test_nothing_once_maximum_reached(self):
        result = calculate_contributions(
            Decimal("1000.00"),
            self.config,
            pension_ytd=Decimal("3867.50"),
            unemployment_ytd=Decimal("2000.00"),
        )
        assert result.pension == Decimal("0")
        assert result.unemployment == Decimal("0")

    def test_zero_gross(self):
        result = calculate_contributions(Decimal("0"), self.config)
        assert result.total == Decimal("0")
