"""Read-only access to tenant financial configuration.

Configuration is read fresh on every call; nothing is cached between
invocations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_finance.calculators.contributions import ContributionConfig
from cleaning_finance.calculators.overtime import OvertimeRule, get_overtime_rule
from cleaning_finance.calculators.types import PayFrequency, PeriodBoundaryRule
from cleaning_finance.config import Settings, get_settings
from cleaning_finance.errors import ConfigurationError
from cleaning_finance.models import StatutoryContributionRate, TenantSettings

logger = logging.getLogger(__name__)

INVOICE_MODES = ("automatic", "manual")


@dataclass(frozen=True)
class TenantConfig:
    """Resolved configuration for one tenant."""

    tenant_id: UUID
    tax_rate: Decimal
    invoice_generation_mode: str
    default_hourly_rate: Decimal
    pay_frequency: PayFrequency
    period_boundary_rule: PeriodBoundaryRule
    jurisdiction_code: str
    invoice_due_days: int
    currency: str
    route_office_cash_through_payroll: bool
    auto_send_cash_receipt: bool

    @property
    def is_automatic_invoicing(self) -> bool:
        return self.invoice_generation_mode == "automatic"

    @property
    def overtime_rule(self) -> OvertimeRule:
        return get_overtime_rule(self.jurisdiction_code)


class TenantConfigService:
    """Resolve tenant settings, falling back to documented defaults."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()

    async def get_config(self, tenant_id: UUID) -> TenantConfig:
        """Load and validate a tenant's configuration.

        Raises:
            ConfigurationError: a stored value is not one the engine understands.
        """
        row = await self.session.get(TenantSettings, tenant_id)
        defaults = self.settings

        if row is None:
            logger.warning("Tenant %s has no settings; using system defaults", tenant_id)
            return TenantConfig(
                tenant_id=tenant_id,
                tax_rate=defaults.default_tax_rate,
                invoice_generation_mode="automatic",
                default_hourly_rate=defaults.default_hourly_rate,
                pay_frequency=PayFrequency.BIWEEKLY,
                period_boundary_rule=PeriodBoundaryRule.PAY_FREQUENCY,
                jurisdiction_code=defaults.default_jurisdiction,
                invoice_due_days=defaults.default_invoice_due_days,
                currency=defaults.default_currency,
                route_office_cash_through_payroll=True,
                auto_send_cash_receipt=False,
            )

        tax_rate = row.tax_rate
        if tax_rate is None:
            logger.warning(
                "Tenant %s has no tax rate; using default %s", tenant_id, defaults.default_tax_rate
            )
            tax_rate = defaults.default_tax_rate
        elif tax_rate < 0:
            raise ConfigurationError("tax_rate", f"negative rate {tax_rate}")

        hourly_rate = row.default_hourly_rate
        if hourly_rate is None:
            hourly_rate = defaults.default_hourly_rate

        if row.invoice_generation_mode not in INVOICE_MODES:
            raise ConfigurationError(
                "invoice_generation_mode", f"unknown mode '{row.invoice_generation_mode}'"
            )
        try:
            frequency = PayFrequency(row.pay_frequency)
        except ValueError:
            raise ConfigurationError("pay_frequency", f"unknown frequency '{row.pay_frequency}'")
        try:
            boundary_rule = PeriodBoundaryRule(row.period_boundary_rule)
        except ValueError:
            raise ConfigurationError(
                "period_boundary_rule", f"unknown rule '{row.period_boundary_rule}'"
            )

        jurisdiction = (row.jurisdiction_code or defaults.default_jurisdiction).upper()
        # Fail early on a region we have no overtime rule for
        get_overtime_rule(jurisdiction)

        due_days = row.invoice_due_days
        if due_days is None:
            due_days = defaults.default_invoice_due_days
        elif due_days < 0:
            raise ConfigurationError("invoice_due_days", f"negative offset {due_days}")

        return TenantConfig(
            tenant_id=tenant_id,
            tax_rate=tax_rate,
            invoice_generation_mode=row.invoice_generation_mode,
            default_hourly_rate=hourly_rate,
            pay_frequency=frequency,
            period_boundary_rule=boundary_rule,
            jurisdiction_code=jurisdiction,
            invoice_due_days=due_days,
            currency=row.currency or defaults.default_currency,
            route_office_cash_through_payroll=row.route_office_cash_through_payroll,
            auto_send_cash_receipt=row.auto_send_cash_receipt,
        )

    async def get_contribution_config(self, tenant_id: UUID, tax_year: int) -> ContributionConfig:
        """Statutory contribution rates for a year, or the documented defaults."""
        result = await self.session.execute(
            select(StatutoryContributionRate).where(
                StatutoryContributionRate.tenant_id == tenant_id,
                StatutoryContributionRate.tax_year == tax_year,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            logger.warning(
                "Tenant %s has no contribution rates for %s; using defaults", tenant_id, tax_year
            )
            return ContributionConfig.defaults(tax_year)

        return ContributionConfig(
            tax_year=row.tax_year,
            pension_employee_rate=row.pension_employee_rate,
            pension_employer_rate=row.pension_employer_rate,
            pension_max_contribution=row.pension_max_contribution,
            unemployment_employee_rate=row.unemployment_employee_rate,
            unemployment_employer_rate=row.unemployment_employer_rate,
            unemployment_max_contribution=row.unemployment_max_contribution,
        )
