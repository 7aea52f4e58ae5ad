"""Tenant and tenant configuration models."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cleaning_finance.models.base import Base, TimestampMixin


class Tenant(Base, TimestampMixin):
    """One company account. Every other row is scoped to exactly one tenant."""

    __tablename__ = "tenant"

    tenant_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        CheckConstraint("status IN ('active', 'suspended', 'closed')", name="tenant_status_check"),
    )


class TenantSettings(Base, TimestampMixin):
    """Financial configuration for a tenant.

    Nullable columns fall back to process-wide defaults at read time.
    """

    __tablename__ = "tenant_settings"

    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        primary_key=True,
    )
    tax_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    invoice_generation_mode: Mapped[str] = mapped_column(String, nullable=False, default="automatic")
    default_hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    pay_frequency: Mapped[str] = mapped_column(String, nullable=False, default="biweekly")
    period_boundary_rule: Mapped[str] = mapped_column(String, nullable=False, default="pay_frequency")
    jurisdiction_code: Mapped[str | None] = mapped_column(String(2), nullable=True)
    invoice_due_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    route_office_cash_through_payroll: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    auto_send_cash_receipt: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(
            "invoice_generation_mode IN ('automatic', 'manual')",
            name="tenant_settings_invoice_mode_check",
        ),
        CheckConstraint(
            "pay_frequency IN ('weekly', 'biweekly', 'semimonthly', 'monthly')",
            name="tenant_settings_pay_frequency_check",
        ),
        CheckConstraint(
            "period_boundary_rule IN ('pay_frequency', 'monday_biweekly')",
            name="tenant_settings_boundary_rule_check",
        ),
        CheckConstraint("tax_rate IS NULL OR tax_rate >= 0", name="tenant_settings_tax_rate_check"),
    )


class StatutoryContributionRate(Base, TimestampMixin):
    """Pension and unemployment contribution rates for one tax year.

    Rates are percentages; maximums are annual per-worker employee caps.
    """

    __tablename__ = "statutory_contribution_rate"

    rate_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    pension_employee_rate: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    pension_employer_rate: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    pension_max_contribution: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    unemployment_employee_rate: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    unemployment_employer_rate: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    unemployment_max_contribution: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "tax_year", name="statutory_rate_tenant_year_unique"),
    )
