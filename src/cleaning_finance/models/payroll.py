"""Payroll period and per-worker payroll entry models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from cleaning_finance.models.base import Base, TimestampMixin

ZERO = Decimal("0")


class PayrollPeriod(Base, TimestampMixin):
    """A payroll date range and its aggregated totals."""

    __tablename__ = "payroll_period"

    period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    period_type: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")

    total_hours: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=ZERO)
    total_regular_hours: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=ZERO)
    total_overtime_hours: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=ZERO)
    total_gross: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    total_net: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)

    notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notification_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    aggregated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_by: Mapped[UUID | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    pay_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'approved', 'paid')",
            name="payroll_period_status_check",
        ),
        CheckConstraint(
            "period_type IN ('weekly', 'biweekly', 'semimonthly', 'monthly')",
            name="payroll_period_type_check",
        ),
        CheckConstraint("end_date >= start_date", name="payroll_period_dates_check"),
        # At most one active period per tenant
        Index(
            "payroll_period_one_active",
            "tenant_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'in_progress')"),
            sqlite_where=text("status IN ('pending', 'in_progress')"),
        ),
    )


class PayrollEntry(Base, TimestampMixin):
    """One worker's aggregated pay for a payroll period."""

    __tablename__ = "payroll_entry"

    payroll_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    worker_id: Mapped[UUID] = mapped_column(nullable=False)
    jurisdiction_code: Mapped[str] = mapped_column(String(2), nullable=False)

    total_hours: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=ZERO)
    regular_hours: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=ZERO)
    overtime_hours: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=ZERO)
    hourly_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    overtime_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    other_earnings: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    gross_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    pension_deduction: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    unemployment_deduction: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    cash_deductions: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)
    entry_count: Mapped[int] = mapped_column(nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("period_id", "worker_id", name="payroll_entry_period_worker_unique"),
    )
