"""Compensation entry and cash custody models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from cleaning_finance.models.base import Base, TimestampMixin


class CompensationEntry(Base, TimestampMixin):
    """Amount owed to a worker for one completed job.

    The model and rate are snapshots taken at computation time and are
    never recomputed when the profile changes.
    """

    __tablename__ = "compensation_entry"

    entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    job_id: Mapped[UUID] = mapped_column(
        ForeignKey("job.job_id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_id: Mapped[UUID] = mapped_column(nullable=False)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    compensation_model: Mapped[str] = mapped_column(String, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    hours_worked: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    job_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    amount_due: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")

    # Cash custody consequence
    cash_custody_record_id: Mapped[UUID | None] = mapped_column(nullable=True)
    deduct_from_payroll: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cash_deduction_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    paid_out_of_band: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    payroll_period_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_period.period_id"),
        nullable=True,
        index=True,
    )
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("job_id", "worker_id", name="compensation_entry_job_worker_unique"),
        CheckConstraint(
            "compensation_model IN ('hourly', 'fixed', 'percentage')",
            name="compensation_entry_model_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'pending_admin_approval', 'pending_handover', "
            "'approved', 'paid', 'rejected')",
            name="compensation_entry_status_check",
        ),
        CheckConstraint("amount_due >= 0", name="compensation_entry_amount_check"),
    )


class CashCustodyRecord(Base, TimestampMixin):
    """Where collected cash physically is, and what payroll must do about it."""

    __tablename__ = "cash_custody_record"

    record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    job_id: Mapped[UUID] = mapped_column(
        ForeignKey("job.job_id", ondelete="CASCADE"),
        nullable=False,
    )
    compensation_entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("compensation_entry.entry_id"),
        nullable=True,
    )
    worker_id: Mapped[UUID | None] = mapped_column(nullable=True)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    received_by: Mapped[str | None] = mapped_column(String, nullable=True)
    custody_state: Mapped[str] = mapped_column(String, nullable=False, default="open")
    held_by: Mapped[str | None] = mapped_column(String, nullable=True)
    compensation_consequence: Mapped[str] = mapped_column(String, nullable=False, default="none")

    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    disputed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "job_id", name="cash_custody_job_unique"),
        CheckConstraint(
            "custody_state IN ('open', 'kept_by_worker', 'handed_to_office', "
            "'pending_admin_approval', 'approved', 'rejected', 'resolved')",
            name="cash_custody_state_check",
        ),
        CheckConstraint("held_by IS NULL OR held_by IN ('worker', 'office')", name="cash_custody_held_by_check"),
        CheckConstraint(
            "compensation_consequence IN ('none', 'deduct')",
            name="cash_custody_consequence_check",
        ),
        CheckConstraint("amount >= 0", name="cash_custody_amount_check"),
    )
