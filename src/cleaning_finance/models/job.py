"""Scheduled work and worker compensation profile models."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from cleaning_finance.models.base import Base, TimestampMixin


class Job(Base, TimestampMixin):
    """A unit of scheduled work.

    Scheduling owns the row. The finance engine only transitions its status
    and fills in the completion and payment fields.
    """

    __tablename__ = "job"

    job_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    worker_id: Mapped[UUID | None] = mapped_column(nullable=True)
    client_id: Mapped[UUID | None] = mapped_column(nullable=True)
    job_kind: Mapped[str] = mapped_column(String, nullable=False, default="service")
    is_billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    service_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="scheduled")

    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completion_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    after_photo_ref: Mapped[str | None] = mapped_column(String, nullable=True)

    # Payment fields, populated only at completion
    payment_method: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_received_by: Mapped[str | None] = mapped_column(String, nullable=True)
    cash_handling_choice: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("job_kind IN ('service', 'visit')", name="job_kind_check"),
        CheckConstraint(
            "status IN ('scheduled', 'in_progress', 'completed', 'cancelled')",
            name="job_status_check",
        ),
        CheckConstraint("duration_minutes >= 0", name="job_duration_check"),
        CheckConstraint(
            "cash_handling_choice IS NULL OR "
            "cash_handling_choice IN ('kept_by_worker', 'handed_to_office')",
            name="job_cash_handling_check",
        ),
    )

    @property
    def is_visit(self) -> bool:
        return self.job_kind == "visit"

    @property
    def has_payment(self) -> bool:
        return self.payment_method is not None

    @property
    def is_cash(self) -> bool:
        return self.payment_method == "cash"

    @property
    def hours_worked(self) -> Decimal:
        """Scheduled duration in hours."""
        return Decimal(self.duration_minutes) / Decimal(60)

    @property
    def billable_amount(self) -> Decimal | None:
        """Base amount before tax: the recorded payment, else the service price."""
        if self.payment_amount is not None:
            return self.payment_amount
        return self.service_amount


class WorkerCompensationProfile(Base, TimestampMixin):
    """How a worker is paid: hourly, fixed per job, or a percentage of the job total."""

    __tablename__ = "worker_compensation_profile"

    profile_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_id: Mapped[UUID] = mapped_column(nullable=False)
    compensation_model: Mapped[str] = mapped_column(String, nullable=False, default="hourly")
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    fixed_amount_per_job: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    percentage_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "worker_id", name="compensation_profile_worker_unique"),
        CheckConstraint(
            "compensation_model IN ('hourly', 'fixed', 'percentage')",
            name="compensation_profile_model_check",
        ),
    )
