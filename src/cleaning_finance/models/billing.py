"""Billing artifact (invoice / receipt) and numbering models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from cleaning_finance.models.base import Base, TimestampMixin


class BillingArtifact(Base, TimestampMixin):
    """Client-facing financial document for a job.

    Invoices and receipts share one table so the at-most-one-artifact-per-job
    rule is a single unique constraint across both types.
    """

    __tablename__ = "billing_artifact"

    artifact_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    job_id: Mapped[UUID] = mapped_column(
        ForeignKey("job.job_id", ondelete="CASCADE"),
        nullable=False,
    )
    artifact_type: Mapped[str] = mapped_column(String, nullable=False)
    artifact_number: Mapped[str] = mapped_column(String, nullable=False)
    sequence_value: Mapped[int] = mapped_column(Integer, nullable=False)
    client_id: Mapped[UUID | None] = mapped_column(nullable=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CAD")
    status: Mapped[str] = mapped_column(String, nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String, nullable=True)

    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "job_id", name="billing_artifact_job_unique"),
        UniqueConstraint(
            "tenant_id", "artifact_type", "artifact_number",
            name="billing_artifact_number_unique",
        ),
        CheckConstraint("artifact_type IN ('invoice', 'receipt')", name="billing_artifact_type_check"),
        CheckConstraint(
            "status IN ('draft', 'sent', 'paid', 'overdue', 'cancelled', 'issued')",
            name="billing_artifact_status_check",
        ),
    )

    __mapper_args__ = {
        "polymorphic_on": "artifact_type",
    }

    @property
    def is_invoice(self) -> bool:
        return self.artifact_type == "invoice"


class Invoice(BillingArtifact):
    """Invoice for a job paid by any method other than cash."""

    __mapper_args__ = {"polymorphic_identity": "invoice"}


class Receipt(BillingArtifact):
    """Receipt for a job paid in cash."""

    __mapper_args__ = {"polymorphic_identity": "receipt"}


class DocumentSequence(Base):
    """Last allocated number per tenant and artifact type."""

    __tablename__ = "document_sequence"

    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        primary_key=True,
    )
    artifact_type: Mapped[str] = mapped_column(String, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
