"""Financial period lock and double-entry ledger models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
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
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from cleaning_finance.models.base import Base, TimestampMixin, utcnow


class FinancialPeriod(Base, TimestampMixin):
    """Accounting lock window. Postings dated inside a closed period are refused."""

    __tablename__ = "financial_period"

    period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="open")

    closed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    close_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reopened_by: Mapped[UUID | None] = mapped_column(nullable=True)
    reopened_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reopen_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'closed', 'reopened')",
            name="financial_period_status_check",
        ),
        CheckConstraint("end_date >= start_date", name="financial_period_dates_check"),
    )

    @property
    def is_open(self) -> bool:
        return self.status in ("open", "reopened")


class FinancialTransaction(Base, TimestampMixin):
    """Business event that produced one balanced group of ledger entries."""

    __tablename__ = "financial_transaction"

    transaction_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    idempotency_key: Mapped[str] = mapped_column(String, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String, nullable=False)
    source_type: Mapped[str] = mapped_column(String, nullable=False)
    source_id: Mapped[UUID] = mapped_column(nullable=False)
    accounting_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_gross: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount_tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    amount_net: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CAD")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_void: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reversal_of: Mapped[UUID | None] = mapped_column(
        ForeignKey("financial_transaction.transaction_id"),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "idempotency_key", name="financial_transaction_idempotency_unique"),
        CheckConstraint(
            "transaction_type IN ('received', 'paid_out', 'adjustment')",
            name="financial_transaction_type_check",
        ),
        CheckConstraint(
            "source_type IN ('invoice', 'receipt', 'invoice_payment', 'payroll', 'reversal')",
            name="financial_transaction_source_check",
        ),
        CheckConstraint(
            "NOT is_void OR void_reason IS NOT NULL",
            name="financial_transaction_void_reason_check",
        ),
    )


class LedgerEntry(Base):
    """Immutable double-entry line. Corrections are new reversing lines."""

    __tablename__ = "ledger_entry"

    entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    transaction_id: Mapped[UUID] = mapped_column(
        ForeignKey("financial_transaction.transaction_id"),
        nullable=False,
        index=True,
    )
    account_code: Mapped[str] = mapped_column(String, nullable=False)
    account_name: Mapped[str] = mapped_column(String, nullable=False)
    debit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    credit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    ledger_date: Mapped[date] = mapped_column(Date, nullable=False)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    reverses_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "(debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0)",
            name="ledger_entry_one_side_check",
        ),
    )


class LedgerImmutableError(Exception):
    """Raised when code tries to change or remove a ledger entry."""


@event.listens_for(LedgerEntry, "before_update")
def _refuse_ledger_update(mapper: Any, connection: Any, target: LedgerEntry) -> None:
    raise LedgerImmutableError(f"Ledger entry {target.entry_id} cannot be modified")


@event.listens_for(LedgerEntry, "before_delete")
def _refuse_ledger_delete(mapper: Any, connection: Any, target: LedgerEntry) -> None:
    raise LedgerImmutableError(f"Ledger entry {target.entry_id} cannot be deleted")
