"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Job schemas
# ============================================================================


class PaymentRequest(BaseModel):
    """Structured payment captured when a job is completed."""

    method: Literal["cash", "cheque", "e_transfer", "credit_card", "debit", "invoice", "other"]
    amount: Decimal | None = Field(default=None, ge=0)
    payment_date: date | None = None
    reference: str | None = None
    received_by: str | None = None
    cash_handling_choice: Literal["kept_by_worker", "handed_to_office"] | None = None
    notes: str | None = None


class CompleteJobRequest(BaseModel):
    """Schema for completing a job."""

    after_photo_ref: str | None = None
    notes: str | None = None
    payment: PaymentRequest | None = None


class CompletionResponse(BaseModel):
    """What the completion produced or found."""

    job_id: UUID
    already_completed: bool
    artifact_id: UUID | None = None
    artifact_type: str | None = None
    artifact_created: bool
    pending_invoice: bool
    compensation_entry_id: UUID | None = None
    cash_custody_record_id: UUID | None = None


class JobResponse(BaseModel):
    """Schema for job response."""

    model_config = ConfigDict(from_attributes=True)

    job_id: UUID
    tenant_id: UUID
    worker_id: UUID | None = None
    client_id: UUID | None = None
    job_kind: str
    is_billable: bool
    scheduled_date: date
    duration_minutes: int
    service_amount: Decimal | None = None
    status: str
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    payment_method: str | None = None
    payment_amount: Decimal | None = None
    cash_handling_choice: str | None = None


class GenerateInvoiceRequest(BaseModel):
    """Manual invoice generation for a queued job."""

    base_amount: Decimal | None = Field(default=None, ge=0)
    issue_date: date | None = None


# ============================================================================
# Billing schemas
# ============================================================================


class BillingArtifactResponse(BaseModel):
    """Schema for invoice or receipt response."""

    model_config = ConfigDict(from_attributes=True)

    artifact_id: UUID
    tenant_id: UUID
    job_id: UUID
    artifact_type: str
    artifact_number: str
    client_id: UUID | None = None
    issue_date: date
    due_date: date | None = None
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    currency: str
    status: str
    payment_method: str | None = None
    payment_reference: str | None = None
    sent_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None


class MarkPaidRequest(BaseModel):
    """Schema for recording an invoice payment."""

    payment_date: date | None = None
    payment_reference: str | None = None


class MarkOverdueRequest(BaseModel):
    """Schema for the overdue sweep."""

    as_of: date | None = None


class MarkOverdueResponse(BaseModel):
    """Invoices flagged overdue by the sweep."""

    artifact_ids: list[UUID]


# ============================================================================
# Cash custody schemas
# ============================================================================


class CashCustodyResponse(BaseModel):
    """Schema for cash custody record response."""

    model_config = ConfigDict(from_attributes=True)

    record_id: UUID
    tenant_id: UUID
    job_id: UUID
    compensation_entry_id: UUID | None = None
    worker_id: UUID | None = None
    service_date: date
    amount: Decimal
    received_by: str | None = None
    custody_state: str
    held_by: str | None = None
    compensation_consequence: str
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    dispute_reason: str | None = None
    resolution_notes: str | None = None


class HandlingChoiceRequest(BaseModel):
    """Where the worker put the cash."""

    choice: Literal["kept_by_worker", "handed_to_office"]


class ResolveRequest(BaseModel):
    """Notes closing a disputed record."""

    notes: str = Field(min_length=1)


# ============================================================================
# Payroll schemas
# ============================================================================


class PayrollPeriodResponse(BaseModel):
    """Schema for payroll period response."""

    model_config = ConfigDict(from_attributes=True)

    period_id: UUID
    tenant_id: UUID
    name: str
    period_type: str
    start_date: date
    end_date: date
    status: str
    total_hours: Decimal
    total_regular_hours: Decimal
    total_overtime_hours: Decimal
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    notification_sent: bool
    aggregated_at: datetime | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    paid_by: UUID | None = None
    paid_at: datetime | None = None
    pay_date: date | None = None


class PayrollEntryResponse(BaseModel):
    """One worker's line in a payroll period."""

    model_config = ConfigDict(from_attributes=True)

    payroll_entry_id: UUID
    worker_id: UUID
    jurisdiction_code: str
    total_hours: Decimal
    regular_hours: Decimal
    overtime_hours: Decimal
    hourly_pay: Decimal
    overtime_pay: Decimal
    other_earnings: Decimal
    gross_pay: Decimal
    pension_deduction: Decimal
    unemployment_deduction: Decimal
    cash_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    entry_count: int


class PayrollPeriodDetailResponse(BaseModel):
    """Period with its per-worker entries."""

    period: PayrollPeriodResponse
    entries: list[PayrollEntryResponse]


class PayPeriodRequest(BaseModel):
    """Schema for paying out an approved period."""

    pay_date: date | None = None


class PeriodCheckRequest(BaseModel):
    """Schema for the periodic check trigger."""

    today: date | None = None


class PeriodCheckResponse(BaseModel):
    """Result of the periodic check for one tenant."""

    model_config = ConfigDict(from_attributes=True)

    tenant_id: UUID
    period_id: UUID
    period_name: str
    start_date: date
    end_date: date
    status: str
    created: bool
    needs_notification: bool


# ============================================================================
# Financial period and ledger schemas
# ============================================================================


class FinancialPeriodCreate(BaseModel):
    """Schema for defining an accounting period."""

    name: str = Field(min_length=1)
    start_date: date
    end_date: date


class FinancialPeriodResponse(BaseModel):
    """Schema for financial period response."""

    model_config = ConfigDict(from_attributes=True)

    period_id: UUID
    tenant_id: UUID
    name: str
    start_date: date
    end_date: date
    status: str
    closed_by: UUID | None = None
    closed_at: datetime | None = None
    close_reason: str | None = None
    reopened_by: UUID | None = None
    reopened_at: datetime | None = None
    reopen_reason: str | None = None


class ReasonRequest(BaseModel):
    """Any action that must be justified."""

    reason: str = Field(min_length=1)


class LedgerEntryResponse(BaseModel):
    """Schema for a ledger line."""

    model_config = ConfigDict(from_attributes=True)

    entry_id: UUID
    account_code: str
    account_name: str
    debit: Decimal
    credit: Decimal
    ledger_date: date
    memo: str | None = None
    reverses_entry_id: UUID | None = None


class FinancialTransactionResponse(BaseModel):
    """Schema for a financial transaction."""

    model_config = ConfigDict(from_attributes=True)

    transaction_id: UUID
    transaction_type: str
    source_type: str
    source_id: UUID
    accounting_date: date
    amount_gross: Decimal
    amount_tax: Decimal
    amount_net: Decimal
    currency: str
    description: str | None = None
    is_void: bool
    void_reason: str | None = None
    reversal_of: UUID | None = None


class AccountBalanceResponse(BaseModel):
    """Schema for one trial balance row."""

    model_config = ConfigDict(from_attributes=True)

    account_code: str
    account_name: str
    debits: Decimal
    credits: Decimal
    balance: Decimal


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
