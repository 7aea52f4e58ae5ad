"""ORM models."""

from cleaning_finance.models.audit import AuditEvent, Notification
from cleaning_finance.models.base import Base, TimestampMixin, utcnow
from cleaning_finance.models.billing import BillingArtifact, DocumentSequence, Invoice, Receipt
from cleaning_finance.models.compensation import CashCustodyRecord, CompensationEntry
from cleaning_finance.models.job import Job, WorkerCompensationProfile
from cleaning_finance.models.ledger import (
    FinancialPeriod,
    FinancialTransaction,
    LedgerEntry,
    LedgerImmutableError,
)
from cleaning_finance.models.payroll import PayrollEntry, PayrollPeriod
from cleaning_finance.models.tenant import StatutoryContributionRate, Tenant, TenantSettings

__all__ = [
    "AuditEvent",
    "Base",
    "BillingArtifact",
    "CashCustodyRecord",
    "CompensationEntry",
    "DocumentSequence",
    "FinancialPeriod",
    "FinancialTransaction",
    "Invoice",
    "Job",
    "LedgerEntry",
    "LedgerImmutableError",
    "Notification",
    "PayrollEntry",
    "PayrollPeriod",
    "Receipt",
    "StatutoryContributionRate",
    "Tenant",
    "TenantSettings",
    "TimestampMixin",
    "WorkerCompensationProfile",
    "utcnow",
]
