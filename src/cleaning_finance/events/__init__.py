"""Domain events and the in-process emitter."""

from cleaning_finance.events.emitter import EventEmitter, get_emitter
from cleaning_finance.events.types import (
    CashCustodyResolved,
    CashPendingApproval,
    DomainEvent,
    EventCategory,
    EventMetadata,
    FinancialPeriodClosed,
    FinancialPeriodReopened,
    InvoiceGenerated,
    JobCompleted,
    PayrollPeriodApproved,
    PayrollPeriodCreated,
    PayrollPeriodEnded,
    PayrollPeriodPaid,
    ReceiptGenerated,
)

__all__ = [
    "CashCustodyResolved",
    "CashPendingApproval",
    "DomainEvent",
    "EventCategory",
    "EventEmitter",
    "EventMetadata",
    "FinancialPeriodClosed",
    "FinancialPeriodReopened",
    "InvoiceGenerated",
    "JobCompleted",
    "PayrollPeriodApproved",
    "PayrollPeriodCreated",
    "PayrollPeriodEnded",
    "PayrollPeriodPaid",
    "ReceiptGenerated",
    "get_emitter",
]
