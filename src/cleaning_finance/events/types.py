"""Domain events published by the finance engine.

Events are immutable, carry traceable metadata, and serialize to plain
JSON. Delivery to people (email, push, in-app) is the notification
collaborator's concern; the engine only publishes.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    JOB = "job"
    CASH = "cash"
    BILLING = "billing"
    PAYROLL = "payroll"
    ACCOUNTING = "accounting"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    tenant_id: UUID
    correlation_id: UUID
    actor_id: UUID | None
    actor_type: str  # 'worker', 'admin', 'system', 'scheduler'
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        tenant_id: UUID,
        correlation_id: UUID | None = None,
        actor_id: UUID | None = None,
        actor_type: str = "system",
        source_service: str = "finance_engine",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            tenant_id=tenant_id,
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        data["category"] = self.category.value
        return _serialize_dict(data)

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Job Events
# =============================================================================


@dataclass(frozen=True)
class JobCompleted(DomainEvent):
    """A job was marked complete."""

    job_id: UUID
    worker_id: UUID | None
    job_kind: str
    payment_method: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.JOB


# =============================================================================
# Cash Events
# =============================================================================


@dataclass(frozen=True)
class CashPendingApproval(DomainEvent):
    """A worker kept cash; administrators must approve the payroll deduction."""

    cash_custody_record_id: UUID
    job_id: UUID
    worker_id: UUID | None
    amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.CASH


@dataclass(frozen=True)
class CashCustodyResolved(DomainEvent):
    """A kept-cash record reached approved, rejected or resolved."""

    cash_custody_record_id: UUID
    job_id: UUID
    outcome: str
    amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.CASH


# =============================================================================
# Billing Events
# =============================================================================


@dataclass(frozen=True)
class InvoiceGenerated(DomainEvent):
    """An invoice was created for a job."""

    artifact_id: UUID
    job_id: UUID
    artifact_number: str
    total: Decimal
    due_date: date | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.BILLING


@dataclass(frozen=True)
class ReceiptGenerated(DomainEvent):
    """A cash receipt was created for a job."""

    artifact_id: UUID
    job_id: UUID
    artifact_number: str
    total: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.BILLING


# =============================================================================
# Payroll Events
# =============================================================================


@dataclass(frozen=True)
class PayrollPeriodCreated(DomainEvent):
    """The next payroll period was opened."""

    period_id: UUID
    start_date: date
    end_date: date

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


@dataclass(frozen=True)
class PayrollPeriodEnded(DomainEvent):
    """An active payroll period is past its end date and needs processing."""

    period_id: UUID
    period_name: str
    end_date: date

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


@dataclass(frozen=True)
class PayrollPeriodApproved(DomainEvent):
    """A payroll period was approved."""

    period_id: UUID
    total_gross: Decimal
    total_net: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


@dataclass(frozen=True)
class PayrollPeriodPaid(DomainEvent):
    """A payroll period was paid out."""

    period_id: UUID
    pay_date: date
    total_net: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


# =============================================================================
# Accounting Events
# =============================================================================


@dataclass(frozen=True)
class FinancialPeriodClosed(DomainEvent):
    """An accounting period was locked."""

    period_id: UUID
    start_date: date
    end_date: date
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.ACCOUNTING


@dataclass(frozen=True)
class FinancialPeriodReopened(DomainEvent):
    """A closed accounting period was reopened."""

    period_id: UUID
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.ACCOUNTING
