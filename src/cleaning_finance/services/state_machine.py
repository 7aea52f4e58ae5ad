"""Status enums and transition tables for every lifecycle in the engine.

Each machine is a table of allowed edges; services change a status only
through ``validate_transition`` so invalid edges are rejected in one place.
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

from cleaning_finance.errors import FinanceEngineError


class JobStatus(str, Enum):
    """Job lifecycle values."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CustodyState(str, Enum):
    """Where collected cash is and what payroll must do about it."""

    NOT_APPLICABLE = "not_applicable"
    OPEN = "open"
    KEPT_BY_WORKER = "kept_by_worker"
    HANDED_TO_OFFICE = "handed_to_office"
    PENDING_ADMIN_APPROVAL = "pending_admin_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    RESOLVED = "resolved"


class CompensationStatus(str, Enum):
    """Compensation entry lifecycle values."""

    PENDING = "pending"
    PENDING_ADMIN_APPROVAL = "pending_admin_approval"
    PENDING_HANDOVER = "pending_handover"
    APPROVED = "approved"
    PAID = "paid"
    REJECTED = "rejected"


class InvoiceStatus(str, Enum):
    """Invoice lifecycle values."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class ReceiptStatus(str, Enum):
    """Receipt lifecycle values."""

    ISSUED = "issued"
    SENT = "sent"


class PayrollPeriodStatus(str, Enum):
    """Payroll period lifecycle values."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    PAID = "paid"


class FinancialPeriodStatus(str, Enum):
    """Accounting lock values."""

    OPEN = "open"
    CLOSED = "closed"
    REOPENED = "reopened"


class InvalidTransitionError(FinanceEngineError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class StateMachine:
    """Transition table lookups shared by every machine."""

    ENTITY: ClassVar[str] = "entity"
    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(
                _value(from_status), _value(to_status), f"{cls.ENTITY} transition not allowed"
            )

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """True when no edge leaves ``status``."""
        return not cls.VALID_TRANSITIONS.get(status)


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else status


class JobStateMachine(StateMachine):
    """scheduled → in_progress → completed, or scheduled → cancelled."""

    ENTITY = "job"
    VALID_TRANSITIONS = {
        JobStatus.SCHEDULED: [JobStatus.IN_PROGRESS, JobStatus.COMPLETED, JobStatus.CANCELLED],
        JobStatus.IN_PROGRESS: [JobStatus.COMPLETED],
        JobStatus.COMPLETED: [],
        JobStatus.CANCELLED: [],
    }


class CashCustodyStateMachine(StateMachine):
    """Cash custody transitions.

    - not_applicable → open
    - open → kept_by_worker | handed_to_office
    - kept_by_worker → pending_admin_approval
    - pending_admin_approval → approved | rejected
    - rejected → resolved
    - handed_to_office, approved, resolved are terminal
    """

    ENTITY = "cash custody"
    VALID_TRANSITIONS = {
        CustodyState.NOT_APPLICABLE: [CustodyState.OPEN],
        CustodyState.OPEN: [CustodyState.KEPT_BY_WORKER, CustodyState.HANDED_TO_OFFICE],
        CustodyState.KEPT_BY_WORKER: [CustodyState.PENDING_ADMIN_APPROVAL],
        CustodyState.PENDING_ADMIN_APPROVAL: [CustodyState.APPROVED, CustodyState.REJECTED],
        CustodyState.REJECTED: [CustodyState.RESOLVED],
        CustodyState.HANDED_TO_OFFICE: [],
        CustodyState.APPROVED: [],
        CustodyState.RESOLVED: [],
    }


class CompensationStateMachine(StateMachine):
    """Compensation entry transitions."""

    ENTITY = "compensation entry"
    VALID_TRANSITIONS = {
        CompensationStatus.PENDING: [
            CompensationStatus.PENDING_ADMIN_APPROVAL,
            CompensationStatus.PENDING_HANDOVER,
            CompensationStatus.APPROVED,
            CompensationStatus.REJECTED,
        ],
        CompensationStatus.PENDING_HANDOVER: [
            CompensationStatus.PENDING,
            CompensationStatus.PENDING_ADMIN_APPROVAL,
        ],
        CompensationStatus.PENDING_ADMIN_APPROVAL: [
            CompensationStatus.APPROVED,
            CompensationStatus.REJECTED,
        ],
        CompensationStatus.APPROVED: [CompensationStatus.PAID],
        CompensationStatus.PAID: [],
        CompensationStatus.REJECTED: [],
    }

    # Statuses that payroll aggregation picks up
    COMPENSABLE = {CompensationStatus.PENDING, CompensationStatus.APPROVED}

    # Statuses that block payroll approval
    AWAITING_CASH = {
        CompensationStatus.PENDING_ADMIN_APPROVAL,
        CompensationStatus.PENDING_HANDOVER,
    }


class InvoiceStateMachine(StateMachine):
    """draft → sent → paid | overdue | cancelled."""

    ENTITY = "invoice"
    VALID_TRANSITIONS = {
        InvoiceStatus.DRAFT: [InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.CANCELLED],
        InvoiceStatus.SENT: [InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED],
        InvoiceStatus.OVERDUE: [InvoiceStatus.PAID, InvoiceStatus.CANCELLED],
        InvoiceStatus.PAID: [],
        InvoiceStatus.CANCELLED: [],
    }


class ReceiptStateMachine(StateMachine):
    """issued → sent."""

    ENTITY = "receipt"
    VALID_TRANSITIONS = {
        ReceiptStatus.ISSUED: [ReceiptStatus.SENT],
        ReceiptStatus.SENT: [],
    }


class PayrollPeriodStateMachine(StateMachine):
    """pending → in_progress → approved → paid; approval and payment are one-way."""

    ENTITY = "payroll period"
    VALID_TRANSITIONS = {
        PayrollPeriodStatus.PENDING: [PayrollPeriodStatus.IN_PROGRESS, PayrollPeriodStatus.APPROVED],
        PayrollPeriodStatus.IN_PROGRESS: [PayrollPeriodStatus.APPROVED],
        PayrollPeriodStatus.APPROVED: [PayrollPeriodStatus.PAID],
        PayrollPeriodStatus.PAID: [],
    }

    ACTIVE = {PayrollPeriodStatus.PENDING, PayrollPeriodStatus.IN_PROGRESS}

    @classmethod
    def can_aggregate(cls, status: str) -> bool:
        """Totals may be recomputed only while the period is active."""
        return status in cls.ACTIVE


class FinancialPeriodStateMachine(StateMachine):
    """open → closed → reopened → closed ..."""

    ENTITY = "financial period"
    VALID_TRANSITIONS = {
        FinancialPeriodStatus.OPEN: [FinancialPeriodStatus.CLOSED],
        FinancialPeriodStatus.CLOSED: [FinancialPeriodStatus.REOPENED],
        FinancialPeriodStatus.REOPENED: [FinancialPeriodStatus.CLOSED],
    }
