"""Tests for the lifecycle transition tables."""

import pytest

from cleaning_finance.services.state_machine import (
    CashCustodyStateMachine,
    CompensationStateMachine,
    CompensationStatus,
    CustodyState,
    FinancialPeriodStateMachine,
    InvalidTransitionError,
    InvoiceStateMachine,
    JobStateMachine,
    PayrollPeriodStateMachine,
    PayrollPeriodStatus,
)


class TestJobStateMachine:
    """Test job status transitions."""

    def test_scheduled_can_start_complete_or_cancel(self):
        """A scheduled job may start, complete directly, or be cancelled."""
        for target in ("in_progress", "completed", "cancelled"):
            assert JobStateMachine.can_transition("scheduled", target)

    def test_in_progress_cannot_be_cancelled(self):
        assert not JobStateMachine.can_transition("in_progress", "cancelled")

    def test_completed_is_terminal(self):
        assert JobStateMachine.is_terminal("completed")
        with pytest.raises(InvalidTransitionError) as exc_info:
            JobStateMachine.validate_transition("completed", "in_progress")

        assert exc_info.value.from_status == "completed"
        assert exc_info.value.to_status == "in_progress"
        assert "job" in str(exc_info.value)


class TestCashCustodyStateMachine:
    """Test cash custody transitions."""

    def test_kept_cash_goes_through_approval(self):
        assert CashCustodyStateMachine.can_transition("open", "kept_by_worker")
        assert CashCustodyStateMachine.get_next_statuses("kept_by_worker") == [
            CustodyState.PENDING_ADMIN_APPROVAL
        ]
        assert not CashCustodyStateMachine.can_transition("kept_by_worker", "approved")

    def test_rejected_only_resolves(self):
        assert CashCustodyStateMachine.can_transition("rejected", "resolved")
        assert not CashCustodyStateMachine.can_transition("rejected", "approved")

    @pytest.mark.parametrize("state", ["handed_to_office", "approved", "resolved"])
    def test_terminal_states(self, state):
        assert CashCustodyStateMachine.is_terminal(state)

    def test_accepts_enum_members(self):
        CashCustodyStateMachine.validate_transition(CustodyState.NOT_APPLICABLE, CustodyState.OPEN)


class TestCompensationStateMachine:
    """Test compensation entry transitions."""

    def test_pending_handover_returns_to_pending(self):
        assert CompensationStateMachine.can_transition("pending_handover", "pending")

    def test_paid_only_after_approval(self):
        assert not CompensationStateMachine.can_transition("pending", "paid")
        assert CompensationStateMachine.can_transition("approved", "paid")

    def test_sets_are_disjoint(self):
        """Nothing is both compensable and waiting on cash."""
        assert not CompensationStateMachine.COMPENSABLE & CompensationStateMachine.AWAITING_CASH
        assert CompensationStatus.PENDING_HANDOVER in CompensationStateMachine.AWAITING_CASH


class TestInvoiceStateMachine:
    """Test invoice transitions."""

    def test_overdue_can_still_be_paid(self):
        assert InvoiceStateMachine.can_transition("overdue", "paid")

    def test_paid_cannot_be_cancelled(self):
        with pytest.raises(InvalidTransitionError):
            InvoiceStateMachine.validate_transition("paid", "cancelled")

    def test_draft_cannot_go_overdue(self):
        assert not InvoiceStateMachine.can_transition("draft", "overdue")


class TestPayrollPeriodStateMachine:
    """Test payroll period transitions."""

    def test_forward_only(self):
        assert PayrollPeriodStateMachine.can_transition("in_progress", "approved")
        assert not PayrollPeriodStateMachine.can_transition("approved", "in_progress")
        assert not PayrollPeriodStateMachine.can_transition("paid", "approved")

    def test_only_active_periods_aggregate(self):
        assert PayrollPeriodStateMachine.can_aggregate(PayrollPeriodStatus.PENDING.value)
        assert PayrollPeriodStateMachine.can_aggregate("in_progress")
        assert not PayrollPeriodStateMachine.can_aggregate("approved")


class TestFinancialPeriodStateMachine:
    """Test accounting period transitions."""

    def test_close_reopen_cycle(self):
        assert FinancialPeriodStateMachine.can_transition("open", "closed")
        assert FinancialPeriodStateMachine.can_transition("closed", "reopened")
        assert FinancialPeriodStateMachine.can_transition("reopened", "closed")

    def test_open_cannot_reopen(self):
        with pytest.raises(InvalidTransitionError):
            FinancialPeriodStateMachine.validate_transition("open", "reopened")
