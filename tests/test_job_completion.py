"""Tests for the job completion event processor."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm.attributes import set_committed_value

from cleaning_finance.errors import PeriodClosedError, UnauthorizedActorError
from cleaning_finance.events import CashPendingApproval, InvoiceGenerated, JobCompleted
from cleaning_finance.models import BillingArtifact, CompensationEntry
from cleaning_finance.services.actors import Actor, ActorRole
from cleaning_finance.services.job_completion_service import (
    CompletionRequest,
    JobCompletionService,
    PaymentData,
)
from cleaning_finance.services.period_lock_service import PeriodLockService
from cleaning_finance.services.state_machine import InvalidTransitionError


@pytest.fixture
def processor(session, emitter) -> JobCompletionService:
    return JobCompletionService(session, emitter)


def paid_by(method: str, amount: str | None = None, **extra) -> CompletionRequest:
    return CompletionRequest(
        notes="Done",
        payment=PaymentData(
            method=method,
            amount=Decimal(amount) if amount is not None else None,
            **extra,
        ),
    )


async def artifact_count(session, job_id) -> int:
    return await session.scalar(
        select(func.count()).select_from(BillingArtifact).where(BillingArtifact.job_id == job_id)
    )


class TestPaymentData:
    """Validation of the structured payment."""

    def test_cash_needs_amount(self):
        with pytest.raises(ValueError):
            PaymentData(method="cash").validate()

    def test_handling_choice_only_for_cash(self):
        with pytest.raises(ValueError):
            PaymentData(method="cheque", cash_handling_choice="kept_by_worker").validate()

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            PaymentData(method="barter").validate()

    def test_negative_amount(self):
        with pytest.raises(ValueError):
            PaymentData(method="debit", amount=Decimal("-1")).validate()


class TestNonCashCompletion:
    """Jobs paid by anything but cash."""

    async def test_automatic_invoice_and_compensation(
        self, session, processor, tenant, worker, make_job, hourly_profile, recorder
    ):
        job = await make_job()

        result = await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("e_transfer"), worker)

        assert job.status == "completed"
        assert job.payment_date == date.today()
        assert result.artifact_type == "invoice"
        assert result.artifact_created is True
        assert result.pending_invoice is False
        assert result.cash_custody_record_id is None

        entry = await session.get(CompensationEntry, result.compensation_entry_id)
        assert entry.amount_due == Decimal("50.00")
        assert entry.compensation_model == "hourly"
        assert entry.status == "pending"

        assert len(recorder.of_type(JobCompleted)) == 1
        assert len(recorder.of_type(InvoiceGenerated)) == 1

    async def test_recompletion_creates_nothing_new(
        self, session, processor, tenant, worker, make_job, hourly_profile, recorder
    ):
        """Calling complete twice leaves one artifact and one entry."""
        job = await make_job()
        first = await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("cheque"), worker)
        second = await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("cheque"), worker)

        assert second.already_completed is True
        assert second.artifact_created is False
        assert second.artifact_id == first.artifact_id
        assert second.compensation_entry_id == first.compensation_entry_id
        assert await artifact_count(session, job.job_id) == 1
        assert len(recorder.of_type(JobCompleted)) == 1

    async def test_manual_mode_queues_job(
        self, session, processor, tenant, tenant_settings, worker, make_job
    ):
        tenant_settings.invoice_generation_mode = "manual"
        await session.flush()
        job = await make_job()

        result = await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("credit_card"), worker)

        assert result.pending_invoice is True
        assert result.artifact_id is None
        queue = await processor.billing.list_pending_invoice_jobs(tenant.tenant_id)
        assert [j.job_id for j in queue] == [job.job_id]

    async def test_missing_amount_falls_back_to_queue(self, processor, tenant, worker, make_job):
        job = await make_job(service_amount=None)
        result = await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("invoice"), worker)
        assert result.pending_invoice is True
        assert result.artifact_id is None

    async def test_no_payment_means_no_compensation(self, processor, tenant, worker, make_job):
        job = await make_job()
        result = await processor.complete_job(tenant.tenant_id, job.job_id, CompletionRequest(), worker)
        assert result.artifact_type == "invoice"
        assert result.compensation_entry_id is None

    async def test_non_billable_job_gets_no_invoice(self, processor, tenant, worker, make_job):
        job = await make_job(is_billable=False)
        result = await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("other"), worker)
        assert result.artifact_id is None
        assert result.pending_invoice is False


class TestCashCompletion:
    """Jobs paid in cash."""

    async def test_cash_gets_receipt_never_invoice(
        self, session, processor, tenant, worker, make_job, percentage_profile
    ):
        job = await make_job()

        result = await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("cash", "100.00"), worker)

        assert result.artifact_type == "receipt"
        artifact = await session.get(BillingArtifact, result.artifact_id)
        assert artifact.total == Decimal("113.00")
        assert await artifact_count(session, job.job_id) == 1

        record = await processor.custody.get_record(tenant.tenant_id, result.cash_custody_record_id)
        assert record.custody_state == "open"
        assert record.amount == Decimal("100.00")
        assert record.compensation_entry_id == result.compensation_entry_id

        entry = await session.get(CompensationEntry, result.compensation_entry_id)
        assert entry.amount_due == Decimal("40.00")
        assert entry.status == "pending_handover"

    async def test_kept_cash_waits_for_admin(self, session, processor, tenant, worker, make_job, recorder):
        job = await make_job()

        result = await processor.complete_job(
            tenant.tenant_id,
            job.job_id,
            paid_by("cash", "80.00", cash_handling_choice="kept_by_worker"),
            worker,
        )

        record = await processor.custody.get_record(tenant.tenant_id, result.cash_custody_record_id)
        assert record.custody_state == "pending_admin_approval"
        assert record.held_by == "worker"

        entry = await session.get(CompensationEntry, result.compensation_entry_id)
        assert entry.status == "pending_admin_approval"
        assert entry.deduct_from_payroll is True
        assert entry.cash_deduction_amount == Decimal("80.00")
        assert len(recorder.of_type(CashPendingApproval)) == 1

    async def test_handed_over_cash_is_compensable(self, session, processor, tenant, worker, make_job):
        job = await make_job()
        result = await processor.complete_job(
            tenant.tenant_id,
            job.job_id,
            paid_by("cash", "100.00", cash_handling_choice="handed_to_office"),
            worker,
        )
        entry = await session.get(CompensationEntry, result.compensation_entry_id)
        assert entry.status == "pending"
        assert entry.deduct_from_payroll is False


class TestVisitsAndGuards:
    """Visits, permissions and failure handling."""

    async def test_visit_records_notes_only(self, session, processor, tenant, worker, make_job):
        job = await make_job(job_kind="visit", service_amount=None)

        result = await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("cash", "50.00"), worker)

        assert job.status == "completed"
        assert result.artifact_id is None
        assert result.compensation_entry_id is None
        assert result.cash_custody_record_id is None
        assert await artifact_count(session, job.job_id) == 0

    async def test_other_worker_is_rejected(self, processor, tenant, make_job):
        job = await make_job()
        stranger = Actor(actor_id=uuid4(), role=ActorRole.WORKER)
        with pytest.raises(UnauthorizedActorError):
            await processor.complete_job(tenant.tenant_id, job.job_id, CompletionRequest(), stranger)

    async def test_admin_may_complete_any_job(self, processor, tenant, admin, make_job):
        job = await make_job()
        result = await processor.complete_job(tenant.tenant_id, job.job_id, CompletionRequest(), admin)
        assert result.already_completed is False

    async def test_invalid_payment_leaves_job_scheduled(self, processor, tenant, worker, make_job):
        job = await make_job()
        with pytest.raises(ValueError):
            await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("cash"), worker)
        assert job.status == "scheduled"

    async def test_cancelled_job_cannot_complete(self, processor, tenant, worker, make_job):
        job = await make_job()
        await processor.cancel_job(tenant.tenant_id, job.job_id, worker)
        with pytest.raises(InvalidTransitionError):
            await processor.complete_job(tenant.tenant_id, job.job_id, CompletionRequest(), worker)

    async def test_start_then_complete(self, processor, tenant, worker, make_job):
        job = await make_job()
        await processor.start_job(tenant.tenant_id, job.job_id, worker)
        assert job.status == "in_progress"
        assert job.started_at is not None
        await processor.complete_job(tenant.tenant_id, job.job_id, CompletionRequest(), worker)
        assert job.status == "completed"

    async def test_failure_discards_events(self, session, processor, tenant, admin, worker, make_job, recorder):
        """Nothing is announced for a completion that failed part-way."""
        periods = PeriodLockService(session)
        today = date.today()
        period = await periods.create_period(
            tenant.tenant_id, "Current", today - timedelta(days=1), today + timedelta(days=1)
        )
        await periods.close_period(tenant.tenant_id, period.period_id, admin, "Locked")
        recorder.events.clear()
        job = await make_job()

        with pytest.raises(PeriodClosedError):
            await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("debit"), worker)

        assert recorder.of_type(JobCompleted) == []


class TestConcurrentCompletion:
    """A completion that loses the race to bill the job."""

    async def test_lost_receipt_race_returns_existing(
        self, session, processor, tenant, worker, make_job, recorder, monkeypatch
    ):
        job = await make_job()
        first = await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("cash", "100.00"), worker)
        recorder.events.clear()

        real_lookup = processor.billing.get_artifact_for_job
        lookups = []

        async def lookup_before_other_commit(tenant_id, job_id):
            # Both existence checks miss the receipt the other request wrote
            lookups.append(job_id)
            if len(lookups) <= 2:
                return None
            return await real_lookup(tenant_id, job_id)

        monkeypatch.setattr(processor.billing, "get_artifact_for_job", lookup_before_other_commit)
        second = await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("cash", "100.00"), worker)

        assert second.already_completed is True
        assert second.artifact_created is False
        assert second.artifact_id == first.artifact_id
        assert second.compensation_entry_id == first.compensation_entry_id
        assert len(lookups) == 4
        assert await artifact_count(session, job.job_id) == 1
        assert recorder.events == []

    async def test_completion_rereads_job_state(self, session, processor, tenant, worker, make_job, recorder):
        """A stale loaded status is replaced by the stored one before the check."""
        job = await make_job()
        await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("cheque"), worker)
        # As if this copy was loaded before the other request committed
        set_committed_value(job, "status", "scheduled")

        result = await processor.complete_job(tenant.tenant_id, job.job_id, paid_by("debit"), worker)

        assert result.already_completed is True
        assert job.status == "completed"
        assert job.payment_method == "cheque"
        assert len(recorder.of_type(JobCompleted)) == 1
        assert await artifact_count(session, job.job_id) == 1
