"""Tests for invoice and receipt generation."""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from cleaning_finance.errors import (
    DuplicateArtifactError,
    PeriodClosedError,
    UnauthorizedActorError,
)
from cleaning_finance.events import InvoiceGenerated, ReceiptGenerated
from cleaning_finance.models import BillingArtifact, Invoice, Receipt
from cleaning_finance.services.billing_service import BillingService, compute_tax, format_artifact_number
from cleaning_finance.services.ledger_service import (
    ACCOUNTS_RECEIVABLE,
    CASH,
    SALES_TAX_PAYABLE,
    SERVICE_REVENUE,
    LedgerService,
)
from cleaning_finance.services.period_lock_service import PeriodLockService
from cleaning_finance.services.state_machine import InvalidTransitionError

from tests.conftest import SERVICE_DATE


async def balances(session, tenant_id) -> dict[str, Decimal]:
    rows = await LedgerService(session).trial_balance(tenant_id)
    return {row.account_code: row.balance for row in rows}


@pytest.fixture
def billing(session, emitter) -> BillingService:
    return BillingService(session, emitter)


@pytest.fixture
def completed_cash_job(make_job):
    async def _make(**overrides):
        values = {
            "status": "completed",
            "payment_method": "cash",
            "payment_amount": Decimal("100.00"),
            "payment_date": SERVICE_DATE,
        }
        values.update(overrides)
        return await make_job(**values)

    return _make


@pytest.fixture
def completed_invoice_job(make_job):
    async def _make(**overrides):
        values = {"status": "completed", "payment_method": "e_transfer"}
        values.update(overrides)
        return await make_job(**values)

    return _make


class TestHelpers:
    """Numbering and tax arithmetic."""

    def test_number_format(self):
        assert format_artifact_number("invoice", date(2026, 5, 1), 42) == "INV-2026-00042"
        assert format_artifact_number("receipt", date(2026, 5, 1), 7) == "RCP-2026-00007"

    def test_tax_rounds_half_up(self):
        assert compute_tax(Decimal("99.99"), Decimal("13")) == (Decimal("13.00"), Decimal("112.99"))
        assert compute_tax(Decimal("10.05"), Decimal("5")) == (Decimal("0.50"), Decimal("10.55"))


class TestReceipts:
    """Receipts for cash jobs."""

    async def test_cash_job_receipt_amounts(self, session, billing, tenant, completed_cash_job, recorder):
        """100.00 cash at 13% gives a 113.00 receipt posted straight to cash."""
        job = await completed_cash_job()
        receipt = await billing.generate_receipt(tenant.tenant_id, job.job_id, issue_date=SERVICE_DATE)

        assert isinstance(receipt, Receipt)
        assert receipt.artifact_number == "RCP-2024-00001"
        assert receipt.subtotal == Decimal("100.00")
        assert receipt.tax_amount == Decimal("13.00")
        assert receipt.total == Decimal("113.00")
        assert receipt.status == "issued"
        assert receipt.due_date is None
        assert receipt.payment_method == "cash"

        ledger = await balances(session, tenant.tenant_id)
        assert ledger[CASH] == Decimal("113.00")
        assert ledger[SERVICE_REVENUE] == Decimal("-100.00")
        assert ledger[SALES_TAX_PAYABLE] == Decimal("-13.00")
        assert len(recorder.of_type(ReceiptGenerated)) == 1

    async def test_auto_send_setting(self, session, billing, tenant, tenant_settings, completed_cash_job):
        tenant_settings.auto_send_cash_receipt = True
        await session.flush()
        job = await completed_cash_job()

        receipt = await billing.generate_receipt(tenant.tenant_id, job.job_id)

        assert receipt.status == "sent"
        assert receipt.sent_at is not None

    async def test_non_cash_job_gets_no_receipt(self, billing, tenant, completed_invoice_job):
        job = await completed_invoice_job()
        with pytest.raises(ValueError):
            await billing.generate_receipt(tenant.tenant_id, job.job_id)

    async def test_receipt_cannot_be_marked_paid(self, billing, tenant, completed_cash_job):
        job = await completed_cash_job()
        receipt = await billing.generate_receipt(tenant.tenant_id, job.job_id)
        with pytest.raises(ValueError):
            await billing.mark_paid(tenant.tenant_id, receipt.artifact_id)


class TestInvoices:
    """Invoices for non-cash jobs."""

    async def test_invoice_uses_service_amount(self, session, billing, tenant, completed_invoice_job, recorder):
        job = await completed_invoice_job()
        invoice = await billing.generate_invoice(tenant.tenant_id, job.job_id, issue_date=SERVICE_DATE)

        assert isinstance(invoice, Invoice)
        assert invoice.artifact_number == "INV-2024-00001"
        assert invoice.status == "draft"
        assert invoice.total == Decimal("113.00")
        assert invoice.due_date == SERVICE_DATE + timedelta(days=30)
        assert invoice.currency == "CAD"

        ledger = await balances(session, tenant.tenant_id)
        assert ledger[ACCOUNTS_RECEIVABLE] == Decimal("113.00")
        events = recorder.of_type(InvoiceGenerated)
        assert [e.artifact_number for e in events] == ["INV-2024-00001"]

    async def test_payment_amount_overrides_service_amount(self, billing, tenant, completed_invoice_job):
        job = await completed_invoice_job(payment_amount=Decimal("80.00"))
        invoice = await billing.generate_invoice(tenant.tenant_id, job.job_id)
        assert invoice.subtotal == Decimal("80.00")
        assert invoice.total == Decimal("90.40")

    async def test_numbers_are_sequential_per_type(self, billing, tenant, completed_invoice_job, completed_cash_job):
        first = await completed_invoice_job()
        second = await completed_invoice_job()
        cash = await completed_cash_job()

        inv1 = await billing.generate_invoice(tenant.tenant_id, first.job_id, issue_date=SERVICE_DATE)
        inv2 = await billing.generate_invoice(tenant.tenant_id, second.job_id, issue_date=SERVICE_DATE)
        rcp = await billing.generate_receipt(tenant.tenant_id, cash.job_id, issue_date=SERVICE_DATE)

        assert (inv1.artifact_number, inv2.artifact_number) == ("INV-2024-00001", "INV-2024-00002")
        assert rcp.artifact_number == "RCP-2024-00001"

    async def test_second_invoice_is_duplicate(self, session, billing, tenant, completed_invoice_job):
        job = await completed_invoice_job()
        invoice = await billing.generate_invoice(tenant.tenant_id, job.job_id)

        with pytest.raises(DuplicateArtifactError) as exc_info:
            await billing.generate_invoice(tenant.tenant_id, job.job_id)

        assert exc_info.value.existing_artifact_id == invoice.artifact_id
        count = await session.scalar(
            select(func.count()).select_from(BillingArtifact).where(BillingArtifact.job_id == job.job_id)
        )
        assert count == 1

    async def test_insert_after_concurrent_invoice_is_duplicate(
        self, session, billing, tenant, completed_invoice_job, monkeypatch
    ):
        """The unique job constraint rejects an insert whose pre-check ran before the other commit."""
        job = await completed_invoice_job()
        invoice = await billing.generate_invoice(tenant.tenant_id, job.job_id)

        real_lookup = billing.get_artifact_for_job
        lookups = []

        async def lookup_before_other_commit(tenant_id, job_id):
            lookups.append(job_id)
            if len(lookups) == 1:
                return None
            return await real_lookup(tenant_id, job_id)

        monkeypatch.setattr(billing, "get_artifact_for_job", lookup_before_other_commit)

        with pytest.raises(DuplicateArtifactError) as exc_info:
            await billing.generate_invoice(tenant.tenant_id, job.job_id)

        assert exc_info.value.existing_artifact_id == invoice.artifact_id
        assert len(lookups) == 2
        count = await session.scalar(
            select(func.count()).select_from(BillingArtifact).where(BillingArtifact.job_id == job.job_id)
        )
        assert count == 1

    async def test_cash_job_never_gets_invoice(self, billing, tenant, completed_cash_job):
        job = await completed_cash_job()
        with pytest.raises(ValueError):
            await billing.generate_invoice(tenant.tenant_id, job.job_id)

    async def test_visit_is_never_billed(self, billing, tenant, completed_invoice_job):
        job = await completed_invoice_job(job_kind="visit")
        with pytest.raises(ValueError):
            await billing.generate_invoice(tenant.tenant_id, job.job_id)

    async def test_job_must_be_completed(self, billing, tenant, make_job):
        job = await make_job()
        with pytest.raises(ValueError):
            await billing.generate_invoice(tenant.tenant_id, job.job_id)

    async def test_closed_period_blocks_generation(self, session, billing, tenant, admin, completed_invoice_job):
        periods = PeriodLockService(session)
        period = await periods.create_period(tenant.tenant_id, "March 2024", date(2024, 3, 1), date(2024, 3, 31))
        await periods.close_period(tenant.tenant_id, period.period_id, admin, "Month end")
        job = await completed_invoice_job()

        with pytest.raises(PeriodClosedError):
            await billing.generate_invoice(tenant.tenant_id, job.job_id, issue_date=SERVICE_DATE)

        assert await billing.get_artifact_for_job(tenant.tenant_id, job.job_id) is None


class TestInvoiceLifecycle:
    """Sending, payment, overdue and cancellation."""

    async def test_mark_paid_moves_receivable_to_cash(self, session, billing, tenant, completed_invoice_job):
        job = await completed_invoice_job()
        invoice = await billing.generate_invoice(tenant.tenant_id, job.job_id, issue_date=SERVICE_DATE)
        await billing.mark_sent(tenant.tenant_id, invoice.artifact_id)

        paid = await billing.mark_paid(
            tenant.tenant_id, invoice.artifact_id, payment_date=date(2024, 3, 20), payment_reference="ET-991"
        )

        assert paid.status == "paid"
        assert paid.payment_reference == "ET-991"
        ledger = await balances(session, tenant.tenant_id)
        assert ledger[ACCOUNTS_RECEIVABLE] == Decimal("0.00")
        assert ledger[CASH] == Decimal("113.00")

    async def test_mark_overdue_only_flags_sent_past_due(self, billing, tenant, completed_invoice_job):
        sent_job = await completed_invoice_job()
        draft_job = await completed_invoice_job()
        sent = await billing.generate_invoice(tenant.tenant_id, sent_job.job_id, issue_date=SERVICE_DATE)
        await billing.generate_invoice(tenant.tenant_id, draft_job.job_id, issue_date=SERVICE_DATE)
        await billing.mark_sent(tenant.tenant_id, sent.artifact_id)

        flagged = await billing.mark_overdue(tenant.tenant_id, as_of=date(2024, 5, 1))

        assert flagged == [sent.artifact_id]
        assert sent.status == "overdue"

    async def test_cancel_reverses_revenue(self, session, billing, tenant, admin, completed_invoice_job):
        job = await completed_invoice_job()
        invoice = await billing.generate_invoice(tenant.tenant_id, job.job_id, issue_date=SERVICE_DATE)

        cancelled = await billing.cancel_invoice(tenant.tenant_id, invoice.artifact_id, admin, "Client disputed")

        assert cancelled.status == "cancelled"
        assert cancelled.cancellation_reason == "Client disputed"
        ledger = await balances(session, tenant.tenant_id)
        assert all(balance == Decimal("0.00") for balance in ledger.values())
        posting = await LedgerService(session).get_transaction_for_source(
            tenant.tenant_id, f"invoice:{invoice.artifact_id}"
        )
        assert posting.is_void

    async def test_cancel_requires_admin(self, billing, tenant, worker, completed_invoice_job):
        job = await completed_invoice_job()
        invoice = await billing.generate_invoice(tenant.tenant_id, job.job_id)
        with pytest.raises(UnauthorizedActorError):
            await billing.cancel_invoice(tenant.tenant_id, invoice.artifact_id, worker, "No")

    async def test_paid_invoice_cannot_be_cancelled(self, billing, tenant, admin, completed_invoice_job):
        job = await completed_invoice_job()
        invoice = await billing.generate_invoice(tenant.tenant_id, job.job_id)
        await billing.mark_paid(tenant.tenant_id, invoice.artifact_id)
        with pytest.raises(InvalidTransitionError):
            await billing.cancel_invoice(tenant.tenant_id, invoice.artifact_id, admin, "Too late")


class TestPendingInvoiceQueue:
    """Jobs waiting for a manual invoice."""

    async def test_lists_unbilled_non_cash_jobs(self, billing, tenant, completed_invoice_job, completed_cash_job):
        waiting = await completed_invoice_job()
        billed = await completed_invoice_job()
        await completed_cash_job()
        await completed_invoice_job(job_kind="visit")
        await completed_invoice_job(is_billable=False)
        await billing.generate_invoice(tenant.tenant_id, billed.job_id)

        queue = await billing.list_pending_invoice_jobs(tenant.tenant_id)

        assert [job.job_id for job in queue] == [waiting.job_id]
