"""Invoice and receipt generation.

A job gets at most one billing artifact ever: an invoice when it was not
paid in cash, a receipt when it was. The unique constraint on
``(tenant_id, job_id)`` in ``billing_artifact`` backs this up across
concurrent requests; the service also checks before and after writing.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_finance.calculators.types import quantize_money
from cleaning_finance.database import insert_ignoring_conflicts
from cleaning_finance.errors import ConfigurationError, DuplicateArtifactError, EntityNotFoundError
from cleaning_finance.events import (
    EventEmitter,
    EventMetadata,
    InvoiceGenerated,
    ReceiptGenerated,
    get_emitter,
)
from cleaning_finance.models import BillingArtifact, DocumentSequence, Job, utcnow
from cleaning_finance.services.actors import Actor
from cleaning_finance.services.audit import record_audit
from cleaning_finance.services.ledger_service import LedgerService
from cleaning_finance.services.period_lock_service import PeriodLockService
from cleaning_finance.services.state_machine import (
    InvoiceStateMachine,
    InvoiceStatus,
    JobStatus,
    ReceiptStateMachine,
    ReceiptStatus,
)
from cleaning_finance.services.tenant_config_service import TenantConfig, TenantConfigService

logger = logging.getLogger(__name__)

INVOICE = "invoice"
RECEIPT = "receipt"
NUMBER_PREFIX = {INVOICE: "INV", RECEIPT: "RCP"}
HUNDRED = Decimal("100")


def format_artifact_number(artifact_type: str, issue_date: date, sequence_value: int) -> str:
    """Human-readable number, e.g. ``INV-2026-00042``."""
    return f"{NUMBER_PREFIX[artifact_type]}-{issue_date.year}-{sequence_value:05d}"


def compute_tax(base: Decimal, tax_rate: Decimal) -> tuple[Decimal, Decimal]:
    """Return (tax_amount, total) for a pre-tax base and a percentage rate."""
    tax_amount = quantize_money(base * tax_rate / HUNDRED)
    return tax_amount, quantize_money(base) + tax_amount


class BillingService:
    """Create billing artifacts and move them through their lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        emitter: EventEmitter | None = None,
        config_service: TenantConfigService | None = None,
    ):
        self.session = session
        self.emitter = emitter or get_emitter()
        self.config_service = config_service or TenantConfigService(session)
        self.period_lock = PeriodLockService(session, self.emitter)
        self.ledger = LedgerService(session, self.period_lock)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_artifact(self, tenant_id: UUID, artifact_id: UUID) -> BillingArtifact:
        artifact = await self.session.get(BillingArtifact, artifact_id)
        if artifact is None or artifact.tenant_id != tenant_id:
            raise EntityNotFoundError("BillingArtifact", artifact_id)
        return artifact

    async def get_artifact_for_job(self, tenant_id: UUID, job_id: UUID) -> BillingArtifact | None:
        result = await self.session.execute(
            select(BillingArtifact).where(
                BillingArtifact.tenant_id == tenant_id,
                BillingArtifact.job_id == job_id,
            )
        )
        return result.scalars().first()

    async def list_pending_invoice_jobs(self, tenant_id: UUID) -> list[Job]:
        """Completed, billable service jobs not paid in cash that have no artifact yet."""
        has_artifact = (
            select(BillingArtifact.artifact_id)
            .where(
                BillingArtifact.tenant_id == Job.tenant_id,
                BillingArtifact.job_id == Job.job_id,
            )
            .exists()
        )
        result = await self.session.execute(
            select(Job)
            .where(
                Job.tenant_id == tenant_id,
                Job.status == JobStatus.COMPLETED.value,
                Job.job_kind == "service",
                Job.is_billable.is_(True),
                (Job.payment_method.is_(None)) | (Job.payment_method != "cash"),
                ~has_artifact,
            )
            .order_by(Job.scheduled_date, Job.created_at)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_invoice(
        self,
        tenant_id: UUID,
        job_id: UUID,
        base_amount: Decimal | None = None,
        issue_date: date | None = None,
    ) -> BillingArtifact:
        """Create the invoice for a non-cash job.

        Raises:
            DuplicateArtifactError: the job already has an invoice or receipt.
            PeriodClosedError: the issue date is in a closed financial period.
        """
        job = await self._get_job(tenant_id, job_id)
        if job.is_cash:
            raise ValueError(f"Job {job_id} was paid in cash and is billed with a receipt")
        if not job.is_billable:
            raise ValueError(f"Job {job_id} is not billable")
        return await self._generate(job, INVOICE, base_amount, issue_date)

    async def generate_receipt(
        self,
        tenant_id: UUID,
        job_id: UUID,
        base_amount: Decimal | None = None,
        issue_date: date | None = None,
    ) -> BillingArtifact:
        """Create the receipt for a cash job."""
        job = await self._get_job(tenant_id, job_id)
        if not job.is_cash:
            raise ValueError(f"Job {job_id} was not paid in cash and is billed with an invoice")
        return await self._generate(job, RECEIPT, base_amount, issue_date)

    async def allocate_number(self, tenant_id: UUID, artifact_type: str) -> int:
        """Next value of the tenant's counter for ``artifact_type``.

        Values are never handed out twice; a failed generation leaves a gap.
        """
        await self.session.execute(
            insert_ignoring_conflicts(
                self.session,
                DocumentSequence.__table__,
                {"tenant_id": tenant_id, "artifact_type": artifact_type, "last_value": 0},
                index_elements=["tenant_id", "artifact_type"],
            )
        )
        await self.session.execute(
            update(DocumentSequence)
            .where(
                DocumentSequence.tenant_id == tenant_id,
                DocumentSequence.artifact_type == artifact_type,
            )
            .values(last_value=DocumentSequence.last_value + 1)
        )
        result = await self.session.execute(
            select(DocumentSequence.last_value).where(
                DocumentSequence.tenant_id == tenant_id,
                DocumentSequence.artifact_type == artifact_type,
            )
        )
        return int(result.scalar_one())

    async def _generate(
        self,
        job: Job,
        artifact_type: str,
        base_amount: Decimal | None,
        issue_date: date | None,
    ) -> BillingArtifact:
        if job.is_visit:
            raise ValueError(f"Job {job.job_id} is a visit and is never billed")
        if job.status != JobStatus.COMPLETED.value:
            raise ValueError(f"Job {job.job_id} is not completed")

        existing = await self.get_artifact_for_job(job.tenant_id, job.job_id)
        if existing is not None:
            raise DuplicateArtifactError(job.job_id, existing.artifact_id)

        base = base_amount if base_amount is not None else job.billable_amount
        if base is None:
            raise ConfigurationError("service_amount", f"job {job.job_id} has no amount to bill")
        if base < 0:
            raise ValueError("Amount must not be negative")

        config = await self.config_service.get_config(job.tenant_id)
        issue_date = issue_date or date.today()
        await self.period_lock.ensure_open(job.tenant_id, issue_date)

        sequence_value = await self.allocate_number(job.tenant_id, artifact_type)
        artifact_id = await self._insert_artifact(job, artifact_type, base, issue_date, sequence_value, config)

        artifact = await self.session.get(BillingArtifact, artifact_id)
        await self.ledger.post_billing_artifact(artifact)
        logger.info(
            "Generated %s %s for job %s (total %s)",
            artifact_type,
            artifact.artifact_number,
            job.job_id,
            artifact.total,
        )

        metadata = EventMetadata.create(job.tenant_id)
        if artifact_type == INVOICE:
            self.emitter.emit(
                InvoiceGenerated(
                    metadata=metadata,
                    artifact_id=artifact.artifact_id,
                    job_id=job.job_id,
                    artifact_number=artifact.artifact_number,
                    total=artifact.total,
                    due_date=artifact.due_date,
                )
            )
        else:
            self.emitter.emit(
                ReceiptGenerated(
                    metadata=metadata,
                    artifact_id=artifact.artifact_id,
                    job_id=job.job_id,
                    artifact_number=artifact.artifact_number,
                    total=artifact.total,
                )
            )
        return artifact

    async def _insert_artifact(
        self,
        job: Job,
        artifact_type: str,
        base: Decimal,
        issue_date: date,
        sequence_value: int,
        config: TenantConfig,
    ) -> UUID:
        tax_amount, total = compute_tax(base, config.tax_rate)
        now = utcnow()
        if artifact_type == INVOICE:
            status = InvoiceStatus.DRAFT.value
            due_date = issue_date + timedelta(days=config.invoice_due_days)
            sent_at = None
        else:
            status = ReceiptStatus.SENT.value if config.auto_send_cash_receipt else ReceiptStatus.ISSUED.value
            due_date = None
            sent_at = now if config.auto_send_cash_receipt else None

        artifact_id = uuid4()
        stmt = insert_ignoring_conflicts(
            self.session,
            BillingArtifact.__table__,
            {
                "artifact_id": artifact_id,
                "tenant_id": job.tenant_id,
                "job_id": job.job_id,
                "artifact_type": artifact_type,
                "artifact_number": format_artifact_number(artifact_type, issue_date, sequence_value),
                "sequence_value": sequence_value,
                "client_id": job.client_id,
                "issue_date": issue_date,
                "due_date": due_date,
                "subtotal": quantize_money(base),
                "tax_rate": config.tax_rate,
                "tax_amount": tax_amount,
                "total": total,
                "currency": config.currency,
                "status": status,
                "payment_method": job.payment_method,
                "payment_reference": job.payment_reference,
                "sent_at": sent_at,
            },
            index_elements=["tenant_id", "job_id"],
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            # Another request won the race for this job
            existing = await self.get_artifact_for_job(job.tenant_id, job.job_id)
            raise DuplicateArtifactError(job.job_id, existing.artifact_id if existing else None)

        count = await self.session.scalar(
            select(func.count())
            .select_from(BillingArtifact)
            .where(
                BillingArtifact.tenant_id == job.tenant_id,
                BillingArtifact.job_id == job.job_id,
            )
        )
        if count != 1:
            await self.session.execute(
                delete(BillingArtifact).where(BillingArtifact.artifact_id == artifact_id)
            )
            raise DuplicateArtifactError(job.job_id)
        return artifact_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def mark_sent(self, tenant_id: UUID, artifact_id: UUID) -> BillingArtifact:
        artifact = await self.get_artifact(tenant_id, artifact_id)
        if artifact.is_invoice:
            InvoiceStateMachine.validate_transition(artifact.status, InvoiceStatus.SENT)
            artifact.status = InvoiceStatus.SENT.value
        else:
            ReceiptStateMachine.validate_transition(artifact.status, ReceiptStatus.SENT)
            artifact.status = ReceiptStatus.SENT.value
        artifact.sent_at = utcnow()
        await self.session.flush()
        return artifact

    async def mark_paid(
        self,
        tenant_id: UUID,
        artifact_id: UUID,
        payment_date: date | None = None,
        payment_reference: str | None = None,
    ) -> BillingArtifact:
        """Record payment of an invoice and move the receivable into cash."""
        artifact = await self.get_artifact(tenant_id, artifact_id)
        if not artifact.is_invoice:
            raise ValueError("Receipts are already paid")
        InvoiceStateMachine.validate_transition(artifact.status, InvoiceStatus.PAID)

        payment_date = payment_date or date.today()
        await self.ledger.post_invoice_payment(artifact, payment_date)

        artifact.status = InvoiceStatus.PAID.value
        artifact.paid_at = utcnow()
        if payment_reference:
            artifact.payment_reference = payment_reference
        await self.session.flush()
        logger.info("Invoice %s paid", artifact.artifact_number)
        return artifact

    async def mark_overdue(self, tenant_id: UUID, as_of: date | None = None) -> list[UUID]:
        """Flag sent invoices whose due date has passed."""
        as_of = as_of or date.today()
        result = await self.session.execute(
            select(BillingArtifact).where(
                BillingArtifact.tenant_id == tenant_id,
                BillingArtifact.artifact_type == INVOICE,
                BillingArtifact.status == InvoiceStatus.SENT.value,
                BillingArtifact.due_date < as_of,
            )
        )
        flagged: list[UUID] = []
        for invoice in result.scalars().all():
            invoice.status = InvoiceStatus.OVERDUE.value
            flagged.append(invoice.artifact_id)
        await self.session.flush()
        if flagged:
            logger.info("Marked %s invoice(s) overdue for tenant %s", len(flagged), tenant_id)
        return flagged

    async def cancel_invoice(
        self,
        tenant_id: UUID,
        artifact_id: UUID,
        actor: Actor,
        reason: str,
    ) -> BillingArtifact:
        """Cancel an unpaid invoice and reverse its revenue posting."""
        actor.require_admin("cancel invoice")
        if not reason or not reason.strip():
            raise ValueError("A reason is required to cancel an invoice")

        artifact = await self.get_artifact(tenant_id, artifact_id)
        if not artifact.is_invoice:
            raise ValueError("Only invoices can be cancelled")
        InvoiceStateMachine.validate_transition(artifact.status, InvoiceStatus.CANCELLED)

        posting = await self.ledger.get_transaction_for_source(
            tenant_id, f"{INVOICE}:{artifact.artifact_id}"
        )
        if posting is not None and not posting.is_void:
            await self.ledger.reverse_transaction(
                tenant_id=tenant_id,
                transaction_id=posting.transaction_id,
                reason=reason,
            )

        before = {"status": artifact.status}
        artifact.status = InvoiceStatus.CANCELLED.value
        artifact.cancelled_at = utcnow()
        artifact.cancellation_reason = reason.strip()
        record_audit(
            self.session,
            tenant_id=tenant_id,
            entity_type="invoice",
            entity_id=artifact.artifact_id,
            action="cancelled",
            actor_id=actor.actor_id,
            reason=artifact.cancellation_reason,
            before=before,
            after={"status": artifact.status},
        )
        await self.session.flush()
        return artifact

    async def _get_job(self, tenant_id: UUID, job_id: UUID) -> Job:
        job = await self.session.get(Job, job_id)
        if job is None or job.tenant_id != tenant_id:
            raise EntityNotFoundError("Job", job_id)
        return job
