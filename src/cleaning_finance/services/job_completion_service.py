"""Job completion event processor.

Entry point the scheduling side calls when a job changes status. On
completion it decides how the job is monetized:

1. Visits record notes only.
2. Cash jobs open a cash custody record and get a receipt, never an invoice.
3. Other jobs get an invoice right away in automatic mode, or wait in the
   pending-invoice queue in manual mode.
4. An assigned worker with a recorded payment gets a compensation entry.

Every step checks for its own output first, so calling ``complete_job``
again for the same job finishes whatever a failed earlier call left undone
and repeats nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_finance.database import acquire_tenant_lock
from cleaning_finance.errors import DuplicateArtifactError, EntityNotFoundError, UnauthorizedActorError
from cleaning_finance.events import EventEmitter, EventMetadata, JobCompleted, get_emitter
from cleaning_finance.models import BillingArtifact, CashCustodyRecord, Job, utcnow
from cleaning_finance.services.actors import Actor, ActorRole
from cleaning_finance.services.billing_service import INVOICE, RECEIPT, BillingService
from cleaning_finance.services.cash_custody_service import HANDLING_CHOICES, CashCustodyService
from cleaning_finance.services.compensation_service import CompensationService
from cleaning_finance.services.state_machine import JobStateMachine, JobStatus
from cleaning_finance.services.tenant_config_service import TenantConfig, TenantConfigService

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("cash", "cheque", "e_transfer", "credit_card", "debit", "invoice", "other")


@dataclass(frozen=True)
class PaymentData:
    """Structured payment captured at completion."""

    method: str
    amount: Decimal | None = None
    payment_date: date | None = None
    reference: str | None = None
    received_by: str | None = None
    cash_handling_choice: str | None = None
    notes: str | None = None

    def validate(self) -> None:
        if self.method not in PAYMENT_METHODS:
            raise ValueError(f"Unknown payment method '{self.method}'")
        if self.amount is not None and self.amount < 0:
            raise ValueError("Payment amount must not be negative")
        if self.method == "cash":
            if self.amount is None:
                raise ValueError("Cash payments need an amount")
            if self.cash_handling_choice is not None and self.cash_handling_choice not in HANDLING_CHOICES:
                raise ValueError(f"Unknown cash handling choice '{self.cash_handling_choice}'")
        elif self.cash_handling_choice is not None:
            raise ValueError("Cash handling choice only applies to cash payments")


@dataclass(frozen=True)
class CompletionRequest:
    """What the scheduling side sends when a job is completed."""

    after_photo_ref: str | None = None
    notes: str | None = None
    payment: PaymentData | None = None


@dataclass
class CompletionResult:
    """Ids of everything the completion produced or found."""

    job_id: UUID
    already_completed: bool = False
    artifact_id: UUID | None = None
    artifact_type: str | None = None
    artifact_created: bool = False
    pending_invoice: bool = False
    compensation_entry_id: UUID | None = None
    cash_custody_record_id: UUID | None = None


class JobCompletionService:
    """Job status transitions and the completion side effects."""

    def __init__(
        self,
        session: AsyncSession,
        emitter: EventEmitter | None = None,
    ):
        self.session = session
        self.emitter = emitter or get_emitter()
        self.config_service = TenantConfigService(session)
        self.billing = BillingService(session, self.emitter, self.config_service)
        self.custody = CashCustodyService(session, self.emitter, self.config_service)
        self.compensation = CompensationService(session)

    async def get_job(self, tenant_id: UUID, job_id: UUID) -> Job:
        job = await self.session.get(Job, job_id)
        if job is None or job.tenant_id != tenant_id:
            raise EntityNotFoundError("Job", job_id)
        return job

    async def start_job(self, tenant_id: UUID, job_id: UUID, actor: Actor) -> Job:
        job = await self.get_job(tenant_id, job_id)
        self._check_actor(job, actor, "start job")
        JobStateMachine.validate_transition(job.status, JobStatus.IN_PROGRESS)
        job.status = JobStatus.IN_PROGRESS.value
        job.started_at = utcnow()
        await self.session.flush()
        return job

    async def cancel_job(self, tenant_id: UUID, job_id: UUID, actor: Actor) -> Job:
        job = await self.get_job(tenant_id, job_id)
        self._check_actor(job, actor, "cancel job")
        JobStateMachine.validate_transition(job.status, JobStatus.CANCELLED)
        job.status = JobStatus.CANCELLED.value
        job.cancelled_at = utcnow()
        await self.session.flush()
        return job

    async def complete_job(
        self,
        tenant_id: UUID,
        job_id: UUID,
        request: CompletionRequest,
        actor: Actor,
    ) -> CompletionResult:
        """Complete a job and run the financial side effects.

        Safe to call again for a job that is already completed.
        """
        job = await self._lock_job(tenant_id, job_id)
        self._check_actor(job, actor, "complete job")
        result = CompletionResult(job_id=job.job_id)

        with self.emitter.batch():
            if job.status == JobStatus.COMPLETED.value:
                result.already_completed = True
                if request.payment is not None and job.payment_method != request.payment.method:
                    logger.warning(
                        "Ignoring payment data on re-completion of job %s; recorded method is %s",
                        job.job_id,
                        job.payment_method,
                    )
            else:
                await self._mark_completed(job, request, actor)

            if job.is_visit:
                logger.info("Visit %s completed; no financial artifacts", job.job_id)
                return result

            config = await self.config_service.get_config(tenant_id)

            record: CashCustodyRecord | None = None
            if job.is_cash:
                record, _ = await self.custody.open_custody(job, actor)
                result.cash_custody_record_id = record.record_id
                artifact, created = await self._ensure_artifact(job, RECEIPT)
                self._record_artifact(result, artifact, created)
            elif job.is_billable:
                existing = await self.billing.get_artifact_for_job(tenant_id, job.job_id)
                if existing is not None:
                    self._record_artifact(result, existing, False)
                elif config.is_automatic_invoicing and job.billable_amount is not None:
                    artifact, created = await self._ensure_artifact(job, INVOICE)
                    self._record_artifact(result, artifact, created)
                else:
                    if config.is_automatic_invoicing:
                        logger.warning("Job %s has no amount to invoice; queued for manual invoicing", job.job_id)
                    result.pending_invoice = True

            if job.worker_id is not None and job.has_payment:
                entry, _ = await self.compensation.create_for_job(job, config)
                result.compensation_entry_id = entry.entry_id
                if record is not None and record.compensation_entry_id is None:
                    self.custody.attach_entry(record, entry, config)

            await self.session.flush()
        return result

    async def _lock_job(self, tenant_id: UUID, job_id: UUID) -> Job:
        """Load the job holding its lock until the transaction ends.

        A second completion of the same job waits here and then sees the
        committed status and artifacts.
        """
        await acquire_tenant_lock(self.session, f"job:{job_id}")
        result = await self.session.execute(
            select(Job)
            .where(Job.job_id == job_id, Job.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        job = result.scalar_one_or_none()
        if job is None:
            raise EntityNotFoundError("Job", job_id)
        return job

    async def _mark_completed(self, job: Job, request: CompletionRequest, actor: Actor) -> None:
        JobStateMachine.validate_transition(job.status, JobStatus.COMPLETED)
        payment = request.payment
        if payment is not None:
            payment.validate()

        job.status = JobStatus.COMPLETED.value
        job.completed_at = utcnow()
        job.completion_notes = request.notes
        job.after_photo_ref = request.after_photo_ref
        if payment is not None:
            job.payment_method = payment.method
            job.payment_amount = payment.amount
            job.payment_date = payment.payment_date or date.today()
            job.payment_reference = payment.reference
            job.payment_received_by = payment.received_by
            job.cash_handling_choice = payment.cash_handling_choice
            job.payment_notes = payment.notes
        await self.session.flush()
        logger.info("Job %s completed (payment=%s)", job.job_id, job.payment_method)

        self.emitter.emit(
            JobCompleted(
                metadata=EventMetadata.create(
                    job.tenant_id, actor_id=actor.actor_id, actor_type=actor.role.value
                ),
                job_id=job.job_id,
                worker_id=job.worker_id,
                job_kind=job.job_kind,
                payment_method=job.payment_method,
            )
        )

    async def _ensure_artifact(self, job: Job, artifact_type: str) -> tuple[BillingArtifact, bool]:
        existing = await self.billing.get_artifact_for_job(job.tenant_id, job.job_id)
        if existing is not None:
            return existing, False
        try:
            if artifact_type == RECEIPT:
                artifact = await self.billing.generate_receipt(job.tenant_id, job.job_id)
            else:
                artifact = await self.billing.generate_invoice(job.tenant_id, job.job_id)
        except DuplicateArtifactError:
            # A concurrent completion created it first
            existing = await self.billing.get_artifact_for_job(job.tenant_id, job.job_id)
            if existing is None:
                raise
            logger.info("Job %s already billed by a concurrent request", job.job_id)
            return existing, False
        return artifact, True

    @staticmethod
    def _record_artifact(result: CompletionResult, artifact: BillingArtifact, created: bool) -> None:
        result.artifact_id = artifact.artifact_id
        result.artifact_type = artifact.artifact_type
        result.artifact_created = created

    @staticmethod
    def _check_actor(job: Job, actor: Actor, action: str) -> None:
        """Workers may only act on jobs assigned to them."""
        if actor.role == ActorRole.WORKER and (actor.actor_id is None or actor.actor_id != job.worker_id):
            raise UnauthorizedActorError(actor.actor_id, action)
