"""Cash custody workflow.

Tracks collected cash from the moment it is recorded at job completion
until it is either handed to the office (no payroll effect) or kept by the
worker, in which case an administrator must approve deducting it from the
worker's payroll. Keeping cash always produces an administrator
notification.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_finance.errors import EntityNotFoundError, PendingApprovalError, UnauthorizedActorError
from cleaning_finance.events import (
    CashCustodyResolved,
    CashPendingApproval,
    EventEmitter,
    EventMetadata,
    get_emitter,
)
from cleaning_finance.models import CashCustodyRecord, CompensationEntry, Job, Notification, utcnow
from cleaning_finance.services.actors import Actor
from cleaning_finance.services.audit import record_audit
from cleaning_finance.services.compensation_service import CompensationService
from cleaning_finance.services.state_machine import (
    CashCustodyStateMachine,
    CompensationStatus,
    CustodyState,
)
from cleaning_finance.services.tenant_config_service import TenantConfig, TenantConfigService

logger = logging.getLogger(__name__)

HANDLING_CHOICES = (CustodyState.KEPT_BY_WORKER.value, CustodyState.HANDED_TO_OFFICE.value)


class CashCustodyService:
    """Drive cash custody records and their payroll consequences."""

    def __init__(
        self,
        session: AsyncSession,
        emitter: EventEmitter | None = None,
        config_service: TenantConfigService | None = None,
    ):
        self.session = session
        self.emitter = emitter or get_emitter()
        self.config_service = config_service or TenantConfigService(session)
        self.compensation = CompensationService(session)

    async def get_record(self, tenant_id: UUID, record_id: UUID) -> CashCustodyRecord:
        record = await self.session.get(CashCustodyRecord, record_id)
        if record is None or record.tenant_id != tenant_id:
            raise EntityNotFoundError("CashCustodyRecord", record_id)
        return record

    async def get_record_for_job(self, tenant_id: UUID, job_id: UUID) -> CashCustodyRecord | None:
        result = await self.session.execute(
            select(CashCustodyRecord).where(
                CashCustodyRecord.tenant_id == tenant_id,
                CashCustodyRecord.job_id == job_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_pending_approvals(self, tenant_id: UUID) -> list[CashCustodyRecord]:
        result = await self.session.execute(
            select(CashCustodyRecord)
            .where(
                CashCustodyRecord.tenant_id == tenant_id,
                CashCustodyRecord.custody_state == CustodyState.PENDING_ADMIN_APPROVAL.value,
            )
            .order_by(CashCustodyRecord.service_date)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Opening and handling choice
    # ------------------------------------------------------------------

    async def open_custody(self, job: Job, actor: Actor) -> tuple[CashCustodyRecord, bool]:
        """Open the record for a cash job and apply the recorded handling choice.

        Returns the record and whether this call created it.
        """
        existing = await self.get_record_for_job(job.tenant_id, job.job_id)
        if existing is not None:
            return existing, False

        if job.payment_amount is None:
            raise ValueError(f"Cash job {job.job_id} has no payment amount")

        CashCustodyStateMachine.validate_transition(CustodyState.NOT_APPLICABLE, CustodyState.OPEN)
        record = CashCustodyRecord(
            tenant_id=job.tenant_id,
            job_id=job.job_id,
            worker_id=job.worker_id,
            service_date=job.scheduled_date,
            amount=job.payment_amount,
            received_by=job.payment_received_by,
            custody_state=CustodyState.OPEN.value,
            compensation_consequence="none",
        )
        self.session.add(record)
        await self.session.flush()
        logger.info("Opened cash custody %s for job %s (%s)", record.record_id, job.job_id, record.amount)

        if job.cash_handling_choice:
            await self._apply_choice(record, job.cash_handling_choice, actor)
        return record, True

    async def record_handling_choice(
        self,
        tenant_id: UUID,
        record_id: UUID,
        choice: str,
        actor: Actor,
    ) -> CashCustodyRecord:
        """Record who holds cash for a record opened without a choice."""
        record = await self.get_record(tenant_id, record_id)
        if record.custody_state != CustodyState.OPEN.value:
            raise PendingApprovalError(record_id, record.custody_state, "record handling choice")
        if not actor.is_privileged and actor.actor_id != record.worker_id:
            raise UnauthorizedActorError(actor.actor_id, "record cash handling")

        await self._apply_choice(record, choice, actor)

        if record.compensation_entry_id is not None:
            entry = await self.compensation.get_entry(tenant_id, record.compensation_entry_id)
            config = await self.config_service.get_config(tenant_id)
            self.apply_consequence(record, entry, config)
        await self.session.flush()
        return record

    async def _apply_choice(self, record: CashCustodyRecord, choice: str, actor: Actor) -> None:
        if choice not in HANDLING_CHOICES:
            raise ValueError(f"Unknown cash handling choice '{choice}'")

        if choice == CustodyState.KEPT_BY_WORKER.value:
            CashCustodyStateMachine.validate_transition(record.custody_state, CustodyState.KEPT_BY_WORKER)
            record.custody_state = CustodyState.KEPT_BY_WORKER.value
            record.held_by = "worker"
            record.compensation_consequence = "deduct"
            record_audit(
                self.session,
                tenant_id=record.tenant_id,
                entity_type="cash_custody",
                entity_id=record.record_id,
                action="cash_kept",
                actor_id=actor.actor_id,
                after={"amount": str(record.amount), "worker_id": str(record.worker_id)},
            )
            # Kept cash always waits for an administrator
            CashCustodyStateMachine.validate_transition(
                record.custody_state, CustodyState.PENDING_ADMIN_APPROVAL
            )
            record.custody_state = CustodyState.PENDING_ADMIN_APPROVAL.value
            await self.session.flush()
            self._notify_admins(record, actor)
        else:
            CashCustodyStateMachine.validate_transition(record.custody_state, CustodyState.HANDED_TO_OFFICE)
            record.custody_state = CustodyState.HANDED_TO_OFFICE.value
            record.held_by = "office"
            record.compensation_consequence = "none"
            record_audit(
                self.session,
                tenant_id=record.tenant_id,
                entity_type="cash_custody",
                entity_id=record.record_id,
                action="cash_handed_over",
                actor_id=actor.actor_id,
                after={"amount": str(record.amount)},
            )
            await self.session.flush()

    def _notify_admins(self, record: CashCustodyRecord, actor: Actor) -> None:
        self.session.add(
            Notification(
                tenant_id=record.tenant_id,
                notification_type="cash",
                severity="warning",
                role_target="admin",
                title="Cash kept by worker",
                message=(
                    f"A worker kept {record.amount} in cash for job {record.job_id}. "
                    "Approve or dispute the payroll deduction."
                ),
                entity_type="cash_custody",
                entity_id=record.record_id,
            )
        )
        self.emitter.emit(
            CashPendingApproval(
                metadata=EventMetadata.create(
                    record.tenant_id, actor_id=actor.actor_id, actor_type=actor.role.value
                ),
                cash_custody_record_id=record.record_id,
                job_id=record.job_id,
                worker_id=record.worker_id,
                amount=record.amount,
            )
        )

    # ------------------------------------------------------------------
    # Compensation consequences
    # ------------------------------------------------------------------

    def attach_entry(self, record: CashCustodyRecord, entry: CompensationEntry, config: TenantConfig) -> None:
        """Link a compensation entry to its custody record and apply the consequence."""
        record.compensation_entry_id = entry.entry_id
        entry.cash_custody_record_id = record.record_id
        self.apply_consequence(record, entry, config)

    def apply_consequence(
        self,
        record: CashCustodyRecord,
        entry: CompensationEntry,
        config: TenantConfig,
    ) -> None:
        """Bring the entry's status in line with the record's custody state."""
        state = record.custody_state
        status = entry.status

        if state == CustodyState.OPEN.value:
            if status == CompensationStatus.PENDING.value:
                self.compensation.transition(entry, CompensationStatus.PENDING_HANDOVER)

        elif state == CustodyState.PENDING_ADMIN_APPROVAL.value:
            if status in (CompensationStatus.PENDING.value, CompensationStatus.PENDING_HANDOVER.value):
                self.compensation.transition(entry, CompensationStatus.PENDING_ADMIN_APPROVAL)
            entry.deduct_from_payroll = True
            entry.cash_deduction_amount = record.amount

        elif state == CustodyState.HANDED_TO_OFFICE.value:
            if status == CompensationStatus.PENDING_HANDOVER.value:
                self.compensation.transition(entry, CompensationStatus.PENDING)
            if not config.route_office_cash_through_payroll and entry.status == CompensationStatus.PENDING.value:
                # Settled with the worker outside payroll
                self.compensation.transition(entry, CompensationStatus.APPROVED)
                self.compensation.transition(entry, CompensationStatus.PAID)
                entry.paid_out_of_band = True

        elif state == CustodyState.APPROVED.value:
            if status == CompensationStatus.PENDING_ADMIN_APPROVAL.value:
                self.compensation.transition(entry, CompensationStatus.APPROVED)

        elif state in (CustodyState.REJECTED.value, CustodyState.RESOLVED.value):
            if status == CompensationStatus.PENDING_ADMIN_APPROVAL.value:
                self.compensation.transition(entry, CompensationStatus.REJECTED)
            entry.deduct_from_payroll = False

    # ------------------------------------------------------------------
    # Administrator decisions
    # ------------------------------------------------------------------

    async def approve(self, tenant_id: UUID, record_id: UUID, actor: Actor) -> CashCustodyRecord:
        """Confirm the payroll deduction for kept cash."""
        actor.require_admin("approve cash custody")
        record = await self.get_record(tenant_id, record_id)
        self._require_state(record, CustodyState.PENDING_ADMIN_APPROVAL, "approve")

        CashCustodyStateMachine.validate_transition(record.custody_state, CustodyState.APPROVED)
        record.custody_state = CustodyState.APPROVED.value
        record.approved_by = actor.actor_id
        record.approved_at = utcnow()

        entry = await self._entry_for(record)
        if entry is not None:
            self.apply_consequence(record, entry, await self.config_service.get_config(tenant_id))
            entry.approved_by = actor.actor_id
            entry.approved_at = record.approved_at

        record_audit(
            self.session,
            tenant_id=tenant_id,
            entity_type="cash_custody",
            entity_id=record.record_id,
            action="cash_approved",
            actor_id=actor.actor_id,
            after={"amount": str(record.amount)},
        )
        await self.session.flush()
        self._emit_resolution(record, "approved", actor)
        return record

    async def reject(self, tenant_id: UUID, record_id: UUID, actor: Actor, reason: str) -> CashCustodyRecord:
        """Dispute kept cash. Resolution happens outside the engine."""
        actor.require_admin("dispute cash custody")
        if not reason or not reason.strip():
            raise ValueError("A reason is required to dispute cash")
        record = await self.get_record(tenant_id, record_id)
        self._require_state(record, CustodyState.PENDING_ADMIN_APPROVAL, "dispute")

        CashCustodyStateMachine.validate_transition(record.custody_state, CustodyState.REJECTED)
        record.custody_state = CustodyState.REJECTED.value
        record.disputed_by = actor.actor_id
        record.disputed_at = utcnow()
        record.dispute_reason = reason.strip()

        entry = await self._entry_for(record)
        if entry is not None:
            self.apply_consequence(record, entry, await self.config_service.get_config(tenant_id))
            entry.rejected_by = actor.actor_id
            entry.rejected_at = record.disputed_at
            entry.rejection_reason = record.dispute_reason

        record_audit(
            self.session,
            tenant_id=tenant_id,
            entity_type="cash_custody",
            entity_id=record.record_id,
            action="cash_disputed",
            actor_id=actor.actor_id,
            reason=record.dispute_reason,
        )
        await self.session.flush()
        self._emit_resolution(record, "rejected", actor)
        return record

    async def resolve(self, tenant_id: UUID, record_id: UUID, actor: Actor, notes: str) -> CashCustodyRecord:
        """Close out a disputed record once it was settled by hand."""
        actor.require_admin("resolve cash dispute")
        if not notes or not notes.strip():
            raise ValueError("Resolution notes are required")
        record = await self.get_record(tenant_id, record_id)
        self._require_state(record, CustodyState.REJECTED, "resolve")

        CashCustodyStateMachine.validate_transition(record.custody_state, CustodyState.RESOLVED)
        record.custody_state = CustodyState.RESOLVED.value
        record.resolved_by = actor.actor_id
        record.resolved_at = utcnow()
        record.resolution_notes = notes.strip()

        record_audit(
            self.session,
            tenant_id=tenant_id,
            entity_type="cash_custody",
            entity_id=record.record_id,
            action="cash_resolved",
            actor_id=actor.actor_id,
            reason=record.resolution_notes,
        )
        await self.session.flush()
        self._emit_resolution(record, "resolved", actor)
        return record

    def _require_state(self, record: CashCustodyRecord, state: CustodyState, action: str) -> None:
        if record.custody_state != state.value:
            raise PendingApprovalError(
                record.record_id,
                record.custody_state,
                action,
                f"expected '{state.value}'",
            )

    async def _entry_for(self, record: CashCustodyRecord) -> CompensationEntry | None:
        if record.compensation_entry_id is None:
            return None
        return await self.compensation.get_entry(record.tenant_id, record.compensation_entry_id)

    def _emit_resolution(self, record: CashCustodyRecord, outcome: str, actor: Actor) -> None:
        self.emitter.emit(
            CashCustodyResolved(
                metadata=EventMetadata.create(
                    record.tenant_id, actor_id=actor.actor_id, actor_type=actor.role.value
                ),
                cash_custody_record_id=record.record_id,
                job_id=record.job_id,
                outcome=outcome,
                amount=record.amount,
            )
        )
