"""Persist compensation entries computed for completed jobs."""

from __future__ import annotations

import logging
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_finance.calculators.compensation import CompensationCalculator
from cleaning_finance.database import insert_ignoring_conflicts
from cleaning_finance.errors import EntityNotFoundError
from cleaning_finance.models import CompensationEntry, Job, WorkerCompensationProfile, utcnow
from cleaning_finance.services.state_machine import CompensationStateMachine, CompensationStatus
from cleaning_finance.services.tenant_config_service import TenantConfig

logger = logging.getLogger(__name__)


class CompensationService:
    """Create and transition compensation entries, one per (job, worker)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_profile(self, tenant_id: UUID, worker_id: UUID) -> WorkerCompensationProfile | None:
        result = await self.session.execute(
            select(WorkerCompensationProfile).where(
                WorkerCompensationProfile.tenant_id == tenant_id,
                WorkerCompensationProfile.worker_id == worker_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_entry(self, tenant_id: UUID, entry_id: UUID) -> CompensationEntry:
        entry = await self.session.get(CompensationEntry, entry_id)
        if entry is None or entry.tenant_id != tenant_id:
            raise EntityNotFoundError("CompensationEntry", entry_id)
        return entry

    async def get_entry_for_job(self, job_id: UUID, worker_id: UUID) -> CompensationEntry | None:
        result = await self.session.execute(
            select(CompensationEntry).where(
                CompensationEntry.job_id == job_id,
                CompensationEntry.worker_id == worker_id,
            )
        )
        return result.scalar_one_or_none()

    async def create_for_job(self, job: Job, config: TenantConfig) -> tuple[CompensationEntry, bool]:
        """Compute and store the entry for a job's assigned worker.

        Returns the entry and whether it was created by this call. An
        existing entry is returned untouched; its snapshot is never
        recomputed.
        """
        if job.worker_id is None:
            raise ValueError(f"Job {job.job_id} has no assigned worker")

        existing = await self.get_entry_for_job(job.job_id, job.worker_id)
        if existing is not None:
            return existing, False

        profile = await self.get_profile(job.tenant_id, job.worker_id)
        calculator = CompensationCalculator(config.default_hourly_rate)
        terms = calculator.resolve_terms(profile)
        computed = calculator.calculate(terms, job.hours_worked, job.billable_amount)

        entry_id = uuid4()
        stmt = insert_ignoring_conflicts(
            self.session,
            CompensationEntry.__table__,
            {
                "entry_id": entry_id,
                "tenant_id": job.tenant_id,
                "job_id": job.job_id,
                "worker_id": job.worker_id,
                "service_date": job.scheduled_date,
                "compensation_model": computed.model.value,
                "rate": computed.rate,
                "hours_worked": computed.hours_worked,
                "job_total": computed.job_total,
                "amount_due": computed.amount_due,
                "status": CompensationStatus.PENDING.value,
            },
            index_elements=["job_id", "worker_id"],
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            entry = await self.get_entry_for_job(job.job_id, job.worker_id)
            return entry, False

        entry = await self.session.get(CompensationEntry, entry_id)
        logger.info(
            "Compensation entry %s for worker %s on job %s: %s (%s @ %s)",
            entry_id,
            job.worker_id,
            job.job_id,
            computed.amount_due,
            computed.model.value,
            computed.rate,
        )
        return entry, True

    def transition(self, entry: CompensationEntry, to_status: CompensationStatus) -> None:
        """Move an entry along its lifecycle, rejecting invalid edges."""
        CompensationStateMachine.validate_transition(entry.status, to_status)
        entry.status = to_status.value
        if to_status == CompensationStatus.PAID:
            entry.paid_at = utcnow()
