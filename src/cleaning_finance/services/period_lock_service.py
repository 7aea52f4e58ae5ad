"""Financial period lock: whether a date may receive postings."""

from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_finance.errors import EntityNotFoundError, PendingArtifactsError, PeriodClosedError
from cleaning_finance.events import (
    EventEmitter,
    EventMetadata,
    FinancialPeriodClosed,
    FinancialPeriodReopened,
    get_emitter,
)
from cleaning_finance.models import BillingArtifact, FinancialPeriod, utcnow
from cleaning_finance.services.actors import Actor
from cleaning_finance.services.audit import record_audit
from cleaning_finance.services.state_machine import (
    FinancialPeriodStateMachine,
    FinancialPeriodStatus,
    InvoiceStatus,
)

logger = logging.getLogger(__name__)


class PeriodLockService:
    """Create, close and reopen accounting periods and answer open/closed checks.

    A date not covered by any defined period is treated as open.
    """

    def __init__(self, session: AsyncSession, emitter: EventEmitter | None = None):
        self.session = session
        self.emitter = emitter or get_emitter()

    async def get_period(self, tenant_id: UUID, period_id: UUID) -> FinancialPeriod:
        period = await self.session.get(FinancialPeriod, period_id)
        if period is None or period.tenant_id != tenant_id:
            raise EntityNotFoundError("FinancialPeriod", period_id)
        return period

    async def list_periods(self, tenant_id: UUID) -> list[FinancialPeriod]:
        result = await self.session.execute(
            select(FinancialPeriod)
            .where(FinancialPeriod.tenant_id == tenant_id)
            .order_by(FinancialPeriod.start_date)
        )
        return list(result.scalars().all())

    async def find_period(self, tenant_id: UUID, on_date: date) -> FinancialPeriod | None:
        """The period containing ``on_date``, if one is defined."""
        result = await self.session.execute(
            select(FinancialPeriod).where(
                FinancialPeriod.tenant_id == tenant_id,
                FinancialPeriod.start_date <= on_date,
                FinancialPeriod.end_date >= on_date,
            )
        )
        return result.scalars().first()

    async def is_period_open(self, tenant_id: UUID, on_date: date) -> bool:
        period = await self.find_period(tenant_id, on_date)
        return period is None or period.is_open

    async def ensure_open(self, tenant_id: UUID, on_date: date) -> None:
        """Raise PeriodClosedError if ``on_date`` falls in a closed period."""
        period = await self.find_period(tenant_id, on_date)
        if period is not None and not period.is_open:
            logger.warning(
                "Rejected posting dated %s for tenant %s: period %s is closed",
                on_date,
                tenant_id,
                period.period_id,
            )
            raise PeriodClosedError(tenant_id, on_date, period.period_id)

    async def create_period(
        self,
        tenant_id: UUID,
        name: str,
        start_date: date,
        end_date: date,
    ) -> FinancialPeriod:
        """Define a new open period. Periods may not overlap."""
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")
        if not name.strip():
            raise ValueError("Period name is required")

        result = await self.session.execute(
            select(FinancialPeriod.period_id).where(
                FinancialPeriod.tenant_id == tenant_id,
                FinancialPeriod.start_date <= end_date,
                FinancialPeriod.end_date >= start_date,
            )
        )
        overlapping = result.scalars().first()
        if overlapping is not None:
            raise ValueError(f"Period overlaps existing period {overlapping}")

        period = FinancialPeriod(
            tenant_id=tenant_id,
            name=name.strip(),
            start_date=start_date,
            end_date=end_date,
            status=FinancialPeriodStatus.OPEN.value,
        )
        self.session.add(period)
        await self.session.flush()
        return period

    async def close_period(
        self,
        tenant_id: UUID,
        period_id: UUID,
        actor: Actor,
        reason: str,
    ) -> FinancialPeriod:
        """Lock a period.

        Raises:
            PendingArtifactsError: draft invoices are dated inside the period.
                The period stays open.
        """
        actor.require_admin("close financial period")
        if not reason or not reason.strip():
            raise ValueError("A reason is required to close a period")

        period = await self.get_period(tenant_id, period_id)
        FinancialPeriodStateMachine.validate_transition(period.status, FinancialPeriodStatus.CLOSED)

        result = await self.session.execute(
            select(BillingArtifact.artifact_id)
            .where(
                BillingArtifact.tenant_id == tenant_id,
                BillingArtifact.status == InvoiceStatus.DRAFT.value,
                BillingArtifact.issue_date >= period.start_date,
                BillingArtifact.issue_date <= period.end_date,
            )
            .order_by(BillingArtifact.issue_date)
        )
        drafts = list(result.scalars().all())
        if drafts:
            raise PendingArtifactsError(period_id, drafts)

        before = {"status": period.status}
        period.status = FinancialPeriodStatus.CLOSED.value
        period.closed_by = actor.actor_id
        period.closed_at = utcnow()
        period.close_reason = reason.strip()

        record_audit(
            self.session,
            tenant_id=tenant_id,
            entity_type="financial_period",
            entity_id=period.period_id,
            action="closed",
            actor_id=actor.actor_id,
            reason=period.close_reason,
            before=before,
            after={"status": period.status},
        )
        await self.session.flush()
        logger.info("Financial period %s closed for tenant %s", period_id, tenant_id)

        self.emitter.emit(
            FinancialPeriodClosed(
                metadata=EventMetadata.create(tenant_id, actor_id=actor.actor_id, actor_type=actor.role.value),
                period_id=period.period_id,
                start_date=period.start_date,
                end_date=period.end_date,
                reason=period.close_reason,
            )
        )
        return period

    async def reopen_period(
        self,
        tenant_id: UUID,
        period_id: UUID,
        actor: Actor,
        reason: str,
    ) -> FinancialPeriod:
        """Reopen a closed period. Always audited."""
        actor.require_admin("reopen financial period")
        if not reason or not reason.strip():
            raise ValueError("A reason is required to reopen a period")

        period = await self.get_period(tenant_id, period_id)
        FinancialPeriodStateMachine.validate_transition(period.status, FinancialPeriodStatus.REOPENED)

        period.status = FinancialPeriodStatus.REOPENED.value
        period.reopened_by = actor.actor_id
        period.reopened_at = utcnow()
        period.reopen_reason = reason.strip()

        record_audit(
            self.session,
            tenant_id=tenant_id,
            entity_type="financial_period",
            entity_id=period.period_id,
            action="reopened",
            actor_id=actor.actor_id,
            reason=period.reopen_reason,
            before={"status": FinancialPeriodStatus.CLOSED.value},
            after={"status": period.status},
        )
        await self.session.flush()
        logger.warning("Financial period %s reopened for tenant %s", period_id, tenant_id)

        self.emitter.emit(
            FinancialPeriodReopened(
                metadata=EventMetadata.create(tenant_id, actor_id=actor.actor_id, actor_type=actor.role.value),
                period_id=period.period_id,
                reason=period.reopen_reason,
            )
        )
        return period
