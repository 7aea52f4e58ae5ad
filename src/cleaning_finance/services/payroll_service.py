"""Payroll period service - current period, aggregation, approval and payout.

Operations:
- get_current_period: the tenant's active period, creating the next one if none
- aggregate_period: recompute per-worker entries and period totals
- approve_period: one-way gate, refused while cash is still unresolved
- mark_paid: post the payout to the ledger and settle the entries
- check_all_tenants: the periodic trigger
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_finance.calculators.contributions import calculate_contributions
from cleaning_finance.calculators.overtime import (
    IsoWeek,
    OvertimeRule,
    allocate_overtime,
    iso_week,
    regular_hours_by_week,
    split_overtime,
)
from cleaning_finance.calculators.period_calendar import next_period_bounds
from cleaning_finance.calculators.types import (
    ZERO,
    CompensationModel,
    PeriodBoundaryRule,
    PeriodBounds,
    quantize_money,
)
from cleaning_finance.database import acquire_tenant_lock
from cleaning_finance.errors import EntityNotFoundError, PendingApprovalError
from cleaning_finance.events import (
    EventEmitter,
    EventMetadata,
    PayrollPeriodApproved,
    PayrollPeriodCreated,
    PayrollPeriodEnded,
    PayrollPeriodPaid,
    get_emitter,
)
from cleaning_finance.models import (
    CompensationEntry,
    Notification,
    PayrollEntry,
    PayrollPeriod,
    Tenant,
    utcnow,
)
from cleaning_finance.services.actors import Actor
from cleaning_finance.services.audit import record_audit
from cleaning_finance.services.ledger_service import LedgerService
from cleaning_finance.services.period_lock_service import PeriodLockService
from cleaning_finance.services.state_machine import (
    CompensationStateMachine,
    CompensationStatus,
    InvalidTransitionError,
    PayrollPeriodStateMachine,
    PayrollPeriodStatus,
)
from cleaning_finance.services.tenant_config_service import TenantConfig, TenantConfigService

logger = logging.getLogger(__name__)

CLOSED_PERIOD_STATUSES = (PayrollPeriodStatus.APPROVED.value, PayrollPeriodStatus.PAID.value)


@dataclass(frozen=True)
class PeriodCheckResult:
    """Outcome of the periodic check for one tenant."""

    tenant_id: UUID
    period_id: UUID
    period_name: str
    start_date: date
    end_date: date
    status: str
    created: bool
    needs_notification: bool


@dataclass
class WorkerTotals:
    """Running totals for one worker while aggregating."""

    worker_id: UUID
    total_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    hourly_pay: Decimal = ZERO
    overtime_pay: Decimal = ZERO
    other_earnings: Decimal = ZERO
    cash_deductions: Decimal = ZERO
    entry_count: int = 0

    @property
    def regular_hours(self) -> Decimal:
        return self.total_hours - self.overtime_hours

    @property
    def gross_pay(self) -> Decimal:
        return self.hourly_pay + self.overtime_pay + self.other_earnings


class PayrollPeriodService:
    """Service for the payroll period lifecycle of one tenant at a time."""

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

    async def get_period(self, tenant_id: UUID, period_id: UUID) -> PayrollPeriod:
        period = await self.session.get(PayrollPeriod, period_id)
        if period is None or period.tenant_id != tenant_id:
            raise EntityNotFoundError("PayrollPeriod", period_id)
        return period

    async def list_periods(self, tenant_id: UUID) -> list[PayrollPeriod]:
        result = await self.session.execute(
            select(PayrollPeriod)
            .where(PayrollPeriod.tenant_id == tenant_id)
            .order_by(PayrollPeriod.start_date.desc())
        )
        return list(result.scalars().all())

    async def list_entries(self, tenant_id: UUID, period_id: UUID) -> list[PayrollEntry]:
        result = await self.session.execute(
            select(PayrollEntry)
            .where(PayrollEntry.tenant_id == tenant_id, PayrollEntry.period_id == period_id)
            .order_by(PayrollEntry.worker_id)
        )
        return list(result.scalars().all())

    async def get_active_period(self, tenant_id: UUID) -> PayrollPeriod | None:
        result = await self.session.execute(
            select(PayrollPeriod)
            .where(
                PayrollPeriod.tenant_id == tenant_id,
                PayrollPeriod.status.in_([s.value for s in PayrollPeriodStateMachine.ACTIVE]),
            )
            .order_by(PayrollPeriod.start_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Current period
    # ------------------------------------------------------------------

    async def get_current_period(
        self,
        tenant_id: UUID,
        today: date | None = None,
    ) -> tuple[PayrollPeriod, bool]:
        """Return the active period, creating the next one if none exists.

        Runs under a per-tenant lock so two concurrent checks cannot both
        create a period. Returns the period and whether it was created.
        """
        today = today or date.today()
        await acquire_tenant_lock(self.session, f"payroll-period:{tenant_id}")

        active = await self.get_active_period(tenant_id)
        if active is not None:
            return active, False

        config = await self.config_service.get_config(tenant_id)
        last_end = await self._last_closed_end_date(tenant_id)
        bounds = self._next_bounds(config, last_end, today)

        period = PayrollPeriod(
            tenant_id=tenant_id,
            name=bounds.name,
            period_type=bounds.period_type.value,
            start_date=bounds.start_date,
            end_date=bounds.end_date,
            status=PayrollPeriodStatus.PENDING.value,
        )
        self.session.add(period)
        await self.session.flush()
        logger.info("Created payroll period %s (%s) for tenant %s", period.period_id, period.name, tenant_id)

        self.emitter.emit(
            PayrollPeriodCreated(
                metadata=EventMetadata.create(tenant_id),
                period_id=period.period_id,
                start_date=period.start_date,
                end_date=period.end_date,
            )
        )
        return period, True

    async def _last_closed_end_date(self, tenant_id: UUID) -> date | None:
        result = await self.session.execute(
            select(PayrollPeriod.end_date)
            .where(
                PayrollPeriod.tenant_id == tenant_id,
                PayrollPeriod.status.in_(CLOSED_PERIOD_STATUSES),
            )
            .order_by(PayrollPeriod.end_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _next_bounds(config: TenantConfig, last_end: date | None, today: date) -> PeriodBounds:
        start = last_end + timedelta(days=1) if last_end is not None else today
        bounds = next_period_bounds(start, config.period_boundary_rule, config.pay_frequency)
        if last_end is not None and bounds.start_date <= last_end:
            # Previous period was not Monday-aligned
            logger.warning(
                "Tenant %s: %s boundary overlaps previous period ending %s; starting at %s",
                config.tenant_id,
                PeriodBoundaryRule.MONDAY_BIWEEKLY.value,
                last_end,
                start,
            )
            bounds = PeriodBounds(start_date=start, end_date=bounds.end_date, period_type=bounds.period_type)
        return bounds

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    async def aggregate_period(self, tenant_id: UUID, period_id: UUID) -> PayrollPeriod:
        """Recompute per-worker entries and totals from compensable entries.

        Entries dated up to the period's end that no earlier period claimed
        are pulled in, so unpaid work carries forward.
        """
        period = await self.get_period(tenant_id, period_id)
        if not PayrollPeriodStateMachine.can_aggregate(period.status):
            raise InvalidTransitionError(
                period.status,
                PayrollPeriodStatus.IN_PROGRESS.value,
                "Totals of an approved or paid period are frozen",
            )

        config = await self.config_service.get_config(tenant_id)
        contribution_config = await self.config_service.get_contribution_config(
            tenant_id, period.end_date.year
        )
        rule = config.overtime_rule

        # Release entries that dropped out of the compensable set
        await self.session.execute(
            update(CompensationEntry)
            .where(
                CompensationEntry.payroll_period_id == period.period_id,
                CompensationEntry.status.not_in([s.value for s in CompensationStateMachine.COMPENSABLE]),
                CompensationEntry.status != CompensationStatus.PAID.value,
            )
            .values(payroll_period_id=None)
        )

        entries = await self._compensable_entries(period)
        by_worker: dict[UUID, list[CompensationEntry]] = defaultdict(list)
        for entry in entries:
            by_worker[entry.worker_id].append(entry)

        await self.session.execute(delete(PayrollEntry).where(PayrollEntry.period_id == period.period_id))

        period.total_hours = ZERO
        period.total_regular_hours = ZERO
        period.total_overtime_hours = ZERO
        period.total_gross = ZERO
        period.total_deductions = ZERO
        period.total_net = ZERO

        for worker_id, worker_entries in by_worker.items():
            prior_regular = await self._prior_regular_hours(period, worker_id, worker_entries, rule)
            totals = self._worker_totals(worker_id, worker_entries, rule, prior_regular)
            pension_ytd, unemployment_ytd = await self._year_to_date(tenant_id, worker_id, period)
            contributions = calculate_contributions(
                totals.gross_pay, contribution_config, pension_ytd, unemployment_ytd
            )
            total_deductions = contributions.total + totals.cash_deductions
            net_pay = totals.gross_pay - total_deductions

            self.session.add(
                PayrollEntry(
                    tenant_id=tenant_id,
                    period_id=period.period_id,
                    worker_id=worker_id,
                    jurisdiction_code=rule.jurisdiction_code,
                    total_hours=totals.total_hours,
                    regular_hours=totals.regular_hours,
                    overtime_hours=totals.overtime_hours,
                    hourly_pay=totals.hourly_pay,
                    overtime_pay=totals.overtime_pay,
                    other_earnings=totals.other_earnings,
                    gross_pay=totals.gross_pay,
                    pension_deduction=contributions.pension,
                    unemployment_deduction=contributions.unemployment,
                    cash_deductions=totals.cash_deductions,
                    total_deductions=total_deductions,
                    net_pay=net_pay,
                    entry_count=totals.entry_count,
                )
            )

            period.total_hours += totals.total_hours
            period.total_regular_hours += totals.regular_hours
            period.total_overtime_hours += totals.overtime_hours
            period.total_gross += totals.gross_pay
            period.total_deductions += total_deductions
            period.total_net += net_pay

            for entry in worker_entries:
                entry.payroll_period_id = period.period_id

        if period.status == PayrollPeriodStatus.PENDING.value:
            PayrollPeriodStateMachine.validate_transition(period.status, PayrollPeriodStatus.IN_PROGRESS)
            period.status = PayrollPeriodStatus.IN_PROGRESS.value
        period.aggregated_at = utcnow()
        await self.session.flush()

        logger.info(
            "Aggregated payroll period %s: %d workers, %d entries, gross %s, net %s",
            period.name,
            len(by_worker),
            len(entries),
            period.total_gross,
            period.total_net,
        )
        return period

    async def _compensable_entries(self, period: PayrollPeriod) -> list[CompensationEntry]:
        result = await self.session.execute(
            select(CompensationEntry)
            .where(
                CompensationEntry.tenant_id == period.tenant_id,
                CompensationEntry.status.in_([s.value for s in CompensationStateMachine.COMPENSABLE]),
                CompensationEntry.service_date <= period.end_date,
                (CompensationEntry.payroll_period_id.is_(None))
                | (CompensationEntry.payroll_period_id == period.period_id),
            )
            .order_by(CompensationEntry.service_date, CompensationEntry.created_at)
        )
        return list(result.scalars().all())

    async def _prior_regular_hours(
        self,
        period: PayrollPeriod,
        worker_id: UUID,
        entries: list[CompensationEntry],
        rule: OvertimeRule,
    ) -> dict[IsoWeek, Decimal]:
        """Regular hours already paid by approved or paid periods in the weeks being aggregated.

        A week that straddles a period boundary keeps counting toward the
        weekly threshold across both periods.
        """
        dates = [e.service_date for e in entries if e.compensation_model == CompensationModel.HOURLY.value]
        if not dates:
            return {}
        weeks = {iso_week(d) for d in dates}
        result = await self.session.execute(
            select(CompensationEntry.service_date, CompensationEntry.hours_worked)
            .join(PayrollPeriod, PayrollPeriod.period_id == CompensationEntry.payroll_period_id)
            .where(
                CompensationEntry.tenant_id == period.tenant_id,
                CompensationEntry.worker_id == worker_id,
                CompensationEntry.compensation_model == CompensationModel.HOURLY.value,
                CompensationEntry.service_date >= min(dates) - timedelta(days=6),
                CompensationEntry.service_date <= max(dates) + timedelta(days=6),
                PayrollPeriod.period_id != period.period_id,
                PayrollPeriod.status.in_(CLOSED_PERIOD_STATUSES),
            )
        )
        items = [
            (row.service_date, Decimal(row.hours_worked))
            for row in result.all()
            if iso_week(row.service_date) in weeks
        ]
        if not items:
            return {}
        return regular_hours_by_week(split_overtime(items, rule))

    @staticmethod
    def _worker_totals(
        worker_id: UUID,
        entries: list[CompensationEntry],
        rule: OvertimeRule,
        prior_regular: dict[IsoWeek, Decimal] | None = None,
    ) -> WorkerTotals:
        """Hours and earnings for one worker.

        Only hourly entries are subject to overtime; fixed and percentage
        entries contribute their computed amount as other earnings.
        """
        totals = WorkerTotals(worker_id=worker_id, entry_count=len(entries))

        hourly = [e for e in entries if e.compensation_model == CompensationModel.HOURLY.value]
        items = [(e.service_date, e.hours_worked) for e in hourly]
        days = split_overtime(items, rule, prior_regular)
        for entry, (regular, overtime) in zip(hourly, allocate_overtime(items, days)):
            totals.overtime_hours += overtime
            totals.hourly_pay += quantize_money(regular * entry.rate)
            totals.overtime_pay += quantize_money(overtime * entry.rate * rule.multiplier)

        for entry in entries:
            totals.total_hours += entry.hours_worked
            if entry.compensation_model != CompensationModel.HOURLY.value:
                totals.other_earnings += entry.amount_due
            if entry.deduct_from_payroll and entry.status == CompensationStatus.APPROVED.value:
                totals.cash_deductions += entry.cash_deduction_amount

        return totals

    async def _year_to_date(
        self,
        tenant_id: UUID,
        worker_id: UUID,
        period: PayrollPeriod,
    ) -> tuple[Decimal, Decimal]:
        """Pension and unemployment already withheld this tax year."""
        year = period.end_date.year
        result = await self.session.execute(
            select(PayrollEntry.pension_deduction, PayrollEntry.unemployment_deduction)
            .join(PayrollPeriod, PayrollPeriod.period_id == PayrollEntry.period_id)
            .where(
                PayrollEntry.tenant_id == tenant_id,
                PayrollEntry.worker_id == worker_id,
                PayrollPeriod.period_id != period.period_id,
                PayrollPeriod.status.in_(CLOSED_PERIOD_STATUSES),
                PayrollPeriod.end_date >= date(year, 1, 1),
                PayrollPeriod.end_date <= date(year, 12, 31),
            )
        )
        pension = ZERO
        unemployment = ZERO
        for row in result.all():
            pension += Decimal(row.pension_deduction)
            unemployment += Decimal(row.unemployment_deduction)
        return pension, unemployment

    # ------------------------------------------------------------------
    # Approval and payout
    # ------------------------------------------------------------------

    async def approve_period(self, tenant_id: UUID, period_id: UUID, actor: Actor) -> PayrollPeriod:
        """Approve a period. Not reversible through this engine.

        Raises:
            PendingApprovalError: entries inside the period still wait for a
                cash approval or handover.
        """
        actor.require_admin("approve payroll period")
        await acquire_tenant_lock(self.session, f"payroll-period:{tenant_id}")
        period = await self.get_period(tenant_id, period_id)
        PayrollPeriodStateMachine.validate_transition(period.status, PayrollPeriodStatus.APPROVED)

        waiting = await self.session.execute(
            select(CompensationEntry.entry_id).where(
                CompensationEntry.tenant_id == tenant_id,
                CompensationEntry.status.in_([s.value for s in CompensationStateMachine.AWAITING_CASH]),
                CompensationEntry.service_date <= period.end_date,
                (CompensationEntry.payroll_period_id.is_(None))
                | (CompensationEntry.payroll_period_id == period.period_id),
            )
        )
        waiting_ids = list(waiting.scalars().all())
        if waiting_ids:
            raise PendingApprovalError(
                period.period_id,
                period.status,
                "approve payroll period",
                reason=f"{len(waiting_ids)} compensation entries await cash approval or handover",
            )

        await self.aggregate_period(tenant_id, period_id)

        now = utcnow()
        included = await self.session.execute(
            select(CompensationEntry).where(CompensationEntry.payroll_period_id == period.period_id)
        )
        for entry in included.scalars().all():
            if entry.status == CompensationStatus.PENDING.value:
                CompensationStateMachine.validate_transition(entry.status, CompensationStatus.APPROVED)
                entry.status = CompensationStatus.APPROVED.value
                entry.approved_by = actor.actor_id
                entry.approved_at = now

        before = {"status": period.status}
        period.status = PayrollPeriodStatus.APPROVED.value
        period.approved_by = actor.actor_id
        period.approved_at = now

        record_audit(
            self.session,
            tenant_id=tenant_id,
            entity_type="payroll_period",
            entity_id=period.period_id,
            action="approved",
            actor_id=actor.actor_id,
            before=before,
            after={
                "status": period.status,
                "total_gross": str(period.total_gross),
                "total_net": str(period.total_net),
            },
        )
        await self.session.flush()
        logger.info("Payroll period %s approved by %s", period.name, actor.actor_id)

        self.emitter.emit(
            PayrollPeriodApproved(
                metadata=EventMetadata.create(tenant_id, actor_id=actor.actor_id, actor_type=actor.role.value),
                period_id=period.period_id,
                total_gross=period.total_gross,
                total_net=period.total_net,
            )
        )
        return period

    async def mark_paid(
        self,
        tenant_id: UUID,
        period_id: UUID,
        actor: Actor,
        pay_date: date | None = None,
    ) -> PayrollPeriod:
        """Pay out an approved period and post it to the ledger.

        Raises:
            PeriodClosedError: the pay date falls in a closed financial period.
        """
        actor.require_admin("pay payroll period")
        pay_date = pay_date or date.today()
        period = await self.get_period(tenant_id, period_id)
        PayrollPeriodStateMachine.validate_transition(period.status, PayrollPeriodStatus.PAID)
        await self.period_lock.ensure_open(tenant_id, pay_date)

        payroll_entries = await self.list_entries(tenant_id, period_id)
        statutory = sum((e.pension_deduction + e.unemployment_deduction for e in payroll_entries), ZERO)
        cash_kept = sum((e.cash_deductions for e in payroll_entries), ZERO)

        if period.total_gross > ZERO:
            config = await self.config_service.get_config(tenant_id)
            await self.ledger.post_payroll_payout(
                period,
                statutory_deductions=statutory,
                cash_deductions=cash_kept,
                pay_date=pay_date,
                currency=config.currency,
            )
        else:
            logger.info("Payroll period %s has no gross pay; nothing posted", period.name)

        included = await self.session.execute(
            select(CompensationEntry).where(
                CompensationEntry.payroll_period_id == period.period_id,
                CompensationEntry.status == CompensationStatus.APPROVED.value,
            )
        )
        now = utcnow()
        for entry in included.scalars().all():
            CompensationStateMachine.validate_transition(entry.status, CompensationStatus.PAID)
            entry.status = CompensationStatus.PAID.value
            entry.paid_at = now

        period.status = PayrollPeriodStatus.PAID.value
        period.paid_by = actor.actor_id
        period.paid_at = now
        period.pay_date = pay_date

        record_audit(
            self.session,
            tenant_id=tenant_id,
            entity_type="payroll_period",
            entity_id=period.period_id,
            action="paid",
            actor_id=actor.actor_id,
            before={"status": PayrollPeriodStatus.APPROVED.value},
            after={"status": period.status, "pay_date": pay_date.isoformat()},
        )
        await self.session.flush()
        logger.info("Payroll period %s paid on %s", period.name, pay_date)

        self.emitter.emit(
            PayrollPeriodPaid(
                metadata=EventMetadata.create(tenant_id, actor_id=actor.actor_id, actor_type=actor.role.value),
                period_id=period.period_id,
                pay_date=pay_date,
                total_net=period.total_net,
            )
        )
        return period

    # ------------------------------------------------------------------
    # Periodic trigger
    # ------------------------------------------------------------------

    async def list_active_tenant_ids(self) -> list[UUID]:
        result = await self.session.execute(
            select(Tenant.tenant_id).where(Tenant.status == "active").order_by(Tenant.tenant_id)
        )
        return list(result.scalars().all())

    async def check_tenant(self, tenant_id: UUID, today: date | None = None) -> PeriodCheckResult:
        """Confirm or create the active period and flag it once when it has ended."""
        today = today or date.today()
        period, created = await self.get_current_period(tenant_id, today)

        needs_notification = False
        if period.end_date < today and not period.notification_sent:
            period.notification_sent = True
            period.notification_sent_at = utcnow()
            needs_notification = True
            self.session.add(
                Notification(
                    tenant_id=tenant_id,
                    notification_type="payroll",
                    severity="warning",
                    role_target="admin",
                    title="Payroll period ended",
                    message=f"Payroll period {period.name} has ended and needs processing.",
                    entity_type="payroll_period",
                    entity_id=period.period_id,
                )
            )
            await self.session.flush()
            self.emitter.emit(
                PayrollPeriodEnded(
                    metadata=EventMetadata.create(tenant_id),
                    period_id=period.period_id,
                    period_name=period.name,
                    end_date=period.end_date,
                )
            )

        return PeriodCheckResult(
            tenant_id=tenant_id,
            period_id=period.period_id,
            period_name=period.name,
            start_date=period.start_date,
            end_date=period.end_date,
            status=period.status,
            created=created,
            needs_notification=needs_notification,
        )

    async def check_all_tenants(self, today: date | None = None) -> list[PeriodCheckResult]:
        """Run the periodic check for every active tenant in this transaction."""
        results = []
        for tenant_id in await self.list_active_tenant_ids():
            results.append(await self.check_tenant(tenant_id, today))
        return results
