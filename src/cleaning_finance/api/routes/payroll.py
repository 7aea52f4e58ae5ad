"""Payroll period endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from cleaning_finance.api.dependencies import CurrentActor, DbSession, Emitter, TenantId
from cleaning_finance.api.schemas import (
    ErrorResponse,
    PayPeriodRequest,
    PayrollEntryResponse,
    PayrollPeriodDetailResponse,
    PayrollPeriodResponse,
    PeriodCheckRequest,
    PeriodCheckResponse,
)
from cleaning_finance.errors import UnauthorizedActorError
from cleaning_finance.services.payroll_service import PayrollPeriodService

router = APIRouter(prefix="/payroll", tags=["payroll"])


@router.get("/periods", response_model=list[PayrollPeriodResponse])
async def list_periods(db: DbSession, tenant_id: TenantId) -> list[PayrollPeriodResponse]:
    periods = await PayrollPeriodService(db).list_periods(tenant_id)
    return [PayrollPeriodResponse.model_validate(p) for p in periods]


@router.post("/periods/current", response_model=PayrollPeriodResponse)
async def current_period(
    db: DbSession,
    tenant_id: TenantId,
    emitter: Emitter,
) -> PayrollPeriodResponse:
    """The active period, created from the tenant's boundary rule if missing."""
    period, _ = await PayrollPeriodService(db, emitter).get_current_period(tenant_id)
    await db.commit()
    return PayrollPeriodResponse.model_validate(period)


@router.get(
    "/periods/{period_id}",
    response_model=PayrollPeriodDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(
    db: DbSession,
    tenant_id: TenantId,
    period_id: Annotated[UUID, Path()],
) -> PayrollPeriodDetailResponse:
    service = PayrollPeriodService(db)
    period = await service.get_period(tenant_id, period_id)
    entries = await service.list_entries(tenant_id, period_id)
    return PayrollPeriodDetailResponse(
        period=PayrollPeriodResponse.model_validate(period),
        entries=[PayrollEntryResponse.model_validate(e) for e in entries],
    )


@router.post(
    "/periods/{period_id}/aggregate",
    response_model=PayrollPeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def aggregate_period(
    db: DbSession,
    tenant_id: TenantId,
    period_id: Annotated[UUID, Path()],
) -> PayrollPeriodResponse:
    """Recompute the period's per-worker entries and totals."""
    period = await PayrollPeriodService(db).aggregate_period(tenant_id, period_id)
    await db.commit()
    return PayrollPeriodResponse.model_validate(period)


@router.post(
    "/periods/{period_id}/approve",
    response_model=PayrollPeriodResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def approve_period(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    period_id: Annotated[UUID, Path()],
) -> PayrollPeriodResponse:
    """Approve a period. One-way."""
    period = await PayrollPeriodService(db, emitter).approve_period(tenant_id, period_id, actor)
    await db.commit()
    return PayrollPeriodResponse.model_validate(period)


@router.post(
    "/periods/{period_id}/pay",
    response_model=PayrollPeriodResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def pay_period(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    period_id: Annotated[UUID, Path()],
    payload: PayPeriodRequest,
) -> PayrollPeriodResponse:
    """Pay out an approved period and post it to the ledger."""
    period = await PayrollPeriodService(db, emitter).mark_paid(
        tenant_id, period_id, actor, pay_date=payload.pay_date
    )
    await db.commit()
    return PayrollPeriodResponse.model_validate(period)


@router.post(
    "/check",
    response_model=list[PeriodCheckResponse],
    responses={403: {"model": ErrorResponse}},
)
async def check_all_tenants(
    db: DbSession,
    actor: CurrentActor,
    emitter: Emitter,
    payload: PeriodCheckRequest,
) -> list[PeriodCheckResponse]:
    """Periodic trigger: confirm or create every tenant's active period."""
    if not actor.is_privileged:
        raise UnauthorizedActorError(actor.actor_id, "run payroll period check")
    results = await PayrollPeriodService(db, emitter).check_all_tenants(payload.today)
    await db.commit()
    return [PeriodCheckResponse.model_validate(r) for r in results]
