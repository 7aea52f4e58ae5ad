"""Cash custody approval workflow endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from cleaning_finance.api.dependencies import CurrentActor, DbSession, Emitter, TenantId
from cleaning_finance.api.schemas import (
    CashCustodyResponse,
    ErrorResponse,
    HandlingChoiceRequest,
    ReasonRequest,
    ResolveRequest,
)
from cleaning_finance.services.cash_custody_service import CashCustodyService

router = APIRouter(prefix="/cash-custody", tags=["cash-custody"])


@router.get("/pending", response_model=list[CashCustodyResponse])
async def list_pending_approvals(db: DbSession, tenant_id: TenantId) -> list[CashCustodyResponse]:
    """Kept cash waiting for an administrator."""
    records = await CashCustodyService(db).list_pending_approvals(tenant_id)
    return [CashCustodyResponse.model_validate(r) for r in records]


@router.get(
    "/{record_id}",
    response_model=CashCustodyResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_record(
    db: DbSession,
    tenant_id: TenantId,
    record_id: Annotated[UUID, Path()],
) -> CashCustodyResponse:
    record = await CashCustodyService(db).get_record(tenant_id, record_id)
    return CashCustodyResponse.model_validate(record)


@router.post(
    "/{record_id}/handling",
    response_model=CashCustodyResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def record_handling_choice(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    record_id: Annotated[UUID, Path()],
    payload: HandlingChoiceRequest,
) -> CashCustodyResponse:
    """Record whether the worker kept the cash or handed it to the office."""
    record = await CashCustodyService(db, emitter).record_handling_choice(
        tenant_id, record_id, payload.choice, actor
    )
    await db.commit()
    return CashCustodyResponse.model_validate(record)


@router.post(
    "/{record_id}/approve",
    response_model=CashCustodyResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def approve(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    record_id: Annotated[UUID, Path()],
) -> CashCustodyResponse:
    """Confirm the payroll deduction for kept cash."""
    record = await CashCustodyService(db, emitter).approve(tenant_id, record_id, actor)
    await db.commit()
    return CashCustodyResponse.model_validate(record)


@router.post(
    "/{record_id}/reject",
    response_model=CashCustodyResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reject(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    record_id: Annotated[UUID, Path()],
    payload: ReasonRequest,
) -> CashCustodyResponse:
    """Dispute kept cash. The record then needs manual resolution."""
    record = await CashCustodyService(db, emitter).reject(tenant_id, record_id, actor, payload.reason)
    await db.commit()
    return CashCustodyResponse.model_validate(record)


@router.post(
    "/{record_id}/resolve",
    response_model=CashCustodyResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def resolve(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    record_id: Annotated[UUID, Path()],
    payload: ResolveRequest,
) -> CashCustodyResponse:
    """Close a disputed record."""
    record = await CashCustodyService(db, emitter).resolve(tenant_id, record_id, actor, payload.notes)
    await db.commit()
    return CashCustodyResponse.model_validate(record)
