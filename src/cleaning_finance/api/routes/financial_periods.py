"""Financial period lock and ledger endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from cleaning_finance.api.dependencies import CurrentActor, DbSession, Emitter, TenantId
from cleaning_finance.api.schemas import (
    AccountBalanceResponse,
    ErrorResponse,
    FinancialPeriodCreate,
    FinancialPeriodResponse,
    FinancialTransactionResponse,
    LedgerEntryResponse,
    ReasonRequest,
)
from cleaning_finance.models import FinancialTransaction
from cleaning_finance.services.ledger_service import LedgerService
from cleaning_finance.services.period_lock_service import PeriodLockService

router = APIRouter(tags=["accounting"])


# ============================================================================
# Financial periods
# ============================================================================


@router.post(
    "/financial-periods",
    response_model=FinancialPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def create_period(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    payload: FinancialPeriodCreate,
) -> FinancialPeriodResponse:
    """Define a new open accounting period."""
    actor.require_admin("create financial period")
    period = await PeriodLockService(db).create_period(
        tenant_id, payload.name, payload.start_date, payload.end_date
    )
    await db.commit()
    return FinancialPeriodResponse.model_validate(period)


@router.get("/financial-periods", response_model=list[FinancialPeriodResponse])
async def list_periods(db: DbSession, tenant_id: TenantId) -> list[FinancialPeriodResponse]:
    periods = await PeriodLockService(db).list_periods(tenant_id)
    return [FinancialPeriodResponse.model_validate(p) for p in periods]


@router.get(
    "/financial-periods/{period_id}",
    response_model=FinancialPeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(
    db: DbSession,
    tenant_id: TenantId,
    period_id: Annotated[UUID, Path()],
) -> FinancialPeriodResponse:
    period = await PeriodLockService(db).get_period(tenant_id, period_id)
    return FinancialPeriodResponse.model_validate(period)


@router.post(
    "/financial-periods/{period_id}/close",
    response_model=FinancialPeriodResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def close_period(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    period_id: Annotated[UUID, Path()],
    payload: ReasonRequest,
) -> FinancialPeriodResponse:
    """Lock a period. Refused while draft invoices are dated inside it."""
    period = await PeriodLockService(db, emitter).close_period(tenant_id, period_id, actor, payload.reason)
    await db.commit()
    return FinancialPeriodResponse.model_validate(period)


@router.post(
    "/financial-periods/{period_id}/reopen",
    response_model=FinancialPeriodResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reopen_period(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    period_id: Annotated[UUID, Path()],
    payload: ReasonRequest,
) -> FinancialPeriodResponse:
    """Reopen a closed period. Audited."""
    period = await PeriodLockService(db, emitter).reopen_period(tenant_id, period_id, actor, payload.reason)
    await db.commit()
    return FinancialPeriodResponse.model_validate(period)


# ============================================================================
# Ledger
# ============================================================================


@router.get("/ledger/transactions", response_model=list[FinancialTransactionResponse])
async def list_transactions(
    db: DbSession,
    tenant_id: TenantId,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[FinancialTransactionResponse]:
    transactions = await LedgerService(db).list_transactions(tenant_id, start_date, end_date)
    return [FinancialTransactionResponse.model_validate(t) for t in transactions]


@router.get(
    "/ledger/transactions/{transaction_id}/entries",
    response_model=list[LedgerEntryResponse],
)
async def list_entries(
    db: DbSession,
    tenant_id: TenantId,
    transaction_id: Annotated[UUID, Path()],
) -> list[LedgerEntryResponse]:
    entries = await LedgerService(db).get_entries(tenant_id, transaction_id)
    return [LedgerEntryResponse.model_validate(e) for e in entries]


@router.post(
    "/ledger/transactions/{transaction_id}/reverse",
    response_model=FinancialTransactionResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reverse_transaction(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    transaction_id: Annotated[UUID, Path()],
    payload: ReasonRequest,
) -> FinancialTransactionResponse:
    """Offset a posted transaction with a reversing one."""
    actor.require_admin("reverse transaction")
    service = LedgerService(db)
    posted = await service.reverse_transaction(
        tenant_id=tenant_id,
        transaction_id=transaction_id,
        reason=payload.reason,
    )
    await db.commit()
    reversal = await db.get(FinancialTransaction, posted.transaction_id)
    return FinancialTransactionResponse.model_validate(reversal)


@router.get("/ledger/trial-balance", response_model=list[AccountBalanceResponse])
async def trial_balance(db: DbSession, tenant_id: TenantId) -> list[AccountBalanceResponse]:
    """Debit and credit totals per account."""
    balances = await LedgerService(db).trial_balance(tenant_id)
    return [AccountBalanceResponse.model_validate(b) for b in balances]
