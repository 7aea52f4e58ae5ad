"""Invoice and receipt lifecycle endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query
from sqlalchemy import select

from cleaning_finance.api.dependencies import CurrentActor, DbSession, Emitter, TenantId
from cleaning_finance.api.schemas import (
    BillingArtifactResponse,
    ErrorResponse,
    MarkOverdueRequest,
    MarkOverdueResponse,
    MarkPaidRequest,
    ReasonRequest,
)
from cleaning_finance.models import BillingArtifact
from cleaning_finance.services.billing_service import BillingService

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("", response_model=list[BillingArtifactResponse])
async def list_artifacts(
    db: DbSession,
    tenant_id: TenantId,
    artifact_type: Annotated[str | None, Query(alias="type")] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[BillingArtifactResponse]:
    """List invoices and receipts with optional filters."""
    query = select(BillingArtifact).where(BillingArtifact.tenant_id == tenant_id)
    if artifact_type:
        query = query.where(BillingArtifact.artifact_type == artifact_type)
    if status_filter:
        query = query.where(BillingArtifact.status == status_filter)
    result = await db.execute(query.order_by(BillingArtifact.issue_date.desc(), BillingArtifact.artifact_number))
    return [BillingArtifactResponse.model_validate(a) for a in result.scalars().all()]


@router.post("/mark-overdue", response_model=MarkOverdueResponse)
async def mark_overdue(
    db: DbSession,
    tenant_id: TenantId,
    payload: MarkOverdueRequest,
) -> MarkOverdueResponse:
    """Flag sent invoices past their due date."""
    flagged = await BillingService(db).mark_overdue(tenant_id, payload.as_of)
    await db.commit()
    return MarkOverdueResponse(artifact_ids=flagged)


@router.get(
    "/{artifact_id}",
    response_model=BillingArtifactResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_artifact(
    db: DbSession,
    tenant_id: TenantId,
    artifact_id: Annotated[UUID, Path()],
) -> BillingArtifactResponse:
    artifact = await BillingService(db).get_artifact(tenant_id, artifact_id)
    return BillingArtifactResponse.model_validate(artifact)


@router.post(
    "/{artifact_id}/send",
    response_model=BillingArtifactResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def send_artifact(
    db: DbSession,
    tenant_id: TenantId,
    artifact_id: Annotated[UUID, Path()],
) -> BillingArtifactResponse:
    """Mark an invoice or receipt as sent to the client."""
    artifact = await BillingService(db).mark_sent(tenant_id, artifact_id)
    await db.commit()
    return BillingArtifactResponse.model_validate(artifact)


@router.post(
    "/{artifact_id}/pay",
    response_model=BillingArtifactResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def pay_invoice(
    db: DbSession,
    tenant_id: TenantId,
    artifact_id: Annotated[UUID, Path()],
    payload: MarkPaidRequest,
) -> BillingArtifactResponse:
    """Record payment of an invoice."""
    artifact = await BillingService(db).mark_paid(
        tenant_id,
        artifact_id,
        payment_date=payload.payment_date,
        payment_reference=payload.payment_reference,
    )
    await db.commit()
    return BillingArtifactResponse.model_validate(artifact)


@router.post(
    "/{artifact_id}/cancel",
    response_model=BillingArtifactResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_invoice(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    artifact_id: Annotated[UUID, Path()],
    payload: ReasonRequest,
) -> BillingArtifactResponse:
    """Cancel an unpaid invoice. Its revenue posting is reversed."""
    artifact = await BillingService(db, emitter).cancel_invoice(
        tenant_id, artifact_id, actor, payload.reason
    )
    await db.commit()
    return BillingArtifactResponse.model_validate(artifact)
