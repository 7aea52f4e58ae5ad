"""Job lifecycle and completion endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, status

from cleaning_finance.api.dependencies import CurrentActor, DbSession, Emitter, TenantId
from cleaning_finance.api.schemas import (
    BillingArtifactResponse,
    CompleteJobRequest,
    CompletionResponse,
    ErrorResponse,
    GenerateInvoiceRequest,
    JobResponse,
)
from cleaning_finance.services.billing_service import BillingService
from cleaning_finance.services.job_completion_service import (
    CompletionRequest,
    JobCompletionService,
    PaymentData,
)

router = APIRouter(prefix="/jobs", tags=["jobs"])


# ============================================================================
# Pending-invoice queue
# ============================================================================


@router.get("/pending-invoices", response_model=list[JobResponse])
async def list_pending_invoice_jobs(db: DbSession, tenant_id: TenantId) -> list[JobResponse]:
    """Completed, billable, non-cash jobs still waiting for an invoice."""
    jobs = await BillingService(db).list_pending_invoice_jobs(tenant_id)
    return [JobResponse.model_validate(job) for job in jobs]


# ============================================================================
# Job lifecycle
# ============================================================================


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_job(
    db: DbSession,
    tenant_id: TenantId,
    job_id: Annotated[UUID, Path()],
) -> JobResponse:
    job = await JobCompletionService(db).get_job(tenant_id, job_id)
    return JobResponse.model_validate(job)


@router.post(
    "/{job_id}/start",
    response_model=JobResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def start_job(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    job_id: Annotated[UUID, Path()],
) -> JobResponse:
    """Move a scheduled job to in progress."""
    job = await JobCompletionService(db, emitter).start_job(tenant_id, job_id, actor)
    await db.commit()
    return JobResponse.model_validate(job)


@router.post(
    "/{job_id}/cancel",
    response_model=JobResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_job(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    job_id: Annotated[UUID, Path()],
) -> JobResponse:
    """Cancel a scheduled job."""
    job = await JobCompletionService(db, emitter).cancel_job(tenant_id, job_id, actor)
    await db.commit()
    return JobResponse.model_validate(job)


@router.post(
    "/{job_id}/complete",
    response_model=CompletionResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def complete_job(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    job_id: Annotated[UUID, Path()],
    payload: CompleteJobRequest,
) -> CompletionResponse:
    """Complete a job and run billing, cash custody and compensation.

    Safe to retry: a second call for the same job creates nothing new.
    """
    payment = None
    if payload.payment is not None:
        payment = PaymentData(
            method=payload.payment.method,
            amount=payload.payment.amount,
            payment_date=payload.payment.payment_date,
            reference=payload.payment.reference,
            received_by=payload.payment.received_by,
            cash_handling_choice=payload.payment.cash_handling_choice,
            notes=payload.payment.notes,
        )
    request = CompletionRequest(
        after_photo_ref=payload.after_photo_ref,
        notes=payload.notes,
        payment=payment,
    )
    result = await JobCompletionService(db, emitter).complete_job(tenant_id, job_id, request, actor)
    await db.commit()
    return CompletionResponse(
        job_id=result.job_id,
        already_completed=result.already_completed,
        artifact_id=result.artifact_id,
        artifact_type=result.artifact_type,
        artifact_created=result.artifact_created,
        pending_invoice=result.pending_invoice,
        compensation_entry_id=result.compensation_entry_id,
        cash_custody_record_id=result.cash_custody_record_id,
    )


# ============================================================================
# Billing for a job
# ============================================================================


@router.post(
    "/{job_id}/invoice",
    response_model=BillingArtifactResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def generate_invoice(
    db: DbSession,
    tenant_id: TenantId,
    actor: CurrentActor,
    emitter: Emitter,
    job_id: Annotated[UUID, Path()],
    payload: GenerateInvoiceRequest,
) -> BillingArtifactResponse:
    """Generate the invoice for a job in the pending-invoice queue."""
    actor.require_admin("generate invoice")
    invoice = await BillingService(db, emitter).generate_invoice(
        tenant_id,
        job_id,
        base_amount=payload.base_amount,
        issue_date=payload.issue_date,
    )
    await db.commit()
    return BillingArtifactResponse.model_validate(invoice)


@router.get(
    "/{job_id}/billing",
    response_model=BillingArtifactResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_job_billing(
    db: DbSession,
    tenant_id: TenantId,
    job_id: Annotated[UUID, Path()],
) -> BillingArtifactResponse:
    """The invoice or receipt issued for a job."""
    artifact = await BillingService(db).get_artifact_for_job(tenant_id, job_id)
    if artifact is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job has no invoice or receipt",
        )
    return BillingArtifactResponse.model_validate(artifact)
