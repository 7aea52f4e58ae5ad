"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cleaning_finance import __version__
from cleaning_finance.api.routes import (
    cash_custody_router,
    financial_periods_router,
    health_router,
    invoices_router,
    jobs_router,
    payroll_router,
)
from cleaning_finance.api.dependencies import get_event_emitter
from cleaning_finance.database import dispose_db, init_db
from cleaning_finance.errors import (
    ConfigurationError,
    DuplicateArtifactError,
    EntityNotFoundError,
    FinanceEngineError,
    PendingApprovalError,
    PendingArtifactsError,
    PeriodClosedError,
    UnauthorizedActorError,
)
from cleaning_finance.services.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)

# Checked in order; subclasses before FinanceEngineError
ERROR_STATUS: list[tuple[type[FinanceEngineError], int]] = [
    (EntityNotFoundError, status.HTTP_404_NOT_FOUND),
    (UnauthorizedActorError, status.HTTP_403_FORBIDDEN),
    (ConfigurationError, 422),
    (PeriodClosedError, status.HTTP_409_CONFLICT),
    (DuplicateArtifactError, status.HTTP_409_CONFLICT),
    (PendingArtifactsError, status.HTTP_409_CONFLICT),
    (PendingApprovalError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    init_db()
    yield
    await dispose_db()


def _error_context(exc: FinanceEngineError) -> dict | None:
    if isinstance(exc, PendingArtifactsError):
        return {"period_id": str(exc.period_id), "artifact_ids": [str(i) for i in exc.artifact_ids]}
    if isinstance(exc, DuplicateArtifactError):
        return {
            "job_id": str(exc.job_id),
            "existing_artifact_id": str(exc.existing_artifact_id) if exc.existing_artifact_id else None,
        }
    if isinstance(exc, PeriodClosedError):
        return {"period_id": str(exc.period_id), "posting_date": exc.posting_date.isoformat()}
    return None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Cleaning Finance Engine API",
        description="Job billing, cash custody, payroll periods and the accounting ledger",
        version=__version__,
        lifespan=lifespan,
        dependencies=[Depends(get_event_emitter)],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(FinanceEngineError)
    async def finance_error_handler(request: Request, exc: FinanceEngineError) -> JSONResponse:
        """Map domain errors to HTTP status codes."""
        status_code = status.HTTP_400_BAD_REQUEST
        for error_type, code in ERROR_STATUS:
            if isinstance(exc, error_type):
                status_code = code
                break
        content = {"detail": str(exc), "code": exc.code}
        context = _error_context(exc)
        if context is not None:
            content["context"] = context
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        """Rejected input."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc), "code": "INVALID_REQUEST"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(jobs_router, prefix="/api/v1")
    app.include_router(invoices_router, prefix="/api/v1")
    app.include_router(cash_custody_router, prefix="/api/v1")
    app.include_router(payroll_router, prefix="/api/v1")
    app.include_router(financial_periods_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
