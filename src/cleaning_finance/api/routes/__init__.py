"""API routes."""

from cleaning_finance.api.routes.billing import router as invoices_router
from cleaning_finance.api.routes.cash_custody import router as cash_custody_router
from cleaning_finance.api.routes.financial_periods import router as financial_periods_router
from cleaning_finance.api.routes.health import router as health_router
from cleaning_finance.api.routes.jobs import router as jobs_router
from cleaning_finance.api.routes.payroll import router as payroll_router

__all__ = [
    "cash_custody_router",
    "financial_periods_router",
    "health_router",
    "invoices_router",
    "jobs_router",
    "payroll_router",
]
