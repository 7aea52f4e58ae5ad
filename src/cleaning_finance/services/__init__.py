"""Business services. Services never commit; the caller owns the transaction."""

from cleaning_finance.services.actors import Actor, ActorRole
from cleaning_finance.services.billing_service import BillingService
from cleaning_finance.services.cash_custody_service import CashCustodyService
from cleaning_finance.services.compensation_service import CompensationService
from cleaning_finance.services.job_completion_service import (
    CompletionRequest,
    CompletionResult,
    JobCompletionService,
    PaymentData,
)
from cleaning_finance.services.ledger_service import LedgerService, PostResult
from cleaning_finance.services.payroll_service import PayrollPeriodService, PeriodCheckResult
from cleaning_finance.services.period_lock_service import PeriodLockService
from cleaning_finance.services.state_machine import InvalidTransitionError
from cleaning_finance.services.tenant_config_service import TenantConfig, TenantConfigService

__all__ = [
    "Actor",
    "ActorRole",
    "BillingService",
    "CashCustodyService",
    "CompensationService",
    "CompletionRequest",
    "CompletionResult",
    "InvalidTransitionError",
    "JobCompletionService",
    "LedgerService",
    "PaymentData",
    "PayrollPeriodService",
    "PeriodCheckResult",
    "PeriodLockService",
    "PostResult",
    "TenantConfig",
    "TenantConfigService",
]
