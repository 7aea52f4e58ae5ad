"""Append-only double-entry ledger.

Every posting is a ``FinancialTransaction`` with balanced ``LedgerEntry``
lines. Postings are idempotent on ``(tenant_id, idempotency_key)`` and are
refused when their accounting date falls in a closed financial period.
Corrections never touch existing lines: a reversal posts the same lines
with debit and credit swapped and marks the original transaction void.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_finance.calculators.types import ZERO, quantize_money
from cleaning_finance.database import insert_ignoring_conflicts
from cleaning_finance.errors import EntityNotFoundError
from cleaning_finance.models import FinancialTransaction, LedgerEntry, utcnow
from cleaning_finance.services.period_lock_service import PeriodLockService

if TYPE_CHECKING:
    from cleaning_finance.models import BillingArtifact, PayrollPeriod

logger = logging.getLogger(__name__)

# Chart of accounts
CASH = "1010"
ACCOUNTS_RECEIVABLE = "1020"
DUE_FROM_WORKERS = "1030"
SALES_TAX_PAYABLE = "2010"
PAYROLL_WITHHOLDINGS_PAYABLE = "2030"
SERVICE_REVENUE = "4010"
PAYROLL_EXPENSE = "5010"

ACCOUNT_NAMES: dict[str, str] = {
    CASH: "Cash/Bank",
    ACCOUNTS_RECEIVABLE: "Accounts Receivable",
    DUE_FROM_WORKERS: "Due from Workers",
    SALES_TAX_PAYABLE: "HST/GST Payable",
    PAYROLL_WITHHOLDINGS_PAYABLE: "Payroll Withholdings Payable",
    SERVICE_REVENUE: "Service Revenue",
    PAYROLL_EXPENSE: "Payroll Expense",
}


class UnbalancedEntryError(ValueError):
    """Debits and credits of a posting differ."""


@dataclass(frozen=True)
class LedgerLine:
    """One side of a posting before persistence."""

    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    memo: str | None = None

    @classmethod
    def dr(cls, account_code: str, amount: Decimal, memo: str | None = None) -> LedgerLine:
        return cls(account_code, debit=quantize_money(amount), memo=memo)

    @classmethod
    def cr(cls, account_code: str, amount: Decimal, memo: str | None = None) -> LedgerLine:
        return cls(account_code, credit=quantize_money(amount), memo=memo)


@dataclass(frozen=True)
class PostResult:
    """Result of a ledger posting.

    ``is_new`` is False when the idempotency key already existed and the
    stored transaction was returned instead.
    """

    transaction_id: UUID
    is_new: bool
    source_type: str

    @property
    def was_duplicate(self) -> bool:
        return not self.is_new


@dataclass(frozen=True)
class AccountBalance:
    """Debit/credit totals for one account."""

    account_code: str
    account_name: str
    debits: Decimal
    credits: Decimal

    @property
    def balance(self) -> Decimal:
        """Debit-positive balance."""
        return self.debits - self.credits


def _balanced_lines(lines: list[LedgerLine]) -> list[LedgerLine]:
    kept = [line for line in lines if line.debit > ZERO or line.credit > ZERO]
    for line in kept:
        if line.debit < ZERO or line.credit < ZERO:
            raise ValueError("Amount must be positive")
        if line.debit > ZERO and line.credit > ZERO:
            raise ValueError("A ledger line is either a debit or a credit")
        if line.account_code not in ACCOUNT_NAMES:
            raise ValueError(f"Unknown account code {line.account_code}")
    if not kept:
        raise ValueError("A posting needs at least one non-zero line")
    debits = sum((line.debit for line in kept), ZERO)
    credits = sum((line.credit for line in kept), ZERO)
    if debits != credits:
        raise UnbalancedEntryError(f"Debits {debits} do not equal credits {credits}")
    return kept


class LedgerService:
    """Posting, reversal and balance queries over the ledger."""

    def __init__(self, session: AsyncSession, period_lock: PeriodLockService | None = None):
        self.session = session
        self.period_lock = period_lock or PeriodLockService(session)

    async def post_transaction(
        self,
        *,
        tenant_id: UUID,
        idempotency_key: str,
        transaction_type: str,
        source_type: str,
        source_id: UUID,
        accounting_date: date,
        lines: list[LedgerLine],
        amount_gross: Decimal,
        amount_tax: Decimal = ZERO,
        currency: str = "CAD",
        description: str | None = None,
        reversal_of: UUID | None = None,
    ) -> PostResult:
        """Post a balanced group of lines.

        Raises:
            PeriodClosedError: ``accounting_date`` is in a closed period.
            UnbalancedEntryError: debits and credits differ.
        """
        kept = _balanced_lines(lines)
        await self.period_lock.ensure_open(tenant_id, accounting_date)

        transaction_id = uuid4()
        stmt = insert_ignoring_conflicts(
            self.session,
            FinancialTransaction.__table__,
            {
                "transaction_id": transaction_id,
                "tenant_id": tenant_id,
                "idempotency_key": idempotency_key,
                "transaction_type": transaction_type,
                "source_type": source_type,
                "source_id": source_id,
                "accounting_date": accounting_date,
                "amount_gross": quantize_money(amount_gross),
                "amount_tax": quantize_money(amount_tax),
                "amount_net": quantize_money(amount_gross - amount_tax),
                "currency": currency,
                "description": description,
                "is_void": False,
                "reversal_of": reversal_of,
            },
            index_elements=["tenant_id", "idempotency_key"],
        )
        result = await self.session.execute(stmt)

        if result.rowcount == 0:
            existing = await self._get_by_key(tenant_id, idempotency_key)
            if existing is None:
                raise RuntimeError("Ledger post failed unexpectedly - no transaction created or found")
            logger.info("Ledger posting %s already exists; skipping", idempotency_key)
            return PostResult(existing.transaction_id, is_new=False, source_type=existing.source_type)

        for line in kept:
            self.session.add(
                LedgerEntry(
                    tenant_id=tenant_id,
                    transaction_id=transaction_id,
                    account_code=line.account_code,
                    account_name=ACCOUNT_NAMES[line.account_code],
                    debit=line.debit,
                    credit=line.credit,
                    ledger_date=accounting_date,
                    memo=line.memo,
                )
            )
        await self.session.flush()
        logger.info(
            "Posted %s transaction %s (%s lines) for tenant %s",
            source_type,
            transaction_id,
            len(kept),
            tenant_id,
        )
        return PostResult(transaction_id, is_new=True, source_type=source_type)

    async def reverse_transaction(
        self,
        *,
        tenant_id: UUID,
        transaction_id: UUID,
        reason: str,
        accounting_date: date | None = None,
    ) -> PostResult:
        """Offset a transaction with swapped lines and mark it void.

        The reversal is dated today unless told otherwise; it is never
        backdated into the original's period.
        """
        if not reason or not reason.strip():
            raise ValueError("A reason is required to reverse a transaction")

        original = await self.session.get(FinancialTransaction, transaction_id)
        if original is None or original.tenant_id != tenant_id:
            raise EntityNotFoundError("FinancialTransaction", transaction_id)

        result = await self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.transaction_id == transaction_id)
            .order_by(LedgerEntry.account_code)
        )
        entries = list(result.scalars().all())

        swapped = [
            LedgerLine(
                account_code=entry.account_code,
                debit=entry.credit,
                credit=entry.debit,
                memo=f"Reversal: {reason.strip()}",
            )
            for entry in entries
        ]
        posted = await self.post_transaction(
            tenant_id=tenant_id,
            idempotency_key=f"reversal:{transaction_id}",
            transaction_type="adjustment",
            source_type="reversal",
            source_id=transaction_id,
            accounting_date=accounting_date or date.today(),
            lines=swapped,
            amount_gross=original.amount_gross,
            amount_tax=original.amount_tax,
            currency=original.currency,
            description=f"Reversal of {original.idempotency_key}",
            reversal_of=transaction_id,
        )

        if posted.is_new:
            original.is_void = True
            original.void_reason = reason.strip()
            original.voided_at = utcnow()
            await self.session.flush()
        return posted

    async def get_transaction_for_source(
        self, tenant_id: UUID, idempotency_key: str
    ) -> FinancialTransaction | None:
        return await self._get_by_key(tenant_id, idempotency_key)

    async def _get_by_key(self, tenant_id: UUID, idempotency_key: str) -> FinancialTransaction | None:
        result = await self.session.execute(
            select(FinancialTransaction).where(
                FinancialTransaction.tenant_id == tenant_id,
                FinancialTransaction.idempotency_key == idempotency_key,
            )
        )
        return result.scalar_one_or_none()

    async def get_entries(self, tenant_id: UUID, transaction_id: UUID) -> list[LedgerEntry]:
        result = await self.session.execute(
            select(LedgerEntry).where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.transaction_id == transaction_id,
            )
        )
        return list(result.scalars().all())

    async def list_transactions(
        self,
        tenant_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[FinancialTransaction]:
        query = select(FinancialTransaction).where(FinancialTransaction.tenant_id == tenant_id)
        if start_date is not None:
            query = query.where(FinancialTransaction.accounting_date >= start_date)
        if end_date is not None:
            query = query.where(FinancialTransaction.accounting_date <= end_date)
        result = await self.session.execute(
            query.order_by(FinancialTransaction.accounting_date, FinancialTransaction.created_at)
        )
        return list(result.scalars().all())

    async def trial_balance(self, tenant_id: UUID) -> list[AccountBalance]:
        """Debit and credit totals per account, ordered by account code."""
        result = await self.session.execute(
            select(
                LedgerEntry.account_code,
                func.coalesce(func.sum(LedgerEntry.debit), 0),
                func.coalesce(func.sum(LedgerEntry.credit), 0),
            )
            .where(LedgerEntry.tenant_id == tenant_id)
            .group_by(LedgerEntry.account_code)
            .order_by(LedgerEntry.account_code)
        )
        return [
            AccountBalance(
                account_code=code,
                account_name=ACCOUNT_NAMES.get(code, code),
                debits=quantize_money(Decimal(str(debits))),
                credits=quantize_money(Decimal(str(credits))),
            )
            for code, debits, credits in result.all()
        ]

    async def get_account_balance(self, tenant_id: UUID, account_code: str) -> AccountBalance:
        for balance in await self.trial_balance(tenant_id):
            if balance.account_code == account_code:
                return balance
        return AccountBalance(account_code, ACCOUNT_NAMES.get(account_code, account_code), ZERO, ZERO)

    # ------------------------------------------------------------------
    # Postings for engine events
    # ------------------------------------------------------------------

    async def post_billing_artifact(self, artifact: BillingArtifact) -> PostResult:
        """Revenue recognition for an issued invoice (receivable) or receipt (cash)."""
        debit_account = ACCOUNTS_RECEIVABLE if artifact.is_invoice else CASH
        lines = [
            LedgerLine.dr(debit_account, artifact.total, artifact.artifact_number),
            LedgerLine.cr(SERVICE_REVENUE, artifact.subtotal, artifact.artifact_number),
            LedgerLine.cr(SALES_TAX_PAYABLE, artifact.tax_amount, artifact.artifact_number),
        ]
        return await self.post_transaction(
            tenant_id=artifact.tenant_id,
            idempotency_key=f"{artifact.artifact_type}:{artifact.artifact_id}",
            transaction_type="received",
            source_type=artifact.artifact_type,
            source_id=artifact.artifact_id,
            accounting_date=artifact.issue_date,
            lines=lines,
            amount_gross=artifact.total,
            amount_tax=artifact.tax_amount,
            currency=artifact.currency,
            description=f"{artifact.artifact_type.title()} {artifact.artifact_number}",
        )

    async def post_invoice_payment(self, invoice: BillingArtifact, payment_date: date) -> PostResult:
        """Settle an invoice's receivable into cash."""
        lines = [
            LedgerLine.dr(CASH, invoice.total, invoice.artifact_number),
            LedgerLine.cr(ACCOUNTS_RECEIVABLE, invoice.total, invoice.artifact_number),
        ]
        return await self.post_transaction(
            tenant_id=invoice.tenant_id,
            idempotency_key=f"invoice_payment:{invoice.artifact_id}",
            transaction_type="received",
            source_type="invoice_payment",
            source_id=invoice.artifact_id,
            accounting_date=payment_date,
            lines=lines,
            amount_gross=invoice.total,
            currency=invoice.currency,
            description=f"Payment of invoice {invoice.artifact_number}",
        )

    async def post_payroll_payout(
        self,
        period: PayrollPeriod,
        statutory_deductions: Decimal,
        cash_deductions: Decimal,
        pay_date: date,
        currency: str = "CAD",
    ) -> PostResult:
        """Payroll expense against withholdings, cash kept by workers and net pay.

        When kept cash exceeds what a worker earned, the shortfall is booked
        as owed by workers.
        """
        gross = period.total_gross
        net = gross - statutory_deductions - cash_deductions
        lines = [
            LedgerLine.dr(PAYROLL_EXPENSE, gross, period.name),
            LedgerLine.cr(PAYROLL_WITHHOLDINGS_PAYABLE, statutory_deductions, "Statutory withholdings"),
            LedgerLine.cr(CASH, cash_deductions, "Cash kept by workers"),
        ]
        if net >= ZERO:
            lines.append(LedgerLine.cr(CASH, net, "Net pay"))
        else:
            lines.append(LedgerLine.dr(DUE_FROM_WORKERS, -net, "Kept cash above earnings"))
        return await self.post_transaction(
            tenant_id=period.tenant_id,
            idempotency_key=f"payroll:{period.period_id}",
            transaction_type="paid_out",
            source_type="payroll",
            source_id=period.period_id,
            accounting_date=pay_date,
            lines=lines,
            amount_gross=gross,
            currency=currency,
            description=f"Payroll {period.name}",
        )
