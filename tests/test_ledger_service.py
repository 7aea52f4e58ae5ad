"""Tests for LedgerService - append-only double-entry ledger.

Tests verify:
1. Balanced, idempotent posting (retries produce no duplicates)
2. Reversal-based corrections
3. Immutability of posted lines
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from cleaning_finance.models import LedgerEntry, LedgerImmutableError
from cleaning_finance.services.ledger_service import (
    ACCOUNTS_RECEIVABLE,
    CASH,
    SALES_TAX_PAYABLE,
    SERVICE_REVENUE,
    LedgerLine,
    LedgerService,
    UnbalancedEntryError,
)

POSTING_DATE = date(2024, 3, 12)


@pytest.fixture
def ledger(session) -> LedgerService:
    return LedgerService(session)


def sale_lines(total: str = "113.00", base: str = "100.00", tax: str = "13.00") -> list[LedgerLine]:
    return [
        LedgerLine.dr(ACCOUNTS_RECEIVABLE, Decimal(total)),
        LedgerLine.cr(SERVICE_REVENUE, Decimal(base)),
        LedgerLine.cr(SALES_TAX_PAYABLE, Decimal(tax)),
    ]


async def post_sale(ledger, tenant_id, key: str = "invoice:test-001", lines=None):
    return await ledger.post_transaction(
        tenant_id=tenant_id,
        idempotency_key=key,
        transaction_type="received",
        source_type="invoice",
        source_id=uuid4(),
        accounting_date=POSTING_DATE,
        lines=lines if lines is not None else sale_lines(),
        amount_gross=Decimal("113.00"),
        amount_tax=Decimal("13.00"),
    )


async def entry_count(session, tenant_id) -> int:
    return await session.scalar(
        select(func.count()).select_from(LedgerEntry).where(LedgerEntry.tenant_id == tenant_id)
    )


class TestLedgerPosting:
    """Test ledger posting."""

    async def test_post_creates_balanced_entries(self, session, ledger, tenant):
        """Post writes one line per non-zero leg."""
        result = await post_sale(ledger, tenant.tenant_id)

        assert result.is_new is True
        assert result.was_duplicate is False
        entries = await ledger.get_entries(tenant.tenant_id, result.transaction_id)
        assert len(entries) == 3
        assert sum(e.debit for e in entries) == sum(e.credit for e in entries) == Decimal("113.00")
        assert {e.account_name for e in entries} == {"Accounts Receivable", "Service Revenue", "HST/GST Payable"}

    async def test_post_is_idempotent(self, session, ledger, tenant):
        """Retrying with the same key returns the original transaction."""
        first = await post_sale(ledger, tenant.tenant_id)
        second = await post_sale(ledger, tenant.tenant_id)

        assert second.was_duplicate is True
        assert second.transaction_id == first.transaction_id
        assert await entry_count(session, tenant.tenant_id) == 3

    async def test_zero_legs_are_dropped(self, ledger, tenant):
        result = await post_sale(ledger, tenant.tenant_id, lines=sale_lines("100.00", "100.00", "0.00"))
        entries = await ledger.get_entries(tenant.tenant_id, result.transaction_id)
        assert len(entries) == 2

    async def test_unbalanced_rejected(self, session, ledger, tenant):
        with pytest.raises(UnbalancedEntryError):
            await post_sale(ledger, tenant.tenant_id, lines=sale_lines(total="110.00"))
        assert await entry_count(session, tenant.tenant_id) == 0

    async def test_unknown_account_rejected(self, ledger, tenant):
        lines = [LedgerLine.dr("9999", Decimal("5")), LedgerLine.cr(CASH, Decimal("5"))]
        with pytest.raises(ValueError):
            await post_sale(ledger, tenant.tenant_id, lines=lines)

    async def test_list_transactions_by_date(self, ledger, tenant):
        await post_sale(ledger, tenant.tenant_id)
        assert len(await ledger.list_transactions(tenant.tenant_id, start_date=POSTING_DATE)) == 1
        assert await ledger.list_transactions(tenant.tenant_id, end_date=date(2024, 3, 1)) == []


class TestReversal:
    """Corrections by offsetting entries."""

    async def test_reversal_swaps_lines_and_voids_original(self, session, ledger, tenant):
        original = await post_sale(ledger, tenant.tenant_id)

        reversal = await ledger.reverse_transaction(
            tenant_id=tenant.tenant_id,
            transaction_id=original.transaction_id,
            reason="Issued in error",
            accounting_date=date(2024, 4, 2),
        )

        assert reversal.is_new is True
        assert reversal.source_type == "reversal"
        balances = await ledger.trial_balance(tenant.tenant_id)
        assert all(b.balance == Decimal("0") for b in balances)
        assert {b.account_code: b.debits for b in balances}[ACCOUNTS_RECEIVABLE] == Decimal("113.00")

        posted = await ledger.get_transaction_for_source(tenant.tenant_id, "invoice:test-001")
        assert posted.is_void is True
        assert posted.void_reason == "Issued in error"

    async def test_reversal_is_idempotent(self, session, ledger, tenant):
        original = await post_sale(ledger, tenant.tenant_id)
        await ledger.reverse_transaction(
            tenant_id=tenant.tenant_id, transaction_id=original.transaction_id, reason="Error"
        )
        again = await ledger.reverse_transaction(
            tenant_id=tenant.tenant_id, transaction_id=original.transaction_id, reason="Error"
        )
        assert again.was_duplicate is True
        assert await entry_count(session, tenant.tenant_id) == 6

    async def test_reversal_needs_reason(self, ledger, tenant):
        original = await post_sale(ledger, tenant.tenant_id)
        with pytest.raises(ValueError):
            await ledger.reverse_transaction(
                tenant_id=tenant.tenant_id, transaction_id=original.transaction_id, reason=" "
            )


class TestImmutability:
    """Posted lines never change."""

    async def test_update_refused(self, session, ledger, tenant):
        result = await post_sale(ledger, tenant.tenant_id)
        [entry, *_] = await ledger.get_entries(tenant.tenant_id, result.transaction_id)

        entry.memo = "edited"
        with pytest.raises(LedgerImmutableError):
            await session.flush()

    async def test_delete_refused(self, session, ledger, tenant):
        result = await post_sale(ledger, tenant.tenant_id)
        [entry, *_] = await ledger.get_entries(tenant.tenant_id, result.transaction_id)

        await session.delete(entry)
        with pytest.raises(LedgerImmutableError):
            await session.flush()
