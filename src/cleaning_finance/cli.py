"""Command line interface.

Provides operational tools for:
- Running the API server
- Creating the schema
- The periodic payroll period check
- Trial balance queries

Usage:
    cleaning-finance serve
    cleaning-finance create-schema
    cleaning-finance check-payroll-periods --date 2024-03-15
    cleaning-finance trial-balance --tenant-id X
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from typing import Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from cleaning_finance.config import get_settings
from cleaning_finance.database import create_schema, dispose_db, get_session
from cleaning_finance.errors import FinanceEngineError
from cleaning_finance.events import get_emitter
from cleaning_finance.services.ledger_service import LedgerService
from cleaning_finance.services.payroll_service import PayrollPeriodService, PeriodCheckResult

logger = logging.getLogger(__name__)


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class FinanceCli:
    """Finance engine command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="cleaning-finance",
            description="Cleaning finance engine operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("serve", help="Run the API server")
        subparsers.add_parser("create-schema", help="Create all tables")

        check = subparsers.add_parser(
            "check-payroll-periods",
            help="Confirm or create each tenant's active payroll period",
        )
        check.add_argument(
            "--date",
            type=parse_date,
            default=None,
            help="Treat this date as today (ISO format)",
        )
        check.add_argument(
            "--json",
            action="store_true",
            help="Print results as JSON lines",
        )

        balance = subparsers.add_parser("trial-balance", help="Print a tenant's trial balance")
        balance.add_argument(
            "--tenant-id",
            type=parse_uuid,
            required=True,
            help="Tenant ID",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "serve": self._cmd_serve,
            "create-schema": self._cmd_create_schema,
            "check-payroll-periods": self._cmd_check_payroll_periods,
            "trial-balance": self._cmd_trial_balance,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    def _cmd_serve(self, args: argparse.Namespace) -> int:
        from cleaning_finance.__main__ import main as serve

        serve()
        return 0

    def _cmd_create_schema(self, args: argparse.Namespace) -> int:
        async def _run() -> None:
            try:
                await create_schema()
            finally:
                await dispose_db()

        asyncio.run(_run())
        print("Schema created")
        return 0

    def _cmd_check_payroll_periods(self, args: argparse.Namespace) -> int:
        """Run the periodic check, one transaction per tenant."""
        results, failures = asyncio.run(check_payroll_periods(args.date))
        for result in results:
            if args.json:
                print(
                    json.dumps(
                        {
                            "tenant_id": str(result.tenant_id),
                            "period_id": str(result.period_id),
                            "period_name": result.period_name,
                            "start_date": result.start_date.isoformat(),
                            "end_date": result.end_date.isoformat(),
                            "status": result.status,
                            "created": result.created,
                            "needs_notification": result.needs_notification,
                        }
                    )
                )
            else:
                flags = []
                if result.created:
                    flags.append("created")
                if result.needs_notification:
                    flags.append("ended")
                suffix = f" [{', '.join(flags)}]" if flags else ""
                print(f"{result.tenant_id}  {result.period_name}  {result.status}{suffix}")
        if failures:
            print(f"{failures} tenant(s) failed; see log", file=sys.stderr)
            return 1
        return 0

    def _cmd_trial_balance(self, args: argparse.Namespace) -> int:
        async def _run() -> list:
            try:
                async with get_session() as session:
                    return await LedgerService(session).trial_balance(args.tenant_id)
            finally:
                await dispose_db()

        balances = asyncio.run(_run())
        for row in balances:
            print(f"{row.account_code}  {row.account_name:<32} {row.debits:>14} {row.credits:>14} {row.balance:>14}")
        return 0


async def check_payroll_periods(today: date | None = None) -> tuple[list[PeriodCheckResult], int]:
    """Check every active tenant. A failing tenant does not stop the others."""
    results: list[PeriodCheckResult] = []
    failures = 0
    try:
        async with get_session() as session:
            tenant_ids = await PayrollPeriodService(session).list_active_tenant_ids()

        for tenant_id in tenant_ids:
            try:
                # Session closes inside the batch, so events follow the commit
                with get_emitter().batch():
                    async with get_session() as session:
                        results.append(await PayrollPeriodService(session).check_tenant(tenant_id, today))
            except (FinanceEngineError, SQLAlchemyError):
                logger.exception("Payroll period check failed for tenant %s", tenant_id)
                failures += 1
    finally:
        await dispose_db()
    return results, failures


def main() -> int:
    """CLI entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cli = FinanceCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
