"""Tests for the command line parser."""

from datetime import date
from uuid import uuid4

import pytest

from cleaning_finance.cli import FinanceCli


class TestFinanceCli:
    """Argument parsing only; commands that touch the database are covered by service tests."""

    def test_no_command_prints_help(self, capsys):
        assert FinanceCli().run([]) == 1
        assert "cleaning-finance" in capsys.readouterr().out

    def test_check_accepts_date(self):
        parsed = FinanceCli().parser.parse_args(["check-payroll-periods", "--date", "2024-03-15", "--json"])
        assert parsed.date == date(2024, 3, 15)
        assert parsed.json is True

    def test_trial_balance_needs_tenant(self):
        with pytest.raises(SystemExit):
            FinanceCli().parser.parse_args(["trial-balance"])

    def test_trial_balance_parses_tenant(self):
        tenant_id = uuid4()
        parsed = FinanceCli().parser.parse_args(["trial-balance", "--tenant-id", str(tenant_id)])
        assert parsed.tenant_id == tenant_id
