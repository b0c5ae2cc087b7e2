"""Tests for the command-line interface."""

import sys
from unittest.mock import AsyncMock

from calendar_sync import cli
from calendar_sync.errors import ValidationError


class TestRefreshWebhooksCommand:
    """Tests for `calendar-sync refresh-webhooks`."""

    def test_runs_refresh(self, monkeypatch):
        refresh = AsyncMock()
        monkeypatch.setattr(cli, "_refresh_webhooks", refresh)
        monkeypatch.setattr(
            sys, "argv", ["calendar-sync", "refresh-webhooks", "--user-id", "u1", "--account-id", "a1"]
        )

        assert cli.main() == 0
        refresh.assert_awaited_once_with("u1", "a1")

    def test_failure_exit_code(self, monkeypatch):
        refresh = AsyncMock(
            side_effect=ValidationError("bad callback", operation="validate-callback-url")
        )
        monkeypatch.setattr(cli, "_refresh_webhooks", refresh)
        monkeypatch.setattr(sys, "argv", ["calendar-sync", "refresh-webhooks", "--user-id", "u1"])

        assert cli.main() == 1

    def test_no_command_prints_help(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["calendar-sync"])

        assert cli.main() == 0
        assert "refresh-webhooks" in capsys.readouterr().out
