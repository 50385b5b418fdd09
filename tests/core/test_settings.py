"""Tests for PlaceOpsSettings."""

import pytest
from pydantic import ValidationError

from placeops.core.settings import DEFAULT_SHELL_COMMAND, PlaceOpsSettings


class TestDefaults:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PLACEOPS_DATABASE_URL", raising=False)
        s = PlaceOpsSettings(_env_file=None)
        assert s.shell_command == DEFAULT_SHELL_COMMAND
        assert s.database_url == "sqlite:///placeops.db"
        assert s.require_connection_for_refresh is True
        assert "ExchangeOnlineManagement" in s.required_modules

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("PLACEOPS_COMMAND_TIMEOUT_SECONDS", "7.5")
        monkeypatch.setenv("PLACEOPS_SHELL_COMMAND", '["powershell", "-NoProfile", "-Command", "-"]')
        s = PlaceOpsSettings(_env_file=None)
        assert s.command_timeout_seconds == 7.5
        assert s.shell_command[0] == "powershell"


class TestValidation:
    def test_directive_needs_placeholder(self):
        with pytest.raises(ValidationError):
            PlaceOpsSettings(sentinel_directive="Write-Output 'done'", _env_file=None)

    def test_shell_command_not_empty(self):
        with pytest.raises(ValidationError):
            PlaceOpsSettings(shell_command=[], _env_file=None)

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            PlaceOpsSettings(command_timeout_seconds=0, _env_file=None)
