"""Shared fixtures for hookwarden tests."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from hookwarden.config import ConfigStore
from hookwarden.models import RuleKind


class FakeHost:
    """In-memory HostContext: records notifications, answers confirms with a mock."""

    def __init__(self, cwd, has_ui=True, answer=True):
        self.cwd = str(cwd)
        self.has_ui = has_ui
        self.confirm = AsyncMock(return_value=answer)
        self.notify = MagicMock()

    @property
    def messages(self):
        return [c.args[0] for c in self.notify.call_args_list]


@pytest.fixture
def host(tmp_path):
    """Interactive host rooted at tmp_path that approves every confirmation."""
    return FakeHost(tmp_path)


@pytest.fixture
def headless_host(tmp_path):
    """Host with no UI attached."""
    return FakeHost(tmp_path, has_ui=False)


@pytest.fixture
def write_json():
    """Write a JSON document, creating parent directories."""
    def _write(path, payload):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def settings_path(tmp_path, monkeypatch):
    """Temporary global settings document, patched into the config module."""
    path = tmp_path / "home" / ".pi" / "agent" / "settings.json"
    monkeypatch.setattr("hookwarden.config.GLOBAL_SETTINGS_PATH", path)
    return path


@pytest.fixture
def make_store(tmp_path, settings_path):
    """Factory for a ConfigStore whose defaults and global files live in tmp_path."""
    def _create(kind, defaults=None):
        kind = RuleKind(kind)
        defaults_path = tmp_path / "defaults" / f"{kind.value}.json"
        if defaults is not None:
            defaults_path.parent.mkdir(parents=True, exist_ok=True)
            defaults_path.write_text(json.dumps(defaults), encoding="utf-8")
        return ConfigStore(kind, defaults_path=defaults_path, global_path=settings_path)
    return _create
