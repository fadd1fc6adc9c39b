from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import allure
import pytest

from mission_control.config import (
    DEFAULT_ROSTER,
    RuntimeSettings,
    Settings,
)

pytestmark = [
    allure.epic("Operations"),
    allure.feature("Configuration"),
]


def test_defaults_validate_and_use_echo_runtime(monkeypatch) -> None:
    for name in ("MISSION_CONTROL_DB_URL", "MISSION_CONTROL_RUNTIME", "MISSION_CONTROL_AGENTS"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()
    settings.validate()

    assert settings.runtime.kind == "echo"
    assert settings.agents == DEFAULT_ROSTER
    assert settings.execution.gate_timeout_seconds == 30.0
    assert settings.heartbeat.stagger_minutes == 2
    assert settings.chat.correlation_window_ms == 1_000


def test_db_url_argument_overrides_environment(monkeypatch) -> None:
    monkeypatch.setenv("MISSION_CONTROL_DB_URL", "sqlite:///env.db")

    assert Settings.from_env(db_url="sqlite:///cli.db").database.url == "sqlite:///cli.db"
    assert Settings.from_env().database.url == "sqlite:///env.db"


def test_agent_roster_is_parsed_from_environment(monkeypatch) -> None:
    monkeypatch.setenv(
        "MISSION_CONTROL_AGENTS",
        "Jarvis|Squad Lead|agent:main:main, Wong|Archivist|agent:wong:main|small-model",
    )

    agents = Settings.from_env().agents

    assert [(item.name, item.session_key, item.model) for item in agents] == [
        ("Jarvis", "agent:main:main", None),
        ("Wong", "agent:wong:main", "small-model"),
    ]


def test_malformed_roster_entry_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("MISSION_CONTROL_AGENTS", "Jarvis|Squad Lead")

    with pytest.raises(ValueError, match="Invalid MISSION_CONTROL_AGENTS entry"):
        Settings.from_env()


def test_environment_overrides_numeric_settings(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MISSION_CONTROL_GATE_TIMEOUT_SECONDS", "5")
    monkeypatch.setenv("MISSION_CONTROL_HEARTBEAT_INTERVAL_MINUTES", "15")
    monkeypatch.setenv("MISSION_CONTROL_WORKSPACE_ROOT", str(tmp_path))

    settings = Settings.from_env()

    assert settings.execution.gate_timeout_seconds == 5.0
    assert settings.heartbeat.interval_minutes == 15
    assert settings.heartbeat.workspace_root == tmp_path


def test_cli_runtime_requires_command_template() -> None:
    settings = Settings(runtime=RuntimeSettings(kind="cli"))

    with pytest.raises(ValueError, match="MISSION_CONTROL_RUNTIME_COMMAND"):
        settings.validate()


def test_unknown_runtime_kind_is_rejected() -> None:
    with pytest.raises(ValueError, match="Invalid MISSION_CONTROL_RUNTIME"):
        Settings(runtime=RuntimeSettings(kind="gpu")).validate()


def test_duplicate_session_keys_are_rejected() -> None:
    settings = Settings(agents=(DEFAULT_ROSTER[0], DEFAULT_ROSTER[0]))

    with pytest.raises(ValueError, match="duplicate session keys"):
        settings.validate()


def test_non_positive_poll_interval_is_rejected() -> None:
    settings = Settings()
    settings = replace(settings, execution=replace(settings.execution, gate_poll_interval_seconds=0))

    with pytest.raises(ValueError, match="GATE_POLL_INTERVAL_SECONDS"):
        settings.validate()


def test_graceful_shutdown_window_is_read_and_validated(monkeypatch) -> None:
    monkeypatch.setenv("MISSION_CONTROL_RUNTIME_GRACEFUL_SHUTDOWN_SECONDS", "-1")

    settings = Settings.from_env()

    assert settings.runtime.graceful_shutdown_seconds == -1
    with pytest.raises(ValueError, match="GRACEFUL_SHUTDOWN_SECONDS"):
        settings.validate()
