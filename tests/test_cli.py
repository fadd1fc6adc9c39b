from __future__ import annotations

import re
from pathlib import Path

import allure
from click.testing import CliRunner

from mission_control import __version__
from mission_control.main import mission_control
from mission_control.store.sql import SqlRowStore

pytestmark = [
    allure.epic("Operations"),
    allure.feature("Mission Control CLI"),
]


def _invoke(*args: str):
    return CliRunner().invoke(mission_control, list(args))


def _db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _created_id(output: str, key: str) -> str:
    match = re.search(rf"{key}=(\S+)", output)
    assert match is not None, output
    return match.group(1)


def test_version_option() -> None:
    result = _invoke("--version")

    assert result.exit_code == 0
    assert __version__ in result.output


def test_agents_sync_then_list(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("MISSION_CONTROL_AGENTS", raising=False)
    db_url = _db_url(tmp_path)

    synced = _invoke("agents", "sync", "--db-url", db_url)
    resynced = _invoke("agents", "sync", "--db-url", db_url)
    listed = _invoke("agents", "list", "--db-url", db_url)

    assert synced.exit_code == 0, synced.output
    assert synced.output.count("Agent registered") == 3
    assert resynced.output.count("Agent exists") == 3
    assert "Jarvis" in listed.output
    assert "agent:product-analyst:main" in listed.output


def test_execution_lifecycle_through_cli(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("MISSION_CONTROL_AGENTS", raising=False)
    db_url = _db_url(tmp_path)
    _invoke("agents", "sync", "--db-url", db_url)
    created = _invoke(
        "tasks", "create", "--db-url", db_url, "--title", "Launch plan", "--assign", "Friday",
    )
    task_id = _created_id(created.output, "task_id")

    started = _invoke("execution", "start", task_id, "--db-url", db_url, "--agent", "Friday")
    paused = _invoke("execution", "pause", task_id, "--db-url", db_url)
    resume_twice = _invoke("execution", "start", task_id, "--db-url", db_url)
    resumed = _invoke("execution", "resume", task_id, "--db-url", db_url)
    completed = _invoke(
        "execution", "complete", task_id, "--db-url", db_url, "--result", "Shipped",
    )
    steps = _invoke("execution", "steps", task_id, "--db-url", db_url)
    shown = _invoke("execution", "show", task_id, "--db-url", db_url)

    assert "assignees=1" in created.output
    assert "execution=running" in started.output
    assert "execution=paused" in paused.output
    assert resume_twice.exit_code != 0
    assert "Cannot move task" in resume_twice.output
    assert "execution=running" in resumed.output
    assert "execution=completed" in completed.output
    assert "#1 running" in steps.output
    assert "Friday: Starting execution" in steps.output
    assert "Execution completed" in steps.output
    assert "execution_paused" in shown.output


def test_execution_run_uses_echo_runtime(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("MISSION_CONTROL_AGENTS", raising=False)
    monkeypatch.setenv("MISSION_CONTROL_RUNTIME", "echo")
    db_url = _db_url(tmp_path)
    _invoke("agents", "sync", "--db-url", db_url)
    task_id = _created_id(
        _invoke("tasks", "create", "--db-url", db_url, "--title", "Research").output,
        "task_id",
    )

    result = _invoke(
        "execution", "run", task_id, "--db-url", db_url, "--agent", "Shuri", "--prompt", "Go",
    )

    assert result.exit_code == 0, result.output
    assert "execution=completed" in result.output
    assert "Shuri: Go" in result.output


def test_chat_send_and_daemon_once(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("MISSION_CONTROL_AGENTS", raising=False)
    monkeypatch.setenv("MISSION_CONTROL_WORKSPACE_ROOT", str(tmp_path / "agents"))
    db_url = _db_url(tmp_path)
    _invoke("agents", "sync", "--db-url", db_url)
    thread_id = _created_id(
        _invoke("chat", "thread", "--db-url", db_url, "--agent", "Jarvis").output,
        "thread_id",
    )

    sent = _invoke("chat", "send", thread_id, "Status?", "--db-url", db_url)
    daemon = _invoke("daemon", "chat", "--db-url", db_url, "--once")

    assert sent.exit_code == 0, sent.output
    assert "processed=1 succeeded=1" in daemon.output
    store = SqlRowStore(db_url)
    try:
        contents = [item.content for item in store.list_chat_messages(thread_id)]
    finally:
        store.close()
    assert contents == ["Status?", "Jarvis: Status?"]


def test_task_comment_and_notification_daemon_once(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("MISSION_CONTROL_AGENTS", raising=False)
    db_url = _db_url(tmp_path)
    _invoke("agents", "sync", "--db-url", db_url)
    task_id = _created_id(
        _invoke("tasks", "create", "--db-url", db_url, "--title", "Review").output,
        "task_id",
    )

    comment = _invoke(
        "tasks", "comment", task_id, "@Friday please review", "--db-url", db_url, "--agent", "Jarvis",
    )
    daemon = _invoke("daemon", "notifications", "--db-url", db_url, "--once")

    assert "mentions=1" in comment.output
    assert "processed=1 succeeded=1" in daemon.output


def test_heartbeat_once_fires_every_agent(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("MISSION_CONTROL_AGENTS", raising=False)
    monkeypatch.setenv("MISSION_CONTROL_WORKSPACE_ROOT", str(tmp_path / "agents"))
    db_url = _db_url(tmp_path)
    _invoke("agents", "sync", "--db-url", db_url)

    result = _invoke("daemon", "heartbeat", "--db-url", db_url, "--once")

    assert result.exit_code == 0, result.output
    assert "processed=3 succeeded=3" in result.output


def test_unknown_task_is_reported_as_cli_error(tmp_path: Path) -> None:
    result = _invoke("execution", "show", "missing", "--db-url", _db_url(tmp_path))

    assert result.exit_code == 1
    assert "Task missing not found" in result.output
