from __future__ import annotations

import shlex
import sys
import time
from pathlib import Path

import allure
import pytest
from conftest import JARVIS, ROSTER

from mission_control.runtime.base import (
    AgentProfile,
    AgentRuntimeError,
    ChatRole,
    ChatTurn,
    RuntimeConfig,
)
from mission_control.runtime.cli_runtime import CliAgentRuntime, _build_run_args, render_prompt
from mission_control.runtime.echo import EchoRuntime
from mission_control.runtime.factory import RuntimeFactory
from mission_control.store.memory import MemoryRowStore
from mission_control.store.models import AgentCreate

pytestmark = [
    allure.epic("Agent Runtime"),
    allure.feature("Runtime Adapters"),
]

_PYTHON = shlex.quote(sys.executable)


def _run(template: str, user_input: str = "Status?", **kwargs) -> str:
    runtime = CliAgentRuntime(command_template=template, timeout_seconds=10, **kwargs)
    handle = runtime.initialize(RuntimeConfig(profile=JARVIS, system_prompt="You lead the squad."))
    return runtime.execute(handle, user_input, [ChatTurn(ChatRole.HUMAN, "hi")])


def test_render_prompt_flattens_persona_history_and_input() -> None:
    prompt = render_prompt(
        system_prompt="You lead the squad.",
        history=[ChatTurn(ChatRole.HUMAN, "hi"), ChatTurn(ChatRole.ASSISTANT, "hello")],
        user_input="Status?",
    )

    assert prompt == (
        "You lead the squad.\n\n"
        "Conversation so far:\nHuman: hi\nAssistant: hello\n\n"
        "Human: Status?"
    )


def test_build_run_args_quotes_placeholder_values(tmp_path: Path) -> None:
    run_args, head = _build_run_args(
        command_template="agent --model {model} --prompt {prompt}",
        model="fast",
        prompt="hello 'world'",
        prompt_file=tmp_path / "prompt.txt",
    )

    assert head == "agent"
    assert run_args == ["agent", "--model", "fast", "--prompt", "hello 'world'"]


@pytest.mark.parametrize(
    ("template", "message"),
    [
        ("", "empty"),
        ("agent --model {model}", "must include"),
        ("agent {prompt} {unknown}", "Unsupported command template placeholder"),
    ],
)
def test_build_run_args_rejects_bad_templates(tmp_path: Path, template: str, message: str) -> None:
    with pytest.raises(AgentRuntimeError, match=message):
        _build_run_args(
            command_template=template,
            model="fast",
            prompt="p",
            prompt_file=tmp_path / "prompt.txt",
        )


def test_cli_runtime_returns_stdout_from_prompt_file() -> None:
    reply = _run(
        f"{_PYTHON} -c \"import sys; print(open(sys.argv[1]).read().upper())\" {{prompt_file}}",
    )

    assert reply.startswith("YOU LEAD THE SQUAD.")
    assert reply.endswith("HUMAN: STATUS?")


def test_cli_runtime_exposes_agent_identity_in_environment() -> None:
    reply = _run(
        f"{_PYTHON} -c \"import os; print(os.environ['MISSION_CONTROL_AGENT_NAME'])\" {{prompt}}",
    )

    assert reply == "Jarvis"


def test_cli_runtime_reports_non_zero_exit_with_stderr() -> None:
    with pytest.raises(AgentRuntimeError, match="exited with code 3: quota exceeded") as excinfo:
        _run(
            f"{_PYTHON} -c \"import sys; sys.stderr.write('quota exceeded'); sys.exit(3)\" "
            "{prompt}",
        )

    assert not excinfo.value.transient


def test_cli_runtime_missing_command_is_not_transient() -> None:
    with pytest.raises(AgentRuntimeError, match="command not found") as excinfo:
        _run("definitely-not-an-installed-agent-cli {prompt}")

    assert not excinfo.value.transient


def test_cli_runtime_timeout_is_transient() -> None:
    runtime = CliAgentRuntime(
        command_template=f"{_PYTHON} -c \"import time; time.sleep(5)\" {{prompt}}",
        timeout_seconds=1,
    )
    handle = runtime.initialize(RuntimeConfig(profile=JARVIS))

    with pytest.raises(AgentRuntimeError, match="timed out") as excinfo:
        runtime.execute(handle, "Status?")

    assert excinfo.value.transient


def test_cli_runtime_stops_child_when_shutdown_is_requested() -> None:
    runtime = CliAgentRuntime(
        command_template=f"{_PYTHON} -c \"import time; time.sleep(30)\" {{prompt}}",
        timeout_seconds=60,
        graceful_shutdown_seconds=0,
    )
    handle = runtime.initialize(RuntimeConfig(profile=JARVIS, shutdown_requested=lambda: True))
    started = time.monotonic()

    with pytest.raises(AgentRuntimeError, match="stopped by shutdown request") as excinfo:
        runtime.execute(handle, "Status?")

    assert time.monotonic() - started < 10
    assert excinfo.value.transient


def test_profile_model_overrides_runtime_default() -> None:
    runtime = CliAgentRuntime(command_template="agent {prompt}", model="default")
    profile = AgentProfile(name="Wong", role="Archivist", session_key="s", model="small")

    assert runtime.initialize(RuntimeConfig(profile=profile)).metadata == {"model": "small"}


def test_factory_loads_persona_files_from_workspace(tmp_path: Path) -> None:
    workspace = tmp_path / "jarvis"
    workspace.mkdir()
    (workspace / "SOUL.md").write_text("You are Jarvis.\n", "utf-8")
    (workspace / "AGENTS.md").write_text("Squad rules.\n", "utf-8")
    store = MemoryRowStore()
    agent = store.create_agent(
        AgentCreate(name=JARVIS.name, role=JARVIS.role, session_key=JARVIS.session_key),
    )
    factory = RuntimeFactory(EchoRuntime(), ROSTER, workspace_root=tmp_path)

    handle = factory.build(agent)

    assert handle.system_prompt == "You are Jarvis.\n\nSquad rules."
    assert handle.profile == JARVIS


def test_factory_returns_none_for_unknown_agent() -> None:
    store = MemoryRowStore()
    agent = store.create_agent(AgentCreate(name="Wong", role="Archivist", session_key="agent:wong"))

    assert RuntimeFactory(EchoRuntime(), ROSTER).build(agent) is None
