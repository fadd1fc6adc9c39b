"""Subprocess-based agent runtime for CLI agents."""

from __future__ import annotations

import os
import shlex
import subprocess
import tempfile
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import IO

from mission_control.runtime.base import (
    AgentRuntimeError,
    ChatRole,
    ChatTurn,
    RuntimeConfig,
    RuntimeHandle,
)

_TIMEOUT_EXIT_CODE = 124
_STDERR_TAIL_CHARS = 500
_STOPPED_BY_TIMEOUT = "timeout"
_STOPPED_BY_SHUTDOWN = "shutdown"


class CliAgentRuntime:
    """Run one agent turn as a CLI command rendered from a template.

    The template must contain ``{prompt}`` or ``{prompt_file}``; ``{model}``
    is optional. The command's stdout is the reply. Tool calls happen inside
    the external CLI, so hooks are not fired by this runtime.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        command_template: str,
        model: str = "default",
        timeout_seconds: int = 600,
        transient_exit_codes: tuple[int, ...] = (137, 143),
        graceful_shutdown_seconds: int = 5,
    ) -> None:
        self.command_template = command_template
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.transient_exit_codes = transient_exit_codes
        self.graceful_shutdown_seconds = graceful_shutdown_seconds

    def initialize(self, config: RuntimeConfig) -> RuntimeHandle:
        return RuntimeHandle(
            profile=config.profile,
            hooks=config.hooks,
            system_prompt=config.system_prompt,
            metadata={"model": config.profile.model or self.model},
            shutdown_requested=config.shutdown_requested,
        )

    def execute(
        self,
        handle: RuntimeHandle,
        user_input: str,
        history: Sequence[ChatTurn] = (),
    ) -> str:
        prompt = render_prompt(
            system_prompt=handle.system_prompt,
            history=history,
            user_input=user_input,
        )
        model = str(handle.metadata.get("model") or self.model)

        with tempfile.TemporaryDirectory(prefix="mission-control-") as tmp:
            workdir = Path(tmp)
            prompt_file = workdir / "prompt.txt"
            prompt_file.write_text(prompt, "utf-8")
            run_args, command_head = _build_run_args(
                command_template=self.command_template,
                model=model,
                prompt=prompt,
                prompt_file=prompt_file,
            )

            env = os.environ.copy()
            env["MISSION_CONTROL_AGENT_NAME"] = handle.profile.name
            env["MISSION_CONTROL_SESSION_KEY"] = handle.profile.session_key
            env["MISSION_CONTROL_AGENT_MODEL"] = model

            stdout_path = workdir / "stdout.txt"
            stderr_path = workdir / "stderr.txt"
            try:
                with (
                    stdout_path.open("w", encoding="utf-8") as stdout_handle,
                    stderr_path.open("w", encoding="utf-8") as stderr_handle,
                ):
                    exit_code, stop_reason = _run_subprocess_with_shutdown(
                        run_args=run_args,
                        env=env,
                        timeout_seconds=self.timeout_seconds,
                        stdout_handle=stdout_handle,
                        stderr_handle=stderr_handle,
                        shutdown_requested=handle.shutdown_requested,
                        graceful_shutdown_seconds=self.graceful_shutdown_seconds,
                    )
            except FileNotFoundError as error:
                raise AgentRuntimeError(
                    f"CLI agent command not found: {command_head}",
                    transient=False,
                ) from error
            except OSError as error:
                raise AgentRuntimeError(
                    f"CLI agent failed to start: {error}",
                    transient=True,
                ) from error

            stdout = stdout_path.read_text("utf-8")
            stderr = stderr_path.read_text("utf-8")

        if stop_reason == _STOPPED_BY_SHUTDOWN:
            raise AgentRuntimeError(
                f"CLI agent {handle.profile.name} stopped by shutdown request",
                transient=True,
            )
        if stop_reason == _STOPPED_BY_TIMEOUT:
            raise AgentRuntimeError(
                f"CLI agent {handle.profile.name} timed out after {self.timeout_seconds}s",
                transient=True,
            )
        if exit_code != 0:
            raise AgentRuntimeError(
                f"CLI agent {handle.profile.name} exited with code {exit_code}: "
                f"{stderr.strip()[-_STDERR_TAIL_CHARS:]}",
                transient=exit_code in self.transient_exit_codes,
            )
        return stdout.strip()


def render_prompt(*, system_prompt: str, history: Sequence[ChatTurn], user_input: str) -> str:
    """Flatten system prompt, prior turns and the new input into one text prompt."""

    parts: list[str] = []
    if system_prompt.strip():
        parts.append(system_prompt.strip())
    if history:
        lines = [
            f"{'Assistant' if turn.role is ChatRole.ASSISTANT else 'Human'}: {turn.content}"
            for turn in history
        ]
        parts.append("Conversation so far:\n" + "\n".join(lines))
    parts.append(f"Human: {user_input}")
    return "\n\n".join(parts)


def _build_run_args(
    *,
    command_template: str,
    model: str,
    prompt: str,
    prompt_file: Path,
) -> tuple[list[str], str]:
    stripped = command_template.strip()
    if not stripped:
        raise AgentRuntimeError("CLI agent command template is empty.", transient=False)
    if "{prompt}" not in stripped and "{prompt_file}" not in stripped:
        raise AgentRuntimeError(
            "CLI agent command template must include {prompt} or {prompt_file}.",
            transient=False,
        )

    try:
        rendered = stripped.format(
            model=shlex.quote(model),
            prompt=shlex.quote(prompt),
            prompt_file=shlex.quote(str(prompt_file)),
        )
    except KeyError as error:
        raise AgentRuntimeError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise AgentRuntimeError(
            "CLI agent command template rendered empty command.",
            transient=False,
        )
    return argv, argv[0]


def _run_subprocess_with_shutdown(  # noqa: PLR0913
    *,
    run_args: list[str],
    env: dict[str, str],
    timeout_seconds: int,
    stdout_handle: IO[str],
    stderr_handle: IO[str],
    shutdown_requested: Callable[[], bool] | None,
    graceful_shutdown_seconds: int,
) -> tuple[int, str | None]:
    """Run the command to completion; the second item says why it was stopped early."""

    process = subprocess.Popen(  # noqa: S603
        run_args,
        env=env,
        stdout=stdout_handle,
        stderr=stderr_handle,
        text=True,
    )
    start_monotonic = time.monotonic()
    shutdown_deadline: float | None = None

    while True:
        returncode = process.poll()
        if returncode is not None:
            return returncode, None

        now = time.monotonic()
        if now - start_monotonic >= timeout_seconds:
            _terminate_process(process)
            return _TIMEOUT_EXIT_CODE, _STOPPED_BY_TIMEOUT

        if shutdown_requested is not None and shutdown_requested():
            if shutdown_deadline is None:
                shutdown_deadline = now + max(0, graceful_shutdown_seconds)
            if now >= shutdown_deadline:
                _terminate_process(process)
                return _TIMEOUT_EXIT_CODE, _STOPPED_BY_SHUTDOWN

        time.sleep(0.05)


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
