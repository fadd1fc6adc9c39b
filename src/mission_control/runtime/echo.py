"""Deterministic local runtime for demos and tests."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from mission_control.runtime.base import (
    AgentProfile,
    AgentRuntimeError,
    ChatTurn,
    RuntimeConfig,
    RuntimeHandle,
)

ReplyFn = Callable[[AgentProfile, str, Sequence[ChatTurn]], str]


class ScriptedToolError(RuntimeError):
    """Error reported to hooks for a scripted tool call marked as failing."""


@dataclass(slots=True, frozen=True)
class ScriptedToolCall:
    """One tool invocation replayed through the runtime hooks."""

    tool_name: str
    tool_input: Any = None
    output: Any = None
    error: str | None = None


def _default_reply(profile: AgentProfile, user_input: str, _: Sequence[ChatTurn]) -> str:
    return f"{profile.name}: {user_input}"


class EchoRuntime:
    """Reply without a model, replaying scripted tool calls through the hooks.

    Every ``execute`` call is recorded in ``calls`` so tests can inspect the
    prompt and history a daemon produced.
    """

    def __init__(
        self,
        *,
        reply: ReplyFn | str | None = None,
        tool_calls: Sequence[ScriptedToolCall] = (),
        fail_with: str | None = None,
    ) -> None:
        self._reply = reply
        self.tool_calls = tuple(tool_calls)
        self.fail_with = fail_with
        self.calls: list[tuple[str, str, tuple[ChatTurn, ...]]] = []

    def initialize(self, config: RuntimeConfig) -> RuntimeHandle:
        return RuntimeHandle(
            profile=config.profile,
            hooks=config.hooks,
            system_prompt=config.system_prompt,
            shutdown_requested=config.shutdown_requested,
        )

    def execute(
        self,
        handle: RuntimeHandle,
        user_input: str,
        history: Sequence[ChatTurn] = (),
    ) -> str:
        self.calls.append((handle.profile.session_key, user_input, tuple(history)))

        for call in self.tool_calls:
            if handle.hooks is not None:
                handle.hooks.on_tool_start(call.tool_name, call.tool_input)
            if call.error is not None:
                if handle.hooks is not None:
                    handle.hooks.on_tool_error(ScriptedToolError(call.error))
                continue
            if handle.hooks is not None:
                handle.hooks.on_tool_end(call.output)

        if self.fail_with is not None:
            raise AgentRuntimeError(self.fail_with, transient=False)
        if isinstance(self._reply, str):
            return self._reply
        reply_fn = self._reply or _default_reply
        return reply_fn(handle.profile, user_input, history)
