"""Agent runtime interface consumed by the coordination layer."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class AgentRuntimeError(RuntimeError):
    """Agent execution failed, with a retryability hint."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class ChatRole(str, Enum):
    HUMAN = "human"
    ASSISTANT = "assistant"


@dataclass(slots=True, frozen=True)
class ChatTurn:
    """One prior conversation turn replayed into the runtime."""

    role: ChatRole
    content: str


@dataclass(slots=True, frozen=True)
class AgentProfile:
    """Static description of one squad member."""

    name: str
    role: str
    session_key: str
    model: str | None = None


class ToolHooks(Protocol):
    """Callbacks a runtime fires around every tool invocation.

    ``on_tool_start`` may raise to veto the call; the runtime must then treat
    the tool invocation as failed and not run it.
    """

    def on_tool_start(self, tool_name: str, tool_input: Any) -> None: ...

    def on_tool_end(self, output: Any) -> None: ...

    def on_tool_error(self, error: BaseException) -> None: ...


@dataclass(slots=True)
class RuntimeConfig:
    """Inputs required to build one runtime instance."""

    profile: AgentProfile
    hooks: ToolHooks | None = None
    system_prompt: str = ""
    shutdown_requested: Callable[[], bool] | None = None


@dataclass(slots=True)
class RuntimeHandle:
    """Initialized runtime instance state."""

    profile: AgentProfile
    hooks: ToolHooks | None = None
    system_prompt: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    shutdown_requested: Callable[[], bool] | None = None


class AgentRuntime(Protocol):
    """Protocol implemented by agent runtimes."""

    def initialize(self, config: RuntimeConfig) -> RuntimeHandle:
        """Build a runtime instance for one agent."""

    def execute(
        self,
        handle: RuntimeHandle,
        user_input: str,
        history: Sequence[ChatTurn] = (),
    ) -> str:
        """Run one turn and return the reply text; raise ``AgentRuntimeError`` on failure."""
