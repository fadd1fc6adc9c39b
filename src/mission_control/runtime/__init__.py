"""Agent runtime implementations."""

from mission_control.runtime.base import (
    AgentProfile,
    AgentRuntime,
    AgentRuntimeError,
    ChatRole,
    ChatTurn,
    RuntimeConfig,
    RuntimeHandle,
    ToolHooks,
)
from mission_control.runtime.cli_runtime import CliAgentRuntime
from mission_control.runtime.echo import EchoRuntime, ScriptedToolCall
from mission_control.runtime.factory import RuntimeFactory

__all__ = [
    "AgentProfile",
    "AgentRuntime",
    "AgentRuntimeError",
    "ChatRole",
    "ChatTurn",
    "CliAgentRuntime",
    "EchoRuntime",
    "RuntimeConfig",
    "RuntimeFactory",
    "RuntimeHandle",
    "ScriptedToolCall",
    "ToolHooks",
]
