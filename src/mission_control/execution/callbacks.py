"""Tool-invocation hooks that wire a runtime to the pause gate and step log."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from mission_control.execution.pause_gate import DEFAULT_TIMEOUT_SECONDS, PauseGate
from mission_control.execution.step_logger import StepLogger
from mission_control.store.models import StepStatus

logger = logging.getLogger(__name__)


class ExecutionCallbackHandler:
    """Runtime ``ToolHooks`` bound to one task execution.

    Gate failures in ``on_tool_start`` propagate so the tool call is
    abandoned. Step-log writes never do.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        task_id: str,
        agent_id: str | None,
        step_logger: StepLogger,
        pause_gate: PauseGate,
        gate_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.task_id = task_id
        self.agent_id = agent_id
        self.step_logger = step_logger
        self.pause_gate = pause_gate
        self.gate_timeout_seconds = gate_timeout_seconds
        self._clock = clock
        self._current_step_id: int | None = None
        self._step_started_at = 0.0

    @property
    def current_step_id(self) -> int | None:
        return self._current_step_id

    def on_tool_start(self, tool_name: str, tool_input: Any) -> None:
        self.pause_gate.await_runnable(self.task_id, self.gate_timeout_seconds)

        self._step_started_at = self._clock()
        self._current_step_id = self._log(
            {
                "tool_name": tool_name or "unknown_tool",
                "input": tool_input,
                "message": f"Starting {tool_name or 'unknown_tool'}",
            },
            StepStatus.RUNNING,
        )

    def on_tool_end(self, output: Any) -> None:
        self._finish_current(StepStatus.COMPLETED, {"output": output})

    def on_tool_error(self, error: BaseException) -> None:
        self._finish_current(StepStatus.FAILED, {"error": str(error) or type(error).__name__})

    def on_agent_action(self, tool_name: str, tool_input: Any = None) -> None:
        self._log(
            {
                "tool_name": tool_name,
                "input": tool_input,
                "message": f"Agent action: {tool_name}",
            },
            StepStatus.RUNNING,
        )

    def on_agent_finish(self, output: str) -> None:
        self._log(
            {"message": "Agent finished execution", "output": output},
            StepStatus.COMPLETED,
        )

    def _finish_current(self, status: StepStatus, details: dict[str, Any]) -> None:
        step_id = self._current_step_id
        if step_id is None:
            return
        self._current_step_id = None
        duration_ms = int((self._clock() - self._step_started_at) * 1000)
        try:
            self.step_logger.update_step_status(
                step_id,
                status,
                {**details, "duration_ms": duration_ms},
            )
        except Exception:  # noqa: BLE001
            logger.exception("Failed to mark step %s as %s", step_id, status.value)

    def _log(self, payload: dict[str, Any], status: StepStatus) -> int | None:
        try:
            return self.step_logger.log_step(self.task_id, self.agent_id, payload, status)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to log %s step for task %s", status.value, self.task_id)
            return None
