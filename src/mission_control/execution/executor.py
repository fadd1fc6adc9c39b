"""Interactive task execution: state machine + runtime + tool hooks."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from mission_control.execution.callbacks import ExecutionCallbackHandler
from mission_control.execution.errors import (
    CoordinationError,
    ExecutionInterruptedError,
    ExecutionTimeoutError,
)
from mission_control.execution.pause_gate import DEFAULT_TIMEOUT_SECONDS, PauseGate
from mission_control.execution.state_machine import ExecutionStateMachine
from mission_control.execution.step_logger import StepLogger
from mission_control.runtime.base import (
    AgentProfile,
    AgentRuntime,
    AgentRuntimeError,
    ChatTurn,
    RuntimeConfig,
)
from mission_control.store.base import RowStore

logger = logging.getLogger(__name__)


class TaskExecutor:
    """Run one agent against one task with pause/interrupt honored per tool call."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: RowStore,
        runtime: AgentRuntime,
        step_logger: StepLogger | None = None,
        state_machine: ExecutionStateMachine | None = None,
        pause_gate: PauseGate | None = None,
        gate_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.store = store
        self.runtime = runtime
        self.step_logger = step_logger or StepLogger(store)
        self.state_machine = state_machine or ExecutionStateMachine(store, self.step_logger)
        self.pause_gate = pause_gate or PauseGate(store)
        self.gate_timeout_seconds = gate_timeout_seconds

    def execute(
        self,
        task_id: str,
        profile: AgentProfile,
        prompt: str,
        *,
        history: Sequence[ChatTurn] = (),
    ) -> str:
        """Start the task, run the agent and record the outcome.

        Raises:
            AgentRuntimeError: the agent failed; the task is moved to ``failed``.
            ExecutionTimeoutError: a pause outlived the gate bound; the task is
                interrupted back to ``idle``.
            ExecutionInterruptedError: the task was interrupted mid-run.
            Exception: any other failure is re-raised after the task is moved
                to ``failed``.
        """

        agent = self.store.get_agent_by_session_key(profile.session_key)
        agent_id = agent.agent_id if agent is not None else None

        self.state_machine.start(task_id, agent_id=agent_id)
        hooks = ExecutionCallbackHandler(
            task_id=task_id,
            agent_id=agent_id,
            step_logger=self.step_logger,
            pause_gate=self.pause_gate,
            gate_timeout_seconds=self.gate_timeout_seconds,
        )
        try:
            handle = self.runtime.initialize(RuntimeConfig(profile=profile, hooks=hooks))
            result = self.runtime.execute(handle, prompt, history)
        except AgentRuntimeError as error:
            logger.warning("Agent %s failed on task %s: %s", profile.name, task_id, error)
            self._fail_quietly(task_id, error, agent_id)
            raise
        except ExecutionTimeoutError as error:
            logger.warning("Task %s timed out waiting for resume", task_id)
            self.state_machine.interrupt(task_id, str(error), originator=profile.name)
            raise
        except ExecutionInterruptedError:
            logger.info("Task %s interrupted during %s run", task_id, profile.name)
            raise
        except Exception as error:
            logger.exception("Unexpected error while %s ran task %s", profile.name, task_id)
            self._fail_quietly(task_id, error, agent_id)
            raise

        self.state_machine.complete(task_id, result, agent_id=agent_id)
        return result

    def _fail_quietly(self, task_id: str, error: Exception, agent_id: str | None) -> None:
        try:
            self.state_machine.fail(task_id, error, agent_id=agent_id)
        except CoordinationError as transition_error:
            logger.warning(
                "Could not mark task %s failed after error: %s",
                task_id,
                transition_error,
            )
