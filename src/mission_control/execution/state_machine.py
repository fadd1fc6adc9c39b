"""Per-task execution lifecycle driven through compare-and-set transitions."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from mission_control.execution.errors import (
    InvalidTransitionError,
    NotFoundError,
    TransitionConflictError,
)
from mission_control.execution.sanitization import sanitize_text
from mission_control.execution.step_logger import StepLogger
from mission_control.storage.common import utc_now
from mission_control.store.base import RowStore
from mission_control.store.models import (
    ActivityType,
    ActivityWrite,
    ExecutionState,
    StepStatus,
    TaskView,
)

logger = logging.getLogger(__name__)

USER_ORIGINATOR = "User"
EXECUTION_EVENT_TAG = "execution"

DEFAULT_INTERRUPT_MESSAGE = "Task execution interrupted"

_START_SOURCES = frozenset({ExecutionState.IDLE})
_PAUSE_SOURCES = frozenset({ExecutionState.RUNNING})
_RESUME_SOURCES = frozenset({ExecutionState.PAUSED})
_FINISH_SOURCES = frozenset({ExecutionState.RUNNING})


class ExecutionStateMachine:
    """Own the ``idle -> running -> paused -> completed/failed`` lifecycle.

    Each transition is a single compare-and-set against the legal source
    states. A stale read that loses to a concurrent writer surfaces as
    ``TransitionConflictError`` instead of overwriting the winner. The
    activity written after a successful transition is best-effort.
    """

    def __init__(self, store: RowStore, step_logger: StepLogger | None = None) -> None:
        self.store = store
        self.step_logger = step_logger or StepLogger(store)

    def state(self, task_id: str) -> ExecutionState:
        return self._require_task(task_id).execution_state

    def start(self, task_id: str, *, agent_id: str | None = None) -> TaskView:
        task = self._transition(task_id, ExecutionState.RUNNING, _START_SOURCES)
        self._log_step_quietly(
            task_id,
            agent_id,
            {"message": "Starting execution"},
            StepStatus.RUNNING,
        )
        return task

    def pause(self, task_id: str, *, originator: str = USER_ORIGINATOR) -> TaskView:
        current = self._require_task(task_id)
        if current.execution_state is ExecutionState.PAUSED:
            return current
        task = self._transition(
            task_id,
            ExecutionState.PAUSED,
            _PAUSE_SOURCES,
            paused_at=utc_now(),
        )
        self._record_activity(
            task,
            ActivityType.EXECUTION_PAUSED,
            "Task execution paused",
            originator=originator,
        )
        return task

    def resume(self, task_id: str, *, originator: str = USER_ORIGINATOR) -> TaskView:
        task = self._transition(
            task_id,
            ExecutionState.RUNNING,
            _RESUME_SOURCES,
            resumed_at=utc_now(),
        )
        self._record_activity(
            task,
            ActivityType.EXECUTION_RESUMED,
            "Task execution resumed",
            originator=originator,
        )
        return task

    def interrupt(
        self,
        task_id: str,
        reason: str | None = None,
        *,
        originator: str = USER_ORIGINATOR,
    ) -> TaskView:
        """Force the task back to ``idle`` from any state."""

        self._require_task(task_id)
        if not self.store.update_task_execution_state(task_id, ExecutionState.IDLE):
            raise NotFoundError("Task", task_id)
        task = self._require_task(task_id)
        message = reason or DEFAULT_INTERRUPT_MESSAGE
        self._record_activity(
            task,
            ActivityType.EXECUTION_INTERRUPTED,
            message,
            originator=originator,
        )
        logger.info("Task %s execution interrupted: %s", task_id, self._sanitize(message))
        return task

    def complete(
        self,
        task_id: str,
        result: str | None = None,
        *,
        agent_id: str | None = None,
    ) -> TaskView:
        task = self._transition(task_id, ExecutionState.COMPLETED, _FINISH_SOURCES)
        self._log_step_quietly(
            task_id,
            agent_id,
            {"message": "Execution completed", "result": result or ""},
            StepStatus.COMPLETED,
        )
        return task

    def fail(
        self,
        task_id: str,
        error: BaseException | str,
        *,
        agent_id: str | None = None,
    ) -> TaskView:
        task = self._transition(task_id, ExecutionState.FAILED, _FINISH_SOURCES)
        self._log_step_quietly(
            task_id,
            agent_id,
            {"message": "Execution failed", "error": str(error)},
            StepStatus.FAILED,
        )
        return task

    def _require_task(self, task_id: str) -> TaskView:
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    def _transition(
        self,
        task_id: str,
        target: ExecutionState,
        sources: frozenset[ExecutionState],
        **timestamps: Any,
    ) -> TaskView:
        current = self._require_task(task_id)
        if current.execution_state not in sources:
            raise InvalidTransitionError(
                task_id,
                current=current.execution_state.value,
                target=target.value,
            )
        applied = self.store.update_task_execution_state(
            task_id,
            target,
            expected_states=sources,
            **timestamps,
        )
        if not applied:
            latest = self.store.get_task(task_id)
            raise TransitionConflictError(
                task_id,
                current=latest.execution_state.value if latest is not None else None,
                target=target.value,
            )
        logger.info(
            "Task %s execution %s -> %s",
            task_id,
            current.execution_state.value,
            target.value,
        )
        return self._require_task(task_id)

    def _record_activity(
        self,
        task: TaskView,
        activity_type: ActivityType,
        message: str,
        *,
        originator: str,
    ) -> None:
        try:
            self.store.insert_activity(
                ActivityWrite(
                    type=activity_type,
                    message=self._sanitize(message),
                    task_id=task.task_id,
                    tenant_id=task.tenant_id,
                    event_tag=EXECUTION_EVENT_TAG,
                    originator=originator,
                ),
            )
        except Exception:  # noqa: BLE001
            logger.exception(
                "Failed to record %s activity for task %s",
                activity_type.value,
                task.task_id,
            )

    def _sanitize(self, text: str) -> str:
        return sanitize_text(text, max_chars=self.step_logger.max_payload_chars)

    def _log_step_quietly(
        self,
        task_id: str,
        agent_id: str | None,
        payload: Mapping[str, Any],
        status: StepStatus,
    ) -> None:
        try:
            self.step_logger.log_step(task_id, agent_id, payload, status)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to log %s step for task %s", status.value, task_id)
