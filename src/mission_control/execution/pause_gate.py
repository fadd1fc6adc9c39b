"""Bounded wait that blocks a running agent while its task is paused."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from mission_control.execution.errors import (
    ExecutionInterruptedError,
    ExecutionTimeoutError,
    NotFoundError,
)
from mission_control.store.base import RowStore
from mission_control.store.models import ExecutionState

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_TIMEOUT_SECONDS = 30.0


class PauseGate:
    """Spin-poll the task's execution state until it is runnable.

    ``running`` passes immediately. ``paused`` keeps polling until the
    deadline. Any other state (``idle`` after an interrupt, or a terminal
    state) means the work in flight must stop.
    """

    def __init__(
        self,
        store: RowStore,
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive.")
        self.store = store
        self.poll_interval_seconds = poll_interval_seconds
        self._clock = clock
        self._sleep = sleep

    def await_runnable(
        self,
        task_id: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        deadline = self._clock() + timeout_seconds
        waited = False
        while True:
            task = self.store.get_task(task_id)
            if task is None:
                raise NotFoundError("Task", task_id)

            state = task.execution_state
            if state is ExecutionState.RUNNING:
                if waited:
                    logger.info("Task %s resumed, continuing", task_id)
                return
            if state is not ExecutionState.PAUSED:
                raise ExecutionInterruptedError(task_id, state=state.value)

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ExecutionTimeoutError(task_id, timeout_seconds=timeout_seconds)
            if not waited:
                logger.info("Task %s paused, waiting up to %.1fs", task_id, timeout_seconds)
                waited = True
            self._sleep(min(self.poll_interval_seconds, remaining))
