"""Exceptions raised by the execution coordination layer."""

from __future__ import annotations


class CoordinationError(RuntimeError):
    """Base class for coordination failures surfaced to callers."""


class NotFoundError(CoordinationError):
    """Referenced task, agent, step or thread does not exist."""

    def __init__(self, kind: str, identifier: object) -> None:
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class InvalidTransitionError(CoordinationError):
    """Execution state is not a legal source state for the requested transition."""

    def __init__(self, task_id: str, *, current: str | None, target: str) -> None:
        super().__init__(
            f"Cannot move task {task_id} execution from {current or 'unknown'} to {target}",
        )
        self.task_id = task_id
        self.current = current
        self.target = target


class TransitionConflictError(InvalidTransitionError):
    """A concurrent writer changed the state between read and compare-and-set."""


class ExecutionInterruptedError(CoordinationError):
    """Task went back to idle while a gate wait was outstanding."""

    def __init__(self, task_id: str, *, state: str) -> None:
        super().__init__(f"Task {task_id} execution interrupted (state={state})")
        self.task_id = task_id
        self.state = state


class ExecutionTimeoutError(CoordinationError):
    """Gate wait exceeded its bound without the task becoming runnable."""

    def __init__(self, task_id: str, *, timeout_seconds: float) -> None:
        super().__init__(
            f"Task {task_id} still paused after {timeout_seconds:g}s waiting for resume",
        )
        self.task_id = task_id
        self.timeout_seconds = timeout_seconds
