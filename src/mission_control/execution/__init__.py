"""Per-task execution lifecycle, step log, pause gate and tool hooks."""

from mission_control.execution.callbacks import ExecutionCallbackHandler
from mission_control.execution.errors import (
    CoordinationError,
    ExecutionInterruptedError,
    ExecutionTimeoutError,
    InvalidTransitionError,
    NotFoundError,
    TransitionConflictError,
)
from mission_control.execution.executor import TaskExecutor
from mission_control.execution.pause_gate import PauseGate
from mission_control.execution.state_machine import ExecutionStateMachine
from mission_control.execution.step_logger import StepLogger

__all__ = [
    "CoordinationError",
    "ExecutionCallbackHandler",
    "ExecutionInterruptedError",
    "ExecutionStateMachine",
    "ExecutionTimeoutError",
    "InvalidTransitionError",
    "NotFoundError",
    "PauseGate",
    "StepLogger",
    "TaskExecutor",
    "TransitionConflictError",
]
