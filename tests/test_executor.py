from __future__ import annotations

from collections.abc import Sequence

import allure
import pytest
from conftest import JARVIS, FakeClock, new_task, register

from mission_control.execution.callbacks import ExecutionCallbackHandler
from mission_control.execution.errors import ExecutionInterruptedError, ExecutionTimeoutError
from mission_control.execution.executor import TaskExecutor
from mission_control.execution.pause_gate import PauseGate
from mission_control.execution.state_machine import ExecutionStateMachine
from mission_control.execution.step_logger import StepLogger
from mission_control.runtime.base import AgentRuntimeError, ChatTurn, RuntimeHandle
from mission_control.runtime.echo import EchoRuntime, ScriptedToolCall
from mission_control.store.models import ActivityType, ExecutionState, StepStatus

pytestmark = [
    allure.epic("Execution Control"),
    allure.feature("Tool Hooks & Task Runs"),
]


class _InterferingRuntime(EchoRuntime):
    """Applies an operator action to the task just before the first tool call."""

    def __init__(self, action, **kwargs) -> None:
        super().__init__(**kwargs)
        self._action = action

    def execute(
        self,
        handle: RuntimeHandle,
        user_input: str,
        history: Sequence[ChatTurn] = (),
    ) -> str:
        self._action()
        return super().execute(handle, user_input, history)


def _executor(store, runtime, clock: FakeClock | None = None, timeout: float = 30.0) -> TaskExecutor:
    clock = clock or FakeClock()
    return TaskExecutor(
        store=store,
        runtime=runtime,
        pause_gate=PauseGate(store, clock=clock, sleep=clock.sleep),
        gate_timeout_seconds=timeout,
    )


def test_successful_run_logs_every_tool_call(store, task) -> None:
    register(store, JARVIS)
    runtime = EchoRuntime(
        reply="Plan drafted",
        tool_calls=[
            ScriptedToolCall("search", {"query": "competitors"}, output="3 results"),
            ScriptedToolCall("write_file", {"path": "plan.md"}, error="disk full"),
        ],
    )

    reply = _executor(store, runtime).execute(task.task_id, JARVIS, "Draft the plan")

    assert reply == "Plan drafted"
    assert store.get_task(task.task_id).execution_state is ExecutionState.COMPLETED
    steps = store.list_task_steps(task.task_id)
    assert [(step.step_order, step.message, step.step_status) for step in steps] == [
        (1, "Starting execution", StepStatus.RUNNING),
        (2, "Starting search", StepStatus.COMPLETED),
        (3, "Starting write_file", StepStatus.FAILED),
        (4, "Execution completed", StepStatus.COMPLETED),
    ]
    assert steps[1].step_details["output"] == "3 results"
    assert steps[1].step_details["input"] == {"query": "competitors"}
    assert "duration_ms" in steps[1].step_details
    assert steps[2].step_details["error"] == "disk full"
    assert {step.originator for step in steps} == {"Jarvis"}
    assert runtime.calls == [(JARVIS.session_key, "Draft the plan", ())]


def test_runtime_failure_marks_task_failed(store, task) -> None:
    runtime = EchoRuntime(fail_with="model unavailable")

    with pytest.raises(AgentRuntimeError, match="model unavailable"):
        _executor(store, runtime).execute(task.task_id, JARVIS, "Go")

    assert store.get_task(task.task_id).execution_state is ExecutionState.FAILED
    last = store.list_task_steps(task.task_id)[-1]
    assert last.message == "Execution failed"
    assert last.step_details == {"error": "model unavailable"}
    assert last.originator == "System"


def test_unexpected_runtime_error_marks_task_failed(store, task) -> None:
    def _crash() -> None:
        raise ValueError("tool crashed")

    runtime = _InterferingRuntime(_crash)

    with pytest.raises(ValueError, match="tool crashed"):
        _executor(store, runtime).execute(task.task_id, JARVIS, "Go")

    assert store.get_task(task.task_id).execution_state is ExecutionState.FAILED
    last = store.list_task_steps(task.task_id)[-1]
    assert last.message == "Execution failed"
    assert last.step_status is StepStatus.FAILED
    assert last.step_details == {"error": "tool crashed"}


def test_pause_outliving_the_gate_interrupts_the_task(store, task) -> None:
    register(store, JARVIS)
    machine = ExecutionStateMachine(store)
    runtime = _InterferingRuntime(
        lambda: machine.pause(task.task_id),
        tool_calls=[ScriptedToolCall("search")],
    )
    clock = FakeClock()

    with pytest.raises(ExecutionTimeoutError):
        _executor(store, runtime, clock=clock, timeout=3.0).execute(task.task_id, JARVIS, "Go")

    assert store.get_task(task.task_id).execution_state is ExecutionState.IDLE
    marker = store.list_task_activities(task.task_id)[-1]
    assert marker.type == ActivityType.EXECUTION_INTERRUPTED.value
    assert marker.originator == "Jarvis"
    assert "still paused" in marker.message
    assert [step.message for step in store.list_task_steps(task.task_id)] == [
        "Starting execution",
    ]


def test_interrupt_before_a_tool_call_stops_the_run(store, task) -> None:
    machine = ExecutionStateMachine(store)
    runtime = _InterferingRuntime(
        lambda: machine.interrupt(task.task_id, "Stop"),
        tool_calls=[ScriptedToolCall("search")],
    )

    with pytest.raises(ExecutionInterruptedError):
        _executor(store, runtime).execute(task.task_id, JARVIS, "Go")

    assert store.get_task(task.task_id).execution_state is ExecutionState.IDLE
    assert len(store.list_task_steps(task.task_id)) == 1


def test_callback_handler_measures_tool_duration(memory_store) -> None:
    task = new_task(memory_store)
    ExecutionStateMachine(memory_store).start(task.task_id)
    clock = FakeClock()
    handler = ExecutionCallbackHandler(
        task_id=task.task_id,
        agent_id=None,
        step_logger=StepLogger(memory_store),
        pause_gate=PauseGate(memory_store, clock=clock, sleep=clock.sleep),
        clock=clock,
    )

    handler.on_tool_start("search", "q")
    step_id = handler.current_step_id
    clock.now += 0.25
    handler.on_tool_end("ok")

    step = memory_store.get_step(step_id)
    assert step.step_details["duration_ms"] == 250
    assert step.step_status is StepStatus.COMPLETED
    assert handler.current_step_id is None
    assert memory_store.get_task(task.task_id).current_step_id == step_id


def test_callback_handler_records_agent_action_and_finish(memory_store) -> None:
    task = new_task(memory_store)
    ExecutionStateMachine(memory_store).start(task.task_id)
    handler = ExecutionCallbackHandler(
        task_id=task.task_id,
        agent_id=None,
        step_logger=StepLogger(memory_store),
        pause_gate=PauseGate(memory_store),
    )

    handler.on_agent_action("browse", {"url": "https://example.com"})
    handler.on_agent_finish("All done")
    handler.on_tool_end("ignored without a started tool")

    messages = [step.message for step in memory_store.list_task_steps(task.task_id)]
    assert messages[-2:] == ["Agent action: browse", "Agent finished execution"]


def test_step_log_failures_do_not_abort_tool_calls(memory_store) -> None:
    task = new_task(memory_store)
    ExecutionStateMachine(memory_store).start(task.task_id)

    def _broken_insert(payload):
        raise RuntimeError("activity table offline")

    memory_store.insert_step = _broken_insert
    handler = ExecutionCallbackHandler(
        task_id=task.task_id,
        agent_id=None,
        step_logger=StepLogger(memory_store),
        pause_gate=PauseGate(memory_store),
    )

    handler.on_tool_start("search", "q")
    handler.on_tool_end("ok")

    assert handler.current_step_id is None
