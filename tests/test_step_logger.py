from __future__ import annotations

import allure
import pytest
from conftest import FRIDAY, register

from mission_control.execution.errors import NotFoundError
from mission_control.execution.step_logger import SYSTEM_ORIGINATOR, StepLogger
from mission_control.store.models import StepStatus

pytestmark = [
    allure.epic("Execution Control"),
    allure.feature("Step Log"),
]


def test_steps_are_numbered_and_attributed(store, task, jarvis) -> None:
    logger = StepLogger(store)

    first = logger.log_step(task.task_id, jarvis.agent_id, {"tool_name": "search", "input": "q"})
    second = logger.log_step(task.task_id, jarvis.agent_id, {"tool_name": "write"})
    logger.update_step_status(first, StepStatus.COMPLETED, {"output": "found"})

    steps = logger.list_steps(task.task_id)
    assert [(step.step_order, step.message) for step in steps] == [
        (1, "search running"),
        (2, "write running"),
    ]
    assert steps[0].step_status is StepStatus.COMPLETED
    assert steps[0].step_details == {"tool_name": "search", "input": "q", "output": "found"}
    assert steps[0].originator == "Jarvis"
    assert store.get_task(task.task_id).current_step_id == second


def test_explicit_message_is_not_stored_in_details(store, task) -> None:
    step_id = StepLogger(store).log_step(
        task.task_id,
        None,
        {"message": "Starting execution", "stage": "boot"},
    )

    step = store.get_step(step_id)
    assert step.message == "Starting execution"
    assert step.step_details == {"stage": "boot"}


def test_message_falls_back_to_status_without_tool_name(store, task) -> None:
    step_id = StepLogger(store).log_step(task.task_id, None, status=StepStatus.PENDING)

    assert store.get_step(step_id).message == "Step pending"


def test_unknown_or_missing_agent_is_attributed_to_system(store, task) -> None:
    logger = StepLogger(store)

    anonymous = logger.log_step(task.task_id, None)
    unknown = logger.log_step(task.task_id, "no-such-agent")

    assert store.get_step(anonymous).originator == SYSTEM_ORIGINATOR
    assert store.get_step(unknown).originator == SYSTEM_ORIGINATOR


def test_non_running_steps_do_not_move_current_step(store, task) -> None:
    logger = StepLogger(store)
    running = logger.log_step(task.task_id, None)

    logger.log_step(task.task_id, None, {"message": "done"}, StepStatus.COMPLETED)

    assert store.get_task(task.task_id).current_step_id == running


def test_payload_is_sanitized_before_storage(store, task) -> None:
    agent = register(store, FRIDAY)
    step_id = StepLogger(store, max_payload_chars=20).log_step(
        task.task_id,
        agent.agent_id,
        {"tool_name": "deploy", "password": "hunter2", "input": "x" * 50},
    )

    details = store.get_step(step_id).step_details
    assert "password" not in details
    assert details["input"] == "x" * 20 + "...(truncated)"


def test_log_step_for_missing_task_raises(store) -> None:
    with pytest.raises(NotFoundError, match="Task missing not found"):
        StepLogger(store).log_step("missing", None)


def test_update_missing_step_raises(store) -> None:
    with pytest.raises(NotFoundError):
        StepLogger(store).update_step_status(424242, StepStatus.FAILED)


def test_explicit_message_is_redacted_and_clamped(store, task) -> None:
    step_id = StepLogger(store).log_step(
        task.task_id,
        None,
        {"message": "calling api_key=ABCDEFGHIJKLMNOPQRST1234 " + "x" * 5000},
    )

    message = store.get_step(step_id).message
    assert "ABCDEFGHIJKLMNOPQRST1234" not in message
    assert message.startswith("calling api_key=***")
    assert len(message) == 1_000 + len("...(truncated)")
