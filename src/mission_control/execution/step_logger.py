"""Ordered, attributed execution-step log scoped to a task."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from mission_control.execution.errors import NotFoundError
from mission_control.execution.sanitization import (
    MAX_PAYLOAD_CHARS,
    sanitize_payload,
    sanitize_text,
)
from mission_control.store.base import RowStore
from mission_control.store.models import ActivityView, StepStatus, StepWrite

logger = logging.getLogger(__name__)

SYSTEM_ORIGINATOR = "System"


class StepLogger:
    """Append execution steps and move them through their status lifecycle.

    Step numbers come from the store on every insert, never from a local
    counter, so several processes can log steps for one task.
    """

    def __init__(self, store: RowStore, *, max_payload_chars: int = MAX_PAYLOAD_CHARS) -> None:
        self.store = store
        self.max_payload_chars = max_payload_chars

    def log_step(
        self,
        task_id: str,
        agent_id: str | None,
        payload: Mapping[str, Any] | None = None,
        status: StepStatus = StepStatus.RUNNING,
    ) -> int:
        """Insert one step and return its id.

        ``payload`` may carry ``message`` (explicit display text) and
        ``tool_name``. The message is sanitized on its own and everything
        else is sanitized into the step details.
        """

        task = self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)

        raw = dict(payload or {})
        explicit_message = raw.pop("message", None)
        tool_name = raw.get("tool_name")
        message = sanitize_text(
            str(explicit_message or f"{tool_name or 'Step'} {status.value}"),
            max_chars=self.max_payload_chars,
        )

        step = self.store.insert_step(
            StepWrite(
                task_id=task_id,
                tenant_id=task.tenant_id,
                agent_id=agent_id,
                message=message,
                originator=self._resolve_originator(agent_id),
                step_status=status,
                step_details=sanitize_payload(raw, max_chars=self.max_payload_chars),
            ),
        )
        if status is StepStatus.RUNNING:
            self.store.set_current_step(task_id, step.id)
        logger.debug(
            "Logged step %s (#%s, %s) for task %s",
            step.id,
            step.step_order,
            status.value,
            task_id,
        )
        return step.id

    def update_step_status(
        self,
        step_id: int,
        status: StepStatus,
        partial_payload: Mapping[str, Any] | None = None,
    ) -> ActivityView:
        """Shallow-merge ``partial_payload`` into the step details and set its status."""

        patch = (
            sanitize_payload(dict(partial_payload), max_chars=self.max_payload_chars)
            if partial_payload
            else None
        )
        updated = self.store.update_step(step_id, status=status, details_patch=patch)
        if updated is None:
            raise NotFoundError("Step", step_id)
        return updated

    def list_steps(self, task_id: str) -> list[ActivityView]:
        return self.store.list_task_steps(task_id)

    def _resolve_originator(self, agent_id: str | None) -> str:
        if agent_id is None:
            return SYSTEM_ORIGINATOR
        try:
            agent = self.store.get_agent(agent_id)
        except Exception:  # noqa: BLE001
            logger.warning("Could not resolve agent %s for step attribution", agent_id)
            return SYSTEM_ORIGINATOR
        return agent.name if agent is not None else SYSTEM_ORIGINATOR
