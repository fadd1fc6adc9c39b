"""Build runtime instances for registered agents from the configured roster."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from mission_control.runtime.base import (
    AgentProfile,
    AgentRuntime,
    RuntimeConfig,
    RuntimeHandle,
    ToolHooks,
)
from mission_control.store.models import AgentView

logger = logging.getLogger(__name__)

_PERSONA_FILES = ("SOUL.md", "AGENTS.md")


def agent_workspace_path(workspace_root: Path, agent_name: str) -> Path:
    return workspace_root / agent_name.lower()


class RuntimeFactory:
    """Resolve an agent's profile by session key and initialize a runtime for it."""

    def __init__(
        self,
        runtime: AgentRuntime,
        profiles: Iterable[AgentProfile],
        *,
        workspace_root: Path | None = None,
    ) -> None:
        self.runtime = runtime
        self.profiles = {profile.session_key: profile for profile in profiles}
        self.workspace_root = workspace_root

    def profile_for(self, session_key: str) -> AgentProfile | None:
        return self.profiles.get(session_key)

    def build(
        self,
        agent: AgentView,
        *,
        hooks: ToolHooks | None = None,
        shutdown_requested: Callable[[], bool] | None = None,
    ) -> RuntimeHandle | None:
        """Initialize a runtime for ``agent``; ``None`` when the roster has no profile.

        ``shutdown_requested`` lets a long-running turn notice that its caller
        is stopping.
        """

        profile = self.profile_for(agent.session_key)
        if profile is None:
            logger.info("No runtime profile for agent %s (%s)", agent.name, agent.session_key)
            return None
        return self.runtime.initialize(
            RuntimeConfig(
                profile=profile,
                hooks=hooks,
                system_prompt=self._load_persona(profile),
                shutdown_requested=shutdown_requested,
            ),
        )

    def _load_persona(self, profile: AgentProfile) -> str:
        if self.workspace_root is None:
            return ""
        workspace = agent_workspace_path(self.workspace_root, profile.name)
        sections = []
        for file_name in _PERSONA_FILES:
            path = workspace / file_name
            if path.is_file():
                sections.append(path.read_text("utf-8").strip())
        return "\n\n".join(section for section in sections if section)

