"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from mission_control.runtime.base import AgentProfile
from mission_control.store.base import RowStore
from mission_control.store.memory import MemoryRowStore
from mission_control.store.models import AgentCreate, AgentView, TaskCreate, TaskView
from mission_control.store.sql import SqlRowStore

JARVIS = AgentProfile(name="Jarvis", role="Squad Lead", session_key="agent:main:main")
SHURI = AgentProfile(
    name="Shuri",
    role="Product Analyst",
    session_key="agent:product-analyst:main",
)
FRIDAY = AgentProfile(name="Friday", role="Developer", session_key="agent:developer:main")
ROSTER = (JARVIS, SHURI, FRIDAY)


class FakeClock:
    """Monotonic clock whose ``sleep`` only advances time."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []
        self.on_sleep = None

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep(len(self.sleeps))


@pytest.fixture(params=["sql", "memory"])
def store(request, tmp_path: Path) -> Iterator[RowStore]:
    if request.param == "memory":
        yield MemoryRowStore()
        return
    sql_store = SqlRowStore(f"sqlite:///{tmp_path / 'mission-control.db'}")
    sql_store.init_schema()
    try:
        yield sql_store
    finally:
        sql_store.close()


@pytest.fixture()
def memory_store() -> MemoryRowStore:
    return MemoryRowStore()


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


def register(store: RowStore, profile: AgentProfile) -> AgentView:
    return store.create_agent(
        AgentCreate(name=profile.name, role=profile.role, session_key=profile.session_key),
    )


def new_task(store: RowStore, title: str = "Draft launch plan") -> TaskView:
    return store.create_task(TaskCreate(title=title, description="For the squad"))


@pytest.fixture()
def jarvis(store: RowStore) -> AgentView:
    return register(store, JARVIS)


@pytest.fixture()
def task(store: RowStore) -> TaskView:
    return new_task(store)
