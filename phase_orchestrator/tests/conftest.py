"""Shared fixtures for phase_orchestrator tests."""

import asyncio
from collections.abc import Callable

import pytest

from phase_orchestrator.agents import ExecutionAgent
from phase_orchestrator.config import OrchestratorConfig
from phase_orchestrator.errors import DomainFailure
from phase_orchestrator.models import (
    AgentCapabilities,
    AgentConfig,
    AgentStatus,
    Domain,
    Phase,
    Task,
    TaskResult,
)


class FakeAgent(ExecutionAgent):
    """Scriptable agent recording every call it receives."""

    def __init__(
        self,
        domain: str,
        ready: bool | Exception = True,
        fail: tuple[str, ...] = (),
        raise_on: tuple[str, ...] = (),
        abort_on: tuple[str, ...] = (),
        rollback: dict[str, list[str]] | None = None,
        next_tasks: dict[str, list[Task]] | None = None,
        parallel: bool = False,
        max_concurrent: int = 1,
        delay: float = 0.0,
    ) -> None:
        self.config = AgentConfig(
            name=f"Fake[{domain}]",
            domain=domain,
            capabilities=AgentCapabilities(can_execute_parallel=parallel),
            max_concurrent_tasks=max_concurrent,
        )
        self.ready = ready
        self.fail = fail
        self.raise_on = raise_on
        self.abort_on = abort_on
        self.rollback = rollback or {}
        self.next_tasks = next_tasks or {}
        self.delay = delay
        self.executed: list[str] = []
        self.running = 0
        self.max_running = 0
        self.prerequisite_calls = 0

    async def validate_prerequisites(self) -> bool:
        self.prerequisite_calls += 1
        if isinstance(self.ready, Exception):
            raise self.ready
        return self.ready

    async def execute_task(self, task: Task) -> TaskResult:
        self.executed.append(task.id)
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await asyncio.sleep(self.delay)
            if task.id in self.abort_on:
                raise DomainFailure(f"agent gave up on {task.id}")
            if task.id in self.raise_on:
                raise RuntimeError(f"boom in {task.id}")
            if task.id in self.fail:
                return TaskResult(
                    task_id=task.id,
                    status="failure",
                    errors=[f"{task.id} broke"],
                    rollback_instructions=self.rollback.get(task.id),
                )
            return TaskResult(
                task_id=task.id,
                status="success",
                output={"artifact": task.id},
                next_tasks=self.next_tasks.pop(task.id, None),
            )
        finally:
            self.running -= 1

    async def estimate_task(self, task: Task) -> float:
        return task.estimated_hours or 1.0

    def get_status(self) -> AgentStatus:
        return AgentStatus(agent_id=self.config.name, queue_length=self.running)


def _make_domain(
    name: str,
    dependencies: list[str] | None = None,
    task_count: int = 2,
    task_dependencies: dict[int, list[str]] | None = None,
) -> Domain:
    prefix = name.lower().replace(" ", "-")
    task_dependencies = task_dependencies or {}
    tasks = [
        Task(
            id=f"{prefix}-{i}",
            type=f"{prefix}-work",
            description=f"{name} task {i}",
            dependencies=task_dependencies.get(i, []),
            estimated_hours=2.0,
        )
        for i in range(1, task_count + 1)
    ]
    return Domain(
        name=name,
        description=f"{name} domain",
        tasks=tasks,
        dependencies=dependencies or [],
    )


@pytest.fixture
def fake_agent() -> type[FakeAgent]:
    """The FakeAgent class, for building scripted agents."""
    return FakeAgent


@pytest.fixture
def make_domain() -> Callable[..., Domain]:
    """Factory building a domain with numbered tasks."""
    return _make_domain


@pytest.fixture
def abc_phase() -> Phase:
    """Single phase with A and B independent and C depending on both."""
    return Phase(
        name="Build",
        description="A and B feed C",
        domains=[
            _make_domain("A"),
            _make_domain("B"),
            _make_domain("C", dependencies=["A", "B"]),
        ],
        acceptance_criteria=["C works"],
    )


@pytest.fixture
def config() -> OrchestratorConfig:
    """Default configuration, independent of the environment."""
    return OrchestratorConfig(otlp_endpoint="http://localhost:4317")
