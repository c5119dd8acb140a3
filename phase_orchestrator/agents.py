"""Execution agent contract and registry.

An execution agent performs the tasks of one domain and reports the
outcome as a TaskResult. The orchestrator never looks inside the result
payload. Agents are bound to domain names through a fixed AgentRegistry
that is passed to the coordinator.
"""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from dataclasses import replace
from datetime import datetime
from typing import Any, ClassVar

from phase_orchestrator.errors import AgentNotFoundError, DomainFailure
from phase_orchestrator.models import AgentConfig, AgentStatus, Task, TaskResult

logger = logging.getLogger(__name__)


class ExecutionAgent(ABC):
    """Contract every domain agent implements."""

    config: AgentConfig

    @abstractmethod
    async def validate_prerequisites(self) -> bool:
        """Cheap readiness probe. False blocks the whole domain."""

    @abstractmethod
    async def execute_task(self, task: Task) -> TaskResult:
        """Run exactly one task.

        Raise DomainFailure to abandon the remaining tasks of the domain;
        any other exception only fails this task.
        """

    @abstractmethod
    async def estimate_task(self, task: Task) -> float:
        """Estimated effort in hours. Used for reporting only."""

    @abstractmethod
    def get_status(self) -> AgentStatus:
        """Current health record."""


class DispatchingAgent(ExecutionAgent):
    """Base agent that dispatches tasks to handlers by task type.

    Subclasses declare class-level tables:

        handlers: task type -> name of an async method taking the task.
            The method returns the output payload, or a TaskResult when it
            needs to report failure or partial completion itself.
        rollback_map: task type -> rollback instructions used on failure
        estimates: task type -> estimated hours
        required_env: environment variables that must be set for
            validate_prerequisites() to pass

    Raising handlers are retried according to config.retry_policy. A task
    whose type has no handler fails without retry.
    """

    handlers: ClassVar[dict[str, str]] = {}
    rollback_map: ClassVar[dict[str, list[str]]] = {}
    estimates: ClassVar[dict[str, float]] = {}
    default_estimate: ClassVar[float] = 4.0
    required_env: ClassVar[tuple[str, ...]] = ()

    def __init__(self, config: AgentConfig, agent_id: str | None = None) -> None:
        self.config = config
        self._status = AgentStatus(agent_id=agent_id or f"{config.domain}-agent")
        self._running: dict[str, Task] = {}
        self._total_seconds = 0.0

    async def validate_prerequisites(self) -> bool:
        missing = [name for name in self.required_env if not os.getenv(name)]
        if missing:
            logger.warning(
                f"{self.config.name} missing configuration: {', '.join(missing)}"
            )
            return False
        return True

    async def execute_task(self, task: Task) -> TaskResult:
        logger.info(f"{self.config.name} executing: {task.description}")
        self._running[task.id] = task
        self._status.current_task = task.id
        self._status.queue_length = len(self._running)
        start = time.monotonic()

        try:
            method = self.handlers.get(task.type)
            if method is None:
                raise ValueError(f"Unknown task type: {task.type}")
            outcome = await self._run_with_retry(getattr(self, method), task)
        except DomainFailure:
            self._record(time.monotonic() - start, success=False)
            raise
        except Exception as e:
            logger.warning(f"{self.config.name} task {task.id} failed: {e}")
            self._record(time.monotonic() - start, success=False)
            return TaskResult(
                task_id=task.id,
                status="failure",
                errors=[str(e)],
                rollback_instructions=self.rollback_for(task),
            )
        finally:
            self._running.pop(task.id, None)
            self._status.current_task = None
            self._status.queue_length = len(self._running)

        if isinstance(outcome, TaskResult):
            result = outcome
        else:
            result = TaskResult(task_id=task.id, status="success", output=outcome)
        if result.status != "success" and result.rollback_instructions is None:
            result.rollback_instructions = self.rollback_for(task)
        self._record(time.monotonic() - start, success=result.status == "success")
        return result

    async def estimate_task(self, task: Task) -> float:
        return self.estimates.get(task.type, self.default_estimate)

    def get_status(self) -> AgentStatus:
        self._status.last_heartbeat = datetime.now()
        return replace(
            self._status, performance_metrics=replace(self._status.performance_metrics)
        )

    def rollback_for(self, task: Task) -> list[str]:
        """Rollback instructions for a task type, empty when none apply."""
        return list(self.rollback_map.get(task.type, []))

    async def _run_with_retry(self, handler: Any, task: Task) -> Any:
        policy = self.config.retry_policy
        attempt = 0
        while True:
            try:
                return await handler(task)
            except DomainFailure:
                raise
            except Exception as e:
                if attempt >= policy.max_retries:
                    raise
                attempt += 1
                logger.info(
                    f"{self.config.name} retrying {task.id} "
                    f"({attempt}/{policy.max_retries}) after error: {e}"
                )
                await asyncio.sleep(policy.backoff_seconds)

    def _record(self, seconds: float, success: bool) -> None:
        metrics = self._status.performance_metrics
        if success:
            metrics.tasks_completed += 1
        else:
            metrics.tasks_failed += 1
        finished = metrics.tasks_completed + metrics.tasks_failed
        self._total_seconds += seconds
        metrics.average_task_seconds = self._total_seconds / finished
        metrics.error_rate = metrics.tasks_failed / finished
        self._status.is_healthy = metrics.error_rate < 0.5


class AgentRegistry:
    """Fixed lookup table from domain name to execution agent."""

    def __init__(self, agents: Mapping[str, ExecutionAgent]) -> None:
        self._agents = dict(agents)

    def get(self, domain_name: str) -> ExecutionAgent:
        """Return the agent bound to a domain.

        Raises:
            AgentNotFoundError: If no agent is registered for the domain
        """
        try:
            return self._agents[domain_name]
        except KeyError:
            raise AgentNotFoundError(
                f"No agent available for domain: {domain_name}"
            ) from None

    def items(self) -> list[tuple[str, ExecutionAgent]]:
        return list(self._agents.items())

    def __contains__(self, domain_name: object) -> bool:
        return domain_name in self._agents

    def __iter__(self) -> Iterator[str]:
        return iter(self._agents)

    def __len__(self) -> int:
        return len(self._agents)
