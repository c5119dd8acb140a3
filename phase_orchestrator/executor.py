"""Task executor for a single domain.

Runs a domain's tasks through its registered agent and reports every
outcome to the StateTracker. Task failures are recorded and execution
continues with the next task; a domain failure stops the domain and
blocks whatever has not started yet.
"""

import asyncio
import logging
import time

from opentelemetry import trace

from phase_orchestrator import telemetry
from phase_orchestrator.agents import AgentRegistry, ExecutionAgent
from phase_orchestrator.errors import DomainFailure
from phase_orchestrator.models import Domain, DomainStatus, RollbackEntry, Task
from phase_orchestrator.scheduler import level_tasks
from phase_orchestrator.state import StateTracker

logger = logging.getLogger(__name__)


class TaskExecutor:
    """Executes domains on behalf of their agents.

    Sequential by default. Agents declaring can_execute_parallel get their
    tasks leveled by intra-domain dependencies, and each level fans out to
    at most max_concurrent_tasks workers.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        tracker: StateTracker,
        tracer: trace.Tracer | None = None,
        known_task_ids: set[str] | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            registry: Agents keyed by domain name
            tracker: Owner of the shared orchestration state
            tracer: OpenTelemetry tracer (uses global tracer if None)
            known_task_ids: Task ids already in the plan; follow-on tasks
                reusing one of them are rejected
        """
        self.registry = registry
        self.tracker = tracker
        self.tracer = tracer or trace.get_tracer("phase_orchestrator")
        self.known_task_ids = known_task_ids if known_task_ids is not None else set()

    async def execute_domain(self, domain: Domain) -> DomainStatus:
        """Run every task of a domain and derive its final status.

        Never raises for agent or task problems; they end up as risks,
        task statuses and a blocked domain.

        Returns:
            Final domain status ("completed" or "blocked")
        """
        with self.tracer.start_as_current_span("orchestrator.domain") as span:
            span.set_attribute("domain.name", domain.name)
            span.set_attribute("domain.tasks", len(domain.tasks))
            logger.info(f"Processing domain: {domain.name}")
            domain.status = "in-progress"

            try:
                agent = self.registry.get(domain.name)
                ready = await agent.validate_prerequisites()
                if not ready:
                    await self.block_domain(
                        domain, f"Domain {domain.name} blocked: prerequisites not met"
                    )
                else:
                    if agent.config.capabilities.can_execute_parallel:
                        await self._run_parallel(domain, agent)
                    else:
                        await self._run_sequential(domain, agent)
                    domain.status = domain.derive_status()
            except Exception as e:
                logger.error(f"Domain failed: {domain.name}: {e}")
                await self._fail_domain(domain, str(e))

            span.set_attribute("domain.status", domain.status)
            telemetry.record_domain(domain.status)
            if domain.status == "completed":
                logger.info(f"Domain completed: {domain.name}")
            return domain.status

    async def block_domain(self, domain: Domain, reason: str) -> None:
        """Block a domain without running it.

        Every task that has not started moves to the blocked set.
        """
        logger.warning(reason)
        domain.status = "blocked"
        pending = [task for task in domain.tasks if task.status == "pending"]
        await self.tracker.tasks_blocked(pending, risk=reason)
        for task in pending:
            telemetry.record_task("blocked", domain.name)

    async def _fail_domain(self, domain: Domain, reason: str) -> None:
        await self.block_domain(domain, f"Domain {domain.name} failed: {reason}")

    async def _run_sequential(self, domain: Domain, agent: ExecutionAgent) -> None:
        # Index loop so follow-on tasks appended during the run are picked up
        index = 0
        while index < len(domain.tasks):
            task = domain.tasks[index]
            index += 1
            await self._execute_task(domain, task, agent)

    async def _run_parallel(self, domain: Domain, agent: ExecutionAgent) -> None:
        semaphore = asyncio.Semaphore(max(1, agent.config.max_concurrent_tasks))
        halted = asyncio.Event()

        async def worker(task: Task) -> None:
            async with semaphore:
                if halted.is_set():
                    return
                try:
                    await self._execute_task(domain, task, agent)
                except DomainFailure:
                    halted.set()
                    raise

        start = 0
        while start < len(domain.tasks):
            batch = domain.tasks[start:]
            start = len(domain.tasks)
            for level in level_tasks(batch):
                outcomes = await asyncio.gather(
                    *(worker(task) for task in level), return_exceptions=True
                )
                for outcome in outcomes:
                    if isinstance(outcome, BaseException):
                        raise outcome

    async def _execute_task(self, domain: Domain, task: Task, agent: ExecutionAgent) -> None:
        """Run one task and record its outcome.

        Raises:
            DomainFailure: Propagated from the agent after the task is
                recorded as failed
        """
        with self.tracer.start_as_current_span("orchestrator.task") as span:
            span.set_attribute("task.id", task.id)
            span.set_attribute("task.type", task.type)
            logger.info(f"Executing task: {task.description}")

            await self.tracker.task_started(task)
            started = time.monotonic()

            try:
                result = await agent.execute_task(task)
            except DomainFailure as e:
                await self._fail_task(
                    domain, task, f"Task error: {task.description} - {e}", [], started
                )
                span.set_attribute("task.status", task.status)
                raise
            except Exception as e:
                logger.exception(f"Task error: {task.description}")
                await self._fail_task(
                    domain, task, f"Task error: {task.description} - {e}", [], started
                )
                span.set_attribute("task.status", task.status)
                return

            if result.status == "success":
                if result.next_tasks:
                    await self._splice(domain, result.next_tasks)
                elapsed = time.monotonic() - started
                task.actual_hours = elapsed / 3600
                await self.tracker.task_completed(task)
                telemetry.record_task("completed", domain.name, elapsed)
                logger.info(f"Task completed: {task.description}")
            else:
                errors = ", ".join(result.errors or [])
                await self._fail_task(
                    domain,
                    task,
                    f"Task failed: {task.description} - {errors}",
                    result.rollback_instructions or [],
                    started,
                )

            span.set_attribute("task.status", task.status)

    async def _fail_task(
        self,
        domain: Domain,
        task: Task,
        risk: str,
        rollback_instructions: list[str],
        started: float,
    ) -> None:
        elapsed = time.monotonic() - started
        task.actual_hours = elapsed / 3600
        logger.warning(risk)
        await self.tracker.task_failed(
            task,
            risk,
            RollbackEntry(
                task_id=task.id,
                domain=domain.name,
                instructions=list(rollback_instructions),
            ),
        )
        telemetry.record_task("failed", domain.name, elapsed)

    async def _splice(self, domain: Domain, next_tasks: list[Task]) -> None:
        for new_task in next_tasks:
            if new_task.id in self.known_task_ids:
                await self.tracker.add_risk(
                    f"Follow-on task {new_task.id} ignored: duplicate task id"
                )
                continue
            self.known_task_ids.add(new_task.id)
            domain.tasks.append(new_task)
            logger.info(f"Added follow-on task {new_task.id} to {domain.name}")
