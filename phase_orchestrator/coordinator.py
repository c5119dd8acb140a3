"""Orchestration coordinator.

Drives phases in declaration order. Within a phase, dependency levels run
one after another; within a level every domain runs concurrently and the
coordinator waits for all of them before moving on. Validation gates run
before the first phase and after each phase.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from opentelemetry import trace

from phase_orchestrator import telemetry
from phase_orchestrator.agents import AgentRegistry
from phase_orchestrator.config import OrchestratorConfig
from phase_orchestrator.errors import OrchestrationFailure, OrchestratorError
from phase_orchestrator.executor import TaskExecutor
from phase_orchestrator.gates import (
    check_compliance,
    check_final_acceptance,
    check_phase_completion,
)
from phase_orchestrator.graph import validate_plan
from phase_orchestrator.models import AgentStatus, Domain, Phase, RollbackEntry
from phase_orchestrator.scheduler import level_domains, level_tasks
from phase_orchestrator.state import OrchestrationState, StateTracker

logger = logging.getLogger(__name__)


@dataclass
class PrerequisiteReport:
    """Result of probing every agent's prerequisites.

    Attributes:
        all_valid: True if every probe passed
        results: Map of domain name to probe outcome
    """

    all_valid: bool
    results: dict[str, bool] = field(default_factory=dict)


class Orchestrator:
    """Coordinates domain agents through the phases of a plan.

    Designed for a single run() per instance. The plan and its dependency
    levels are validated at construction, so configuration errors surface
    before any agent is called.

    Usage:
        orchestrator = Orchestrator(phases, AgentRegistry(agents))
        state = await orchestrator.run()
        if state.risks_and_blockers:
            ...
    """

    def __init__(
        self,
        phases: list[Phase],
        registry: AgentRegistry,
        config: OrchestratorConfig | None = None,
        tracer: trace.Tracer | None = None,
    ) -> None:
        """Initialize orchestrator and resolve the dependency levels.

        Args:
            phases: Plan to execute, in order
            registry: Agents keyed by domain name
            config: Orchestrator configuration (from environment if None)
            tracer: OpenTelemetry tracer (uses global tracer if None)

        Raises:
            PlanDefinitionError: On duplicate identifiers or bad phase
                prerequisites
            DependencyResolutionError: On cyclic or unsatisfiable
                dependencies between domains or between tasks of a domain
        """
        self.config = config or OrchestratorConfig.from_env()
        self.tracer = tracer or trace.get_tracer("phase_orchestrator")
        self.phases = phases
        self.registry = registry

        validate_plan(phases)
        self._levels = self._resolve_levels()
        self._domains: dict[str, Domain] = {
            domain.name: domain for phase in phases for domain in phase.domains
        }

        self._tracker = StateTracker(phases, self.config.completion_window_days)
        self._executor = TaskExecutor(
            registry,
            self._tracker,
            self.tracer,
            known_task_ids={task.id for phase in phases for task in phase.tasks},
        )
        self._started = False

    async def run(self) -> OrchestrationState:
        """Execute the whole plan.

        Returns:
            Final orchestration state. Inspect risks_and_blockers and domain
            statuses for partial failures; most failures are absorbed.

        Raises:
            OrchestrationFailure: If the compliance gate fails or an
                unexpected error escapes the coordinator
            OrchestratorError: If run() was already called
        """
        if self._started:
            raise OrchestratorError("Orchestrator.run() can only be called once")
        self._started = True

        logger.info(f"Starting orchestration: {len(self.phases)} phases")

        with self.tracer.start_as_current_span("orchestrator.run") as run_span:
            run_span.set_attribute("run.phases", len(self.phases))
            run_span.set_attribute("run.policy", self.config.blocked_dependency_policy)

            try:
                compliance = check_compliance(self.phases, self.config.forbidden_features)
                if not compliance.is_compliant:
                    raise OrchestrationFailure(
                        "Compliance validation failed: "
                        + ", ".join(compliance.violations),
                        violations=compliance.violations,
                    )

                for phase in self.phases:
                    await self._execute_phase(phase)

                await self._final_validation()

            except OrchestrationFailure as e:
                await self._handle_failure(e)
                e.state = self.get_status()
                run_span.set_attribute("run.status", "failed")
                raise
            except Exception as e:
                await self._handle_failure(e)
                run_span.set_attribute("run.status", "failed")
                raise OrchestrationFailure(
                    f"Orchestration failed: {e}", state=self.get_status()
                ) from e

            state = self.get_status()
            run_span.set_attribute("run.status", "completed")
            run_span.set_attribute("run.progress", state.overall_progress)
            run_span.set_attribute("run.risks", len(state.risks_and_blockers))

        logger.info(f"Orchestration finished: {state.overall_progress}% complete")
        return state

    def get_status(self) -> OrchestrationState:
        """Snapshot of the current orchestration state."""
        return self._tracker.snapshot()

    async def validate_all_prerequisites(self) -> PrerequisiteReport:
        """Probe every registered agent, plus plan domains lacking one.

        A probe that raises counts as not ready.
        """
        results: dict[str, bool] = {}

        for name, agent in self.registry.items():
            try:
                results[name] = bool(await agent.validate_prerequisites())
            except Exception as e:
                logger.warning(f"Prerequisite check for {name} raised: {e}")
                results[name] = False

        for name in self._domains:
            if name not in self.registry:
                results[name] = False

        return PrerequisiteReport(all_valid=all(results.values()), results=results)

    def levels(self, phase_name: str) -> list[list[str]]:
        """Resolved dependency levels of a phase, as domain names."""
        if phase_name not in self._levels:
            raise OrchestratorError(f"Unknown phase: {phase_name}")
        return [[domain.name for domain in level] for level in self._levels[phase_name]]

    async def estimate_remaining_hours(self) -> float:
        """Sum agent estimates for every task not yet finished.

        Tasks of domains without an agent fall back to their declared
        estimate. Reporting only; never used for scheduling.
        """
        total = 0.0
        for domain in self._domains.values():
            agent = self.registry.get(domain.name) if domain.name in self.registry else None
            for task in domain.tasks:
                if task.is_terminal:
                    continue
                if agent is not None:
                    total += await agent.estimate_task(task)
                else:
                    total += task.estimated_hours or 0.0
        return total

    def agent_statuses(self) -> dict[str, AgentStatus]:
        """Poll the health record of every registered agent."""
        return {name: agent.get_status() for name, agent in self.registry.items()}

    def _resolve_levels(self) -> dict[str, list[list[Domain]]]:
        levels: dict[str, list[list[Domain]]] = {}
        earlier: set[str] = set()

        for phase in self.phases:
            levels[phase.name] = level_domains(phase.domains, satisfied=earlier)
            for domain in phase.domains:
                # Rejects cycles between tasks of one domain
                level_tasks(domain.tasks)
            earlier.update(domain.name for domain in phase.domains)

        return levels

    async def _execute_phase(self, phase: Phase) -> None:
        logger.info(f"Starting phase: {phase.name}")
        await self._tracker.set_current_phase(phase.name)

        with self.tracer.start_as_current_span("orchestrator.phase") as phase_span:
            phase_span.set_attribute("phase.name", phase.name)
            phase_span.set_attribute("phase.levels", len(self._levels[phase.name]))

            for index, level in enumerate(self._levels[phase.name]):
                with self.tracer.start_as_current_span("orchestrator.level") as level_span:
                    level_span.set_attribute("level.index", index)
                    level_span.set_attribute(
                        "level.domains", [domain.name for domain in level]
                    )
                    await self._execute_level(level)

            validation = check_phase_completion(phase)
            phase_span.set_attribute("phase.compliant", validation.is_compliant)

        if not validation.is_compliant:
            logger.error(f"Phase {phase.name} validation failed")
            telemetry.record_phase_violations(phase.name, len(validation.violations))
            await self._tracker.add_risk(
                f"Phase {phase.name} incomplete: {', '.join(validation.violations)}"
            )

    async def _execute_level(self, level: list[Domain]) -> None:
        runnable: list[Domain] = []

        for domain in level:
            blocked = self._blocked_dependency(domain)
            if blocked is not None and self.config.blocked_dependency_policy == "cascade":
                await self._executor.block_domain(
                    domain, f"Domain {domain.name} blocked: dependency {blocked} blocked"
                )
            else:
                if blocked is not None:
                    logger.info(
                        f"Running {domain.name} although dependency {blocked} is blocked"
                    )
                runnable.append(domain)

        # Barrier: every domain reaches a terminal state before the next level
        await asyncio.gather(*(self._executor.execute_domain(d) for d in runnable))

    def _blocked_dependency(self, domain: Domain) -> str | None:
        for name in domain.dependencies:
            dependency = self._domains.get(name)
            if dependency is not None and dependency.status == "blocked":
                return name
        return None

    async def _final_validation(self) -> None:
        await self._tracker.finish()
        result = check_final_acceptance(self.phases, self._tracker.snapshot())
        if result.is_compliant:
            logger.info("Final acceptance validation passed")
        else:
            logger.warning(
                f"Final acceptance validation: {len(result.violations)} criteria unmet"
            )
            for violation in result.violations:
                logger.warning(f"  Unmet: {violation}")

    async def _handle_failure(self, error: Exception) -> None:
        """Degrade the state after an aborted run.

        Records rollback entries for tasks still running, the failure itself
        as a risk, and removes failure_progress_penalty points of progress.
        """
        logger.error(f"Orchestration failure detected, initiating rollback: {error}")

        for task in self._tracker.active_tasks:
            domain = next(
                (
                    d.name
                    for d in self._domains.values()
                    if any(t is task for t in d.tasks)
                ),
                "",
            )
            await self._tracker.add_rollback(
                RollbackEntry(
                    task_id=task.id,
                    domain=domain,
                    instructions=[f"Rollback task: {task.description}"],
                )
            )

        await self._tracker.add_risk(f"Orchestration failed: {error}")
        await self._tracker.apply_failure_penalty(self.config.failure_progress_penalty)
        await self._tracker.finish(recompute=False)

        snapshot = self._tracker.snapshot()
        logger.error(
            f"Active tasks at failure: {[t.description for t in snapshot.active_tasks]}"
        )
        logger.error(f"Risks and blockers: {snapshot.risks_and_blockers}")
