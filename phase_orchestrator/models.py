"""Data models for the Phase Orchestrator.

Defines dataclasses for tasks, domains, phases, agent configuration and
task results. The orchestrator treats result payloads as opaque.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from phase_orchestrator.errors import InvalidTransitionError

TaskStatus = Literal["pending", "in-progress", "completed", "failed", "blocked"]
TaskPriority = Literal["high", "medium", "low"]
DomainStatus = Literal["not-started", "in-progress", "completed", "blocked"]
ResultStatus = Literal["success", "failure", "partial"]
RiskLevel = Literal["low", "medium", "high"]

TERMINAL_TASK_STATUSES: frozenset[str] = frozenset({"completed", "failed", "blocked"})

# pending may jump straight to blocked when its domain never starts it
_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"in-progress", "blocked"}),
    "in-progress": TERMINAL_TASK_STATUSES,
    "completed": frozenset(),
    "failed": frozenset(),
    "blocked": frozenset(),
}


@dataclass
class Task:
    """A single unit of work owned by a domain.

    Status only moves forward: pending -> in-progress -> terminal.
    Use transition() rather than assigning status directly.
    """

    id: str
    type: str
    description: str
    priority: TaskPriority = "medium"
    dependencies: list[str] = field(default_factory=list)
    status: TaskStatus = "pending"
    metadata: dict[str, Any] = field(default_factory=dict)
    estimated_hours: float | None = None
    actual_hours: float | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES

    def transition(self, status: TaskStatus) -> None:
        """Move the task to a new lifecycle status.

        Args:
            status: Target status

        Raises:
            InvalidTransitionError: If the lifecycle does not allow the move
        """
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Task {self.id} cannot move from {self.status} to {status}"
            )
        self.status = status
        self.updated_at = datetime.now()


@dataclass
class Domain:
    """A named unit of work with an ordered task list.

    Dependencies name other domains, not tasks.
    """

    name: str
    description: str
    tasks: list[Task] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    status: DomainStatus = "not-started"
    priority: int = 1

    def derive_status(self) -> DomainStatus:
        """Completed iff every task completed, otherwise blocked."""
        if all(task.status == "completed" for task in self.tasks):
            return "completed"
        return "blocked"


@dataclass
class Phase:
    """An ordered development phase.

    Deliverables and acceptance criteria are descriptive only.
    """

    name: str
    description: str
    domains: list[Domain] = field(default_factory=list)
    prerequisites: list[str] = field(default_factory=list)
    deliverables: list[str] = field(default_factory=list)
    acceptance_criteria: list[str] = field(default_factory=list)

    @property
    def tasks(self) -> list[Task]:
        return [task for domain in self.domains for task in domain.tasks]


@dataclass
class AgentCapabilities:
    """Static capability flags declared by an execution agent."""

    can_execute_parallel: bool = False
    requires_external_apis: list[str] = field(default_factory=list)
    estimated_complexity: Literal["low", "medium", "high"] = "medium"
    mvp_critical: bool = False


@dataclass
class RetryPolicy:
    """Retry settings consumed by the agent itself, never by the core."""

    max_retries: int = 0
    backoff_seconds: float = 0.0


@dataclass
class AgentConfig:
    """Per-domain agent descriptor. Configuration, not mutable state."""

    name: str
    domain: str
    capabilities: AgentCapabilities = field(default_factory=AgentCapabilities)
    max_concurrent_tasks: int = 1
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass
class PerformanceMetrics:
    tasks_completed: int = 0
    tasks_failed: int = 0
    average_task_seconds: float = 0.0
    error_rate: float = 0.0


@dataclass
class AgentStatus:
    """Health record polled from an agent on demand."""

    agent_id: str
    queue_length: int = 0
    is_healthy: bool = True
    current_task: str | None = None
    last_heartbeat: datetime = field(default_factory=datetime.now)
    performance_metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)


@dataclass
class TaskResult:
    """Result returned by an agent for one task.

    Status values:
        success: Task finished
        failure: Task did not finish
        partial: Task finished part of its work; treated as a failure
    """

    task_id: str
    status: ResultStatus
    output: Any = None
    errors: list[str] | None = None
    # Follow-on tasks to splice into the owning domain
    next_tasks: list[Task] | None = None
    rollback_instructions: list[str] | None = None


@dataclass
class RollbackEntry:
    """Rollback instructions collected for a failed task."""

    task_id: str
    domain: str
    instructions: list[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    """Outcome of a validation gate."""

    is_compliant: bool
    violations: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    risk_level: RiskLevel = "low"

    @classmethod
    def from_violations(
        cls, violations: list[str], recommendations: list[str] | None = None
    ) -> "ValidationResult":
        return cls(
            is_compliant=not violations,
            violations=violations,
            recommendations=recommendations or [],
            risk_level="high" if violations else "low",
        )
