"""State management for a single orchestration run.

Provides the OrchestrationState record and the StateTracker that owns it.
Domains running concurrently report through the tracker, which serialises
every write behind one asyncio.Lock. Nothing is persisted; the state lives
for one run of one process.
"""

import asyncio
import copy
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from phase_orchestrator.models import Phase, RollbackEntry, Task


@dataclass
class OrchestrationState:
    """Process-wide record of one orchestration run.

    Attributes:
        current_phase: Name of the phase being executed
        active_tasks: Tasks currently running
        completed_tasks: Tasks that finished successfully
        blocked_tasks: Tasks never executed because their domain was blocked
        overall_progress: Completed tasks as a percentage of all tasks
        estimated_completion: Estimated completion time of the whole plan
        risks_and_blockers: Free-text risks recorded during the run
        rollback_log: Rollback instructions collected from failed tasks
        started_at: When the run started
        finished_at: When the run ended, None while running
    """

    current_phase: str
    estimated_completion: datetime
    active_tasks: list[Task] = field(default_factory=list)
    completed_tasks: list[Task] = field(default_factory=list)
    blocked_tasks: list[Task] = field(default_factory=list)
    overall_progress: int = 0
    risks_and_blockers: list[str] = field(default_factory=list)
    rollback_log: list[RollbackEntry] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def completed_task_ids(self) -> list[str]:
        return [task.id for task in self.completed_tasks]

    @property
    def blocked_task_ids(self) -> list[str]:
        return [task.id for task in self.blocked_tasks]


class StateTracker:
    """Single owner of the OrchestrationState for a run.

    All mutations go through the async methods below and hold the lock for
    the duration of a short, non-awaiting critical section. Readers use
    snapshot(), which returns an independent copy.
    """

    def __init__(self, phases: list[Phase], completion_window_days: int = 30) -> None:
        """Initialize tracker for a plan.

        Args:
            phases: Full plan; task totals are counted from it on every
                progress update so spliced follow-on tasks are included
            completion_window_days: Offset for the initial completion estimate
        """
        self._phases = phases
        self._lock = asyncio.Lock()
        now = datetime.now()
        self._state = OrchestrationState(
            current_phase=phases[0].name if phases else "",
            estimated_completion=now + timedelta(days=completion_window_days),
            started_at=now,
        )

    def snapshot(self) -> OrchestrationState:
        return copy.deepcopy(self._state)

    @property
    def total_tasks(self) -> int:
        return sum(len(phase.tasks) for phase in self._phases)

    @property
    def active_tasks(self) -> list[Task]:
        return list(self._state.active_tasks)

    async def set_current_phase(self, name: str) -> None:
        async with self._lock:
            self._state.current_phase = name

    async def task_started(self, task: Task) -> None:
        async with self._lock:
            task.transition("in-progress")
            self._state.active_tasks.append(task)

    async def task_completed(self, task: Task) -> None:
        async with self._lock:
            task.transition("completed")
            self._state.completed_tasks.append(task)
            self._release(task)

    async def task_failed(self, task: Task, risk: str, rollback: RollbackEntry) -> None:
        async with self._lock:
            task.transition("failed")
            self._state.risks_and_blockers.append(risk)
            self._state.rollback_log.append(rollback)
            self._release(task)

    async def tasks_blocked(self, tasks: list[Task], risk: str | None = None) -> None:
        """Block tasks that were never started and record an optional risk."""
        async with self._lock:
            for task in tasks:
                task.transition("blocked")
                self._state.blocked_tasks.append(task)
            if risk:
                self._state.risks_and_blockers.append(risk)

    async def add_risk(self, risk: str) -> None:
        async with self._lock:
            self._state.risks_and_blockers.append(risk)

    async def add_rollback(self, entry: RollbackEntry) -> None:
        async with self._lock:
            self._state.rollback_log.append(entry)

    async def apply_failure_penalty(self, points: int) -> None:
        """Degrade progress after an aborted run, floored at zero."""
        async with self._lock:
            self._state.overall_progress = max(0, self._state.overall_progress - points)

    async def finish(self, recompute: bool = True) -> None:
        async with self._lock:
            if recompute:
                self._update_progress()
            self._state.finished_at = datetime.now()

    def _release(self, task: Task) -> None:
        # Caller holds the lock
        self._state.active_tasks = [t for t in self._state.active_tasks if t.id != task.id]
        self._update_progress()

    def _update_progress(self) -> None:
        total = self.total_tasks
        if total == 0:
            progress = 100
        else:
            # Halves round up
            progress = math.floor(len(self._state.completed_tasks) * 100 / total + 0.5)
        # Spliced follow-on tasks grow the total; never report going backwards
        self._state.overall_progress = max(self._state.overall_progress, progress)
