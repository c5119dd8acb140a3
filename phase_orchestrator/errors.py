"""Shared error types for the phase_orchestrator package."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from phase_orchestrator.state import OrchestrationState


class OrchestratorError(Exception):
    """Base exception for orchestrator errors.

    Use this for user-facing errors that should have actionable messages.
    """

    pass


class PlanDefinitionError(OrchestratorError):
    """The phase/domain/task plan is malformed."""

    pass


class DependencyResolutionError(OrchestratorError):
    """Domain dependencies are cyclic or cannot be satisfied.

    Attributes:
        unresolved: Map of unresolved item name to its unmet dependencies
    """

    def __init__(self, unresolved: dict[str, list[str]]) -> None:
        self.unresolved = unresolved
        details = "; ".join(
            f"{name} -> [{', '.join(deps)}]" for name, deps in unresolved.items()
        )
        super().__init__(f"Cyclic or unsatisfiable dependencies: {details}")


class InvalidTransitionError(OrchestratorError):
    """A task was moved to a status its lifecycle does not allow."""

    pass


class AgentNotFoundError(OrchestratorError):
    """No execution agent is registered for a domain."""

    pass


class DomainFailure(OrchestratorError):
    """Raised by an agent to abandon the rest of its domain."""

    pass


class OrchestrationFailure(OrchestratorError):
    """The whole run was aborted.

    Raised when the pre-run compliance gate fails or an unexpected error
    escapes the coordinator.

    Attributes:
        violations: Compliance violations, empty for unexpected errors
        state: Snapshot of the orchestration state after the failure handling
    """

    def __init__(
        self,
        message: str,
        violations: list[str] | None = None,
        state: "OrchestrationState | None" = None,
    ):
        super().__init__(message)
        self.violations = violations or []
        self.state = state
