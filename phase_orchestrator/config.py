"""Configuration for the Phase Orchestrator.

Provides centralized configuration with sensible defaults and environment
variable overrides for run policy, failure handling, and telemetry.
"""

import os
from dataclasses import dataclass, field
from typing import Literal

BlockedDependencyPolicy = Literal["optimistic", "cascade"]
BLOCKED_DEPENDENCY_POLICIES: tuple[str, ...] = ("optimistic", "cascade")

DEFAULT_FORBIDDEN_FEATURES: tuple[str, ...] = (
    "multi-agent orchestration for users",
    "live workflow diagrams",
    "interactive json editing",
    "oauth providers beyond email/password",
    "multi-tenant billing",
    "advanced undo/redo",
    "collaborative editing",
)


@dataclass
class OrchestratorConfig:
    """Configuration for orchestrator execution.

    All settings have sensible defaults but can be overridden via environment
    variables using the from_env() factory method.

    Attributes:
        blocked_dependency_policy: What happens to domains whose dependency
            ended blocked. "optimistic" still runs them, "cascade" blocks
            them without calling their agent.
        failure_progress_penalty: Percentage points removed from progress
            when the run aborts
        completion_window_days: Initial estimated completion offset
        forbidden_features: Indicators rejected by the pre-run compliance gate
    """

    # Run policy
    blocked_dependency_policy: BlockedDependencyPolicy = "optimistic"
    failure_progress_penalty: int = 10
    completion_window_days: int = 30
    forbidden_features: list[str] = field(
        default_factory=lambda: list(DEFAULT_FORBIDDEN_FEATURES)
    )

    # Telemetry settings
    otlp_endpoint: str = field(
        default_factory=lambda: os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
    )
    service_name: str = "phase-orchestrator"

    def __post_init__(self) -> None:
        if self.blocked_dependency_policy not in BLOCKED_DEPENDENCY_POLICIES:
            raise ValueError(
                f"Unknown blocked dependency policy: {self.blocked_dependency_policy!r} "
                f"(expected one of {', '.join(BLOCKED_DEPENDENCY_POLICIES)})"
            )

    @classmethod
    def from_env(cls) -> "OrchestratorConfig":
        """Load config with environment variable overrides.

        Environment variables:
            ORCHESTRATOR_BLOCKED_POLICY: Override blocked_dependency_policy
                (default: optimistic)
            ORCHESTRATOR_FAILURE_PENALTY: Override failure_progress_penalty
                (default: 10)
            ORCHESTRATOR_COMPLETION_DAYS: Override completion_window_days
                (default: 30)
            OTLP_ENDPOINT: Override otlp_endpoint (default: http://localhost:4317)
        """
        return cls(
            blocked_dependency_policy=os.getenv(  # type: ignore[arg-type]
                "ORCHESTRATOR_BLOCKED_POLICY", "optimistic"
            ),
            failure_progress_penalty=int(
                os.getenv("ORCHESTRATOR_FAILURE_PENALTY", "10")
            ),
            completion_window_days=int(os.getenv("ORCHESTRATOR_COMPLETION_DAYS", "30")),
            otlp_endpoint=os.getenv("OTLP_ENDPOINT", "http://localhost:4317"),
        )
