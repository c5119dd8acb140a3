"""Validation gates evaluated during a run.

The compliance gate runs once before the first phase and can abort the
run. The phase completion gate runs after every phase and only produces
risks. The final acceptance check summarises what is still missing.
"""

from collections.abc import Iterable

from phase_orchestrator.models import Phase, ValidationResult
from phase_orchestrator.state import OrchestrationState

COMPLIANCE_RECOMMENDATIONS = [
    "Keep the pipeline to its core workflow",
    "Remove forbidden features from the plan before running",
    "Defer advanced features to a later plan",
]


def check_compliance(phases: list[Phase], forbidden_features: Iterable[str]) -> ValidationResult:
    """Check the plan for forbidden feature indicators.

    Looks at domain names and descriptions, and at task types,
    descriptions and metadata values. Matching is case-insensitive.

    Args:
        phases: Plan to inspect
        forbidden_features: Indicators that must not appear

    Returns:
        ValidationResult with one violation per match
    """
    indicators = [feature.lower() for feature in forbidden_features if feature]
    violations: list[str] = []

    for phase in phases:
        for domain in phase.domains:
            domain_text = f"{domain.name} {domain.description}".lower()
            for indicator in indicators:
                if indicator in domain_text:
                    violations.append(f"Domain {domain.name} includes '{indicator}'")

            for task in domain.tasks:
                parts = [task.type, task.description]
                parts.extend(str(value) for value in task.metadata.values())
                task_text = " ".join(parts).lower()
                for indicator in indicators:
                    if indicator in task_text:
                        violations.append(
                            f"Task {task.id} in {domain.name} includes '{indicator}'"
                        )

    return ValidationResult.from_violations(
        violations, COMPLIANCE_RECOMMENDATIONS if violations else []
    )


def check_phase_completion(phase: Phase) -> ValidationResult:
    """Check that every domain and task of a phase completed."""
    violations: list[str] = []

    for domain in phase.domains:
        if domain.status != "completed":
            violations.append(f"Domain {domain.name} not completed")

        incomplete = [task for task in domain.tasks if task.status != "completed"]
        if incomplete:
            violations.append(
                f"Domain {domain.name} has {len(incomplete)} incomplete tasks"
            )

    return ValidationResult.from_violations(violations)


def check_final_acceptance(phases: list[Phase], state: OrchestrationState) -> ValidationResult:
    """Summarise acceptance criteria left unmet at the end of a run.

    A phase's criteria count as met only when all of its domains completed.
    Open risks are surfaced as recommendations.
    """
    violations: list[str] = []

    for phase in phases:
        if all(domain.status == "completed" for domain in phase.domains):
            continue
        for criterion in phase.acceptance_criteria:
            violations.append(f"{phase.name}: {criterion}")

    recommendations = [f"Resolve: {risk}" for risk in state.risks_and_blockers]
    return ValidationResult.from_violations(violations, recommendations)
