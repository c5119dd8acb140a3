"""Tests for validation gates."""

from datetime import datetime

from phase_orchestrator.gates import (
    check_compliance,
    check_final_acceptance,
    check_phase_completion,
)
from phase_orchestrator.models import Domain, Phase, Task
from phase_orchestrator.state import OrchestrationState


def finish(task: Task, outcome: str = "completed") -> Task:
    task.transition("in-progress")
    task.transition(outcome)
    return task


class TestComplianceGate:
    """Tests for check_compliance()."""

    def test_clean_plan_is_compliant(self, abc_phase) -> None:
        """No indicator matches, no violations."""
        result = check_compliance([abc_phase], ["collaborative editing"])

        assert result.is_compliant
        assert result.violations == []
        assert result.risk_level == "low"

    def test_task_description_match_is_case_insensitive(self, make_domain) -> None:
        """Indicators are matched regardless of case."""
        domain = make_domain("Editor", task_count=1)
        domain.tasks[0].description = "Add Collaborative Editing to the canvas"
        phase = Phase(name="P", description="", domains=[domain])

        result = check_compliance([phase], ["collaborative editing"])

        assert not result.is_compliant
        assert result.violations == [
            "Task editor-1 in Editor includes 'collaborative editing'"
        ]
        assert result.risk_level == "high"
        assert result.recommendations

    def test_domain_and_metadata_are_checked(self, make_domain) -> None:
        """Domain text and task metadata values are inspected too."""
        domain = make_domain("Billing", task_count=1)
        domain.description = "Multi-tenant billing engine"
        domain.tasks[0].metadata = {"feature": "live workflow diagrams"}
        phase = Phase(name="P", description="", domains=[domain])

        result = check_compliance(
            [phase], ["multi-tenant billing", "live workflow diagrams"]
        )

        assert result.violations == [
            "Domain Billing includes 'multi-tenant billing'",
            "Task billing-1 in Billing includes 'live workflow diagrams'",
        ]

    def test_task_type_is_checked(self, make_domain) -> None:
        """Task types can carry an indicator."""
        domain = make_domain("Auth", task_count=1)
        domain.tasks[0].type = "oauth-providers-beyond-email/password"
        phase = Phase(name="P", description="", domains=[domain])

        result = check_compliance([phase], ["oauth-providers"])

        assert not result.is_compliant


class TestPhaseCompletionGate:
    """Tests for check_phase_completion()."""

    def test_completed_phase_passes(self) -> None:
        """All domains and tasks completed."""
        domain = Domain(
            name="D", description="", tasks=[finish(Task(id="t", type="x", description="t"))]
        )
        domain.status = "completed"
        phase = Phase(name="P", description="", domains=[domain])

        assert check_phase_completion(phase).is_compliant

    def test_incomplete_domain_reported(self) -> None:
        """Blocked domains and incomplete tasks are both reported."""
        domain = Domain(
            name="D",
            description="",
            tasks=[
                finish(Task(id="a", type="x", description="a")),
                finish(Task(id="b", type="x", description="b"), "failed"),
                Task(id="c", type="x", description="c"),
            ],
        )
        domain.status = "blocked"
        phase = Phase(name="P", description="", domains=[domain])

        result = check_phase_completion(phase)

        assert not result.is_compliant
        assert result.violations == [
            "Domain D not completed",
            "Domain D has 2 incomplete tasks",
        ]


class TestFinalAcceptance:
    """Tests for check_final_acceptance()."""

    def test_unmet_criteria_listed_for_incomplete_phases(self) -> None:
        """Criteria of phases with unfinished domains are unmet."""
        done = Domain(name="Done", description="", status="completed")
        stuck = Domain(name="Stuck", description="", status="blocked")
        phases = [
            Phase(name="One", description="", domains=[done], acceptance_criteria=["ok"]),
            Phase(
                name="Two",
                description="",
                domains=[stuck],
                acceptance_criteria=["users can sign in"],
            ),
        ]
        state = OrchestrationState(
            current_phase="Two",
            estimated_completion=datetime(2026, 1, 1),
            risks_and_blockers=["Domain Stuck blocked: prerequisites not met"],
        )

        result = check_final_acceptance(phases, state)

        assert result.violations == ["Two: users can sign in"]
        assert result.recommendations == [
            "Resolve: Domain Stuck blocked: prerequisites not met"
        ]
