"""Task graph construction.

Builds Phase/Domain/Task objects from a plain mapping or a YAML file, and
validates identifiers before anything runs. Construction is pure: the same
definition always produces the same plan.
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from phase_orchestrator.errors import PlanDefinitionError
from phase_orchestrator.models import Domain, Phase, Task


def build_plan(definition: Mapping[str, Any]) -> list[Phase]:
    """Build phases from a plan definition.

    Expected layout:

        phases:
          - name, description, prerequisites, deliverables,
            acceptance_criteria
            domains:
              - name, description, dependencies, priority
                tasks:
                  - id, type, description, priority, dependencies,
                    estimated_hours, metadata

    Args:
        definition: Parsed plan definition

    Returns:
        Validated list of phases in declaration order

    Raises:
        PlanDefinitionError: If required keys are missing or ids collide
    """
    phases_data = definition.get("phases")
    if not isinstance(phases_data, list):
        raise PlanDefinitionError("Plan definition must contain a 'phases' list")

    phases = [_build_phase(data) for data in phases_data]
    validate_plan(phases)
    return phases


def load_plan(path: str | Path) -> list[Phase]:
    """Load and build a plan from a YAML file."""
    path = Path(path)
    with open(path) as f:
        definition = yaml.safe_load(f)
    if not isinstance(definition, Mapping):
        raise PlanDefinitionError(f"Plan file {path} does not contain a mapping")
    return build_plan(definition)


def validate_plan(phases: list[Phase]) -> None:
    """Check identifiers and phase prerequisites.

    Raises:
        PlanDefinitionError: On duplicate phase, domain or task ids, or a
            phase prerequisite that does not name an earlier phase
    """
    seen_phases: set[str] = set()
    seen_domains: set[str] = set()
    seen_tasks: set[str] = set()

    for phase in phases:
        if phase.name in seen_phases:
            raise PlanDefinitionError(f"Duplicate phase name: {phase.name}")
        for prerequisite in phase.prerequisites:
            if prerequisite not in seen_phases:
                raise PlanDefinitionError(
                    f"Phase {phase.name} requires {prerequisite}, "
                    "which is not an earlier phase"
                )
        seen_phases.add(phase.name)

        for domain in phase.domains:
            if domain.name in seen_domains:
                raise PlanDefinitionError(f"Duplicate domain name: {domain.name}")
            seen_domains.add(domain.name)

            for task in domain.tasks:
                if task.id in seen_tasks:
                    raise PlanDefinitionError(f"Duplicate task id: {task.id}")
                seen_tasks.add(task.id)


def _require(data: Mapping[str, Any], key: str, kind: str) -> Any:
    if key not in data:
        raise PlanDefinitionError(f"{kind} definition is missing '{key}': {dict(data)}")
    return data[key]


def _build_phase(data: Mapping[str, Any]) -> Phase:
    return Phase(
        name=_require(data, "name", "Phase"),
        description=data.get("description", ""),
        domains=[_build_domain(d) for d in data.get("domains", [])],
        prerequisites=list(data.get("prerequisites", [])),
        deliverables=list(data.get("deliverables", [])),
        acceptance_criteria=list(data.get("acceptance_criteria", [])),
    )


def _build_domain(data: Mapping[str, Any]) -> Domain:
    return Domain(
        name=_require(data, "name", "Domain"),
        description=data.get("description", ""),
        tasks=[_build_task(t) for t in data.get("tasks", [])],
        dependencies=list(data.get("dependencies", [])),
        priority=int(data.get("priority", 1)),
    )


def _build_task(data: Mapping[str, Any]) -> Task:
    priority = data.get("priority", "medium")
    if priority not in ("high", "medium", "low"):
        raise PlanDefinitionError(f"Task {data.get('id')} has invalid priority: {priority}")
    return Task(
        id=str(_require(data, "id", "Task")),
        type=_require(data, "type", "Task"),
        description=_require(data, "description", "Task"),
        priority=priority,
        dependencies=[str(dep) for dep in data.get("dependencies", [])],
        metadata=dict(data.get("metadata", {})),
        estimated_hours=data.get("estimated_hours"),
    )


# Reference plan: Supabase-backed GPT to n8n workflow backend
BACKEND_MVP_PLAN: dict[str, Any] = {
    "phases": [
        {
            "name": "Foundation Setup",
            "description": "Core infrastructure and database foundation",
            "prerequisites": [],
            "deliverables": ["Database schema", "Auth system", "RLS policies"],
            "acceptance_criteria": [
                "Users can sign up with email/password",
                "Users can sign in and maintain sessions",
                "Database enforces proper user isolation",
            ],
            "domains": [
                {
                    "name": "Database Architecture",
                    "description": "Supabase schema, RLS policies, and migrations",
                    "dependencies": [],
                    "priority": 1,
                    "tasks": [
                        {
                            "id": "db-001",
                            "type": "database-design",
                            "priority": "high",
                            "description": "Design database schema for users, projects, workflows, executions",
                            "estimated_hours": 4,
                        },
                        {
                            "id": "db-002",
                            "type": "database-migration",
                            "priority": "high",
                            "description": "Create and execute database migration scripts",
                            "dependencies": ["db-001"],
                            "estimated_hours": 2,
                        },
                        {
                            "id": "db-003",
                            "type": "database-policies",
                            "priority": "high",
                            "description": "Implement Row Level Security policies for user data isolation",
                            "dependencies": ["db-002"],
                            "estimated_hours": 3,
                        },
                    ],
                },
                {
                    "name": "Authentication System",
                    "description": "Email/password authentication",
                    "dependencies": ["Database Architecture"],
                    "priority": 1,
                    "tasks": [
                        {
                            "id": "auth-001",
                            "type": "auth-setup",
                            "priority": "high",
                            "description": "Configure email/password authentication",
                            "dependencies": ["db-001"],
                            "estimated_hours": 3,
                        },
                        {
                            "id": "auth-002",
                            "type": "auth-integration",
                            "priority": "high",
                            "description": "Integrate authentication with backend API endpoints",
                            "dependencies": ["auth-001"],
                            "estimated_hours": 4,
                        },
                    ],
                },
            ],
        },
        {
            "name": "Core Backend Services",
            "description": "API endpoints and business logic",
            "prerequisites": ["Foundation Setup"],
            "deliverables": ["REST API", "GPT integration", "Workflow processing"],
            "acceptance_criteria": [
                "Users can create and manage projects",
                "Natural language prompts are processed into workflow specs",
                "All API endpoints return proper responses and errors",
            ],
            "domains": [
                {
                    "name": "API Development",
                    "description": "REST endpoints for projects, workflows, and telemetry",
                    "dependencies": ["Database Architecture", "Authentication System"],
                    "priority": 2,
                    "tasks": [
                        {
                            "id": "api-001",
                            "type": "api-design",
                            "priority": "high",
                            "description": "Design REST API endpoints for projects, workflows, and telemetry",
                            "dependencies": ["db-003", "auth-002"],
                            "estimated_hours": 6,
                        },
                        {
                            "id": "api-002",
                            "type": "api-implementation",
                            "priority": "high",
                            "description": "Implement API endpoints as edge functions",
                            "dependencies": ["api-001"],
                            "estimated_hours": 12,
                        },
                    ],
                },
                {
                    "name": "AI Processing",
                    "description": "GPT-based natural language to workflow spec processing",
                    "dependencies": ["API Development"],
                    "priority": 2,
                    "tasks": [
                        {
                            "id": "ai-001",
                            "type": "ai-integration",
                            "priority": "high",
                            "description": "Integrate GPT for natural language workflow processing",
                            "dependencies": ["api-002"],
                            "estimated_hours": 8,
                        },
                        {
                            "id": "ai-002",
                            "type": "ai-workflow-generation",
                            "priority": "high",
                            "description": "Implement prompt-to-workflow-spec conversion logic",
                            "dependencies": ["ai-001"],
                            "estimated_hours": 10,
                        },
                    ],
                },
            ],
        },
        {
            "name": "n8n Integration",
            "description": "Workflow generation and deployment",
            "prerequisites": ["Core Backend Services"],
            "deliverables": ["n8n MCP integration", "Workflow deployment", "Status tracking"],
            "acceptance_criteria": [
                "Workflow specs are converted to valid n8n JSON",
                "Workflows are successfully deployed to n8n instance",
                "Deployment status is tracked and reported",
            ],
            "domains": [
                {
                    "name": "n8n Workflows",
                    "description": "MCP integration, JSON generation, and deployment",
                    "dependencies": ["AI Processing"],
                    "priority": 3,
                    "tasks": [
                        {
                            "id": "n8n-001",
                            "type": "n8n-mcp-setup",
                            "priority": "high",
                            "description": "Set up n8n MCP server for workflow validation",
                            "dependencies": ["ai-002"],
                            "estimated_hours": 6,
                        },
                        {
                            "id": "n8n-002",
                            "type": "n8n-deployment",
                            "priority": "high",
                            "description": "Implement workflow deployment to n8n via REST API",
                            "dependencies": ["n8n-001"],
                            "estimated_hours": 8,
                        },
                    ],
                },
            ],
        },
        {
            "name": "Quality Assurance",
            "description": "Testing and DevOps setup",
            "prerequisites": ["n8n Integration"],
            "deliverables": ["Test suite", "CI/CD pipeline", "Monitoring"],
            "acceptance_criteria": [
                "All acceptance criteria pass automated tests",
                "Deployment pipeline is functional",
                "Basic monitoring and error tracking is in place",
            ],
            "domains": [
                {
                    "name": "Testing",
                    "description": "End-to-end testing and quality validation",
                    "dependencies": ["n8n Workflows"],
                    "priority": 4,
                    "tasks": [
                        {
                            "id": "test-001",
                            "type": "unit-tests",
                            "priority": "medium",
                            "description": "Create unit tests for all API endpoints and business logic",
                            "dependencies": ["n8n-002"],
                            "estimated_hours": 16,
                        },
                        {
                            "id": "test-002",
                            "type": "e2e-tests",
                            "priority": "medium",
                            "description": "Create end-to-end tests for complete user workflows",
                            "dependencies": ["test-001"],
                            "estimated_hours": 12,
                        },
                    ],
                },
                {
                    "name": "DevOps",
                    "description": "Deployment pipeline and monitoring",
                    "dependencies": ["Testing"],
                    "priority": 4,
                    "tasks": [
                        {
                            "id": "devops-001",
                            "type": "ci-cd-setup",
                            "priority": "medium",
                            "description": "Set up CI/CD pipeline for automated testing and deployment",
                            "dependencies": ["test-002"],
                            "estimated_hours": 8,
                        },
                        {
                            "id": "devops-002",
                            "type": "monitoring-setup",
                            "priority": "low",
                            "description": "Set up basic monitoring and error tracking",
                            "dependencies": ["devops-001"],
                            "estimated_hours": 6,
                        },
                    ],
                },
            ],
        },
    ]
}


def backend_mvp_plan() -> list[Phase]:
    """Build a fresh copy of the reference backend plan."""
    return build_plan(BACKEND_MVP_PLAN)
