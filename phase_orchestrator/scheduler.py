"""Dependency-level scheduling.

Partitions domains (or tasks) into ordered levels. Every item in a level
depends only on items in earlier levels, so a level can run concurrently
and levels act as barriers.
"""

from typing import Callable, Iterable, TypeVar

from phase_orchestrator.errors import DependencyResolutionError
from phase_orchestrator.models import Domain, Task

T = TypeVar("T")


def resolve_levels(
    items: list[T],
    *,
    key: Callable[[T], str],
    dependencies: Callable[[T], Iterable[str]],
    satisfied: Iterable[str] = (),
) -> list[list[T]]:
    """Group items into dependency levels.

    Each pass collects every unprocessed item whose dependencies are all
    processed (or listed in satisfied). Items keep declaration order within
    a level, so identical input always yields identical levels.

    Args:
        items: Items to level, in declaration order
        key: Returns the name other items use to depend on an item
        dependencies: Returns the names an item depends on
        satisfied: Names treated as already done (e.g. earlier phases)

    Returns:
        Ordered list of levels

    Raises:
        DependencyResolutionError: If a pass makes no progress, i.e. the
            remaining items are cyclic or depend on unknown names
    """
    done = set(satisfied)
    remaining = list(items)
    levels: list[list[T]] = []

    while remaining:
        # Only names processed in earlier passes count, so items in one
        # level never depend on each other
        level = [item for item in remaining if set(dependencies(item)) <= done]
        if not level:
            raise DependencyResolutionError(
                {
                    key(item): sorted(set(dependencies(item)) - done)
                    for item in remaining
                }
            )
        levels.append(level)
        done.update(key(item) for item in level)
        leveled = {id(item) for item in level}
        remaining = [item for item in remaining if id(item) not in leveled]

    return levels


def level_domains(domains: list[Domain], satisfied: Iterable[str] = ()) -> list[list[Domain]]:
    """Level a phase's domains.

    Args:
        domains: Domains of one phase
        satisfied: Names of domains declared in earlier phases

    Returns:
        Ordered list of domain levels
    """
    return resolve_levels(
        domains,
        key=lambda domain: domain.name,
        dependencies=lambda domain: domain.dependencies,
        satisfied=satisfied,
    )


def level_tasks(tasks: list[Task]) -> list[list[Task]]:
    """Level the tasks of a single domain.

    Dependencies on task ids outside the list are ignored; ordering across
    domains is handled by level_domains.
    """
    local_ids = {task.id for task in tasks}
    return resolve_levels(
        tasks,
        key=lambda task: task.id,
        dependencies=lambda task: [dep for dep in task.dependencies if dep in local_ids],
    )
