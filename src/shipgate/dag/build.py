"""Build graph structures from task definitions."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

from shipgate.config.schema import TaskSpec


def build_adjacency(tasks: Iterable[TaskSpec]) -> tuple[dict[str, list[str]], dict[str, int]]:
    """Return dependents adjacency and in-degree by task name.

    Repeated dependency declarations count once.
    """
    dependents: dict[str, list[str]] = defaultdict(list)
    in_degree: dict[str, int] = {}

    for task in tasks:
        deps = task.dependency_names()
        in_degree[task.name] = len(deps)
        dependents.setdefault(task.name, [])
        for dep in deps:
            dependents[dep].append(task.name)

    return dict(dependents), in_degree
