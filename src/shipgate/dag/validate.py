"""DAG validation helpers."""

from __future__ import annotations

from collections import defaultdict, deque

from shipgate.util.errors import CyclicDependencyError


def _extract_cycle(remaining: set[str], dependents: dict[str, list[str]]) -> list[str]:
    """Walk dependency edges inside the unsorted remainder until a node repeats.

    Every node left over by Kahn's algorithm still has an unsorted
    dependency, so the walk always closes a cycle.
    """
    dependencies: dict[str, list[str]] = defaultdict(list)
    for parent, children in dependents.items():
        for child in children:
            dependencies[child].append(parent)

    path: list[str] = []
    index: dict[str, int] = {}
    current = min(remaining)
    while current not in index:
        index[current] = len(path)
        path.append(current)
        current = min(dep for dep in dependencies[current] if dep in remaining)
    return [*path[index[current] :], current]


def assert_acyclic(
    task_names: list[str], dependents: dict[str, list[str]], in_degree: dict[str, int]
) -> list[str]:
    """Validate graph has no cycle using Kahn's algorithm and return a topological order."""
    degrees = dict(in_degree)
    q = deque([name for name in task_names if degrees.get(name, 0) == 0])
    order: list[str] = []

    while q:
        current = q.popleft()
        order.append(current)
        for nxt in dependents.get(current, []):
            degrees[nxt] = degrees[nxt] - 1
            if degrees[nxt] == 0:
                q.append(nxt)

    if len(order) != len(task_names):
        remaining = {name for name in task_names if degrees.get(name, 0) > 0}
        raise CyclicDependencyError(_extract_cycle(remaining, dependents))
    return order
