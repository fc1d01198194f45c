from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from shipgate.config.schema import TaskSpec
from shipgate.dag.build import build_adjacency
from shipgate.dag.validate import assert_acyclic
from shipgate.util.errors import (
    CyclicDependencyError,
    DuplicateTaskError,
    TaskfileError,
    UnknownTaskError,
)


class TaskRegistry:
    """Named task definitions, populated once and read-only after ``freeze``."""

    def __init__(self) -> None:
        self._tasks: dict[str, TaskSpec] = {}
        self._folded: set[str] = set()
        self._frozen = False

    @classmethod
    def from_specs(cls, specs: Iterable[TaskSpec]) -> TaskRegistry:
        registry = cls()
        for spec in specs:
            registry.register(spec)
        return registry.freeze()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def tasks(self) -> Mapping[str, TaskSpec]:
        return MappingProxyType(self._tasks)

    def register(self, task: TaskSpec) -> None:
        if self._frozen:
            raise TaskfileError(f"registry is read-only, cannot register '{task.name}'")
        folded = task.name.casefold()
        if task.name in self._tasks or folded in self._folded:
            raise DuplicateTaskError(task.name)
        self._tasks[task.name] = task
        self._folded.add(folded)

    def lookup(self, name: str) -> TaskSpec:
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownTaskError(name) from None

    def freeze(self) -> TaskRegistry:
        """Validate dependency references and acyclicity, then lock the registry."""
        for task in self._tasks.values():
            for dep in task.dependency_names():
                if dep == task.name:
                    raise CyclicDependencyError([task.name, task.name])
                if dep not in self._tasks:
                    raise UnknownTaskError(dep, referenced_by=task.name)
        dependents, in_degree = build_adjacency(self._tasks.values())
        assert_acyclic(list(self._tasks), dependents, in_degree)
        self._frozen = True
        return self

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __iter__(self) -> Iterator[TaskSpec]:
        return iter(self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)
