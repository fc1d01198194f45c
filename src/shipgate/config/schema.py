from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Literal

ActionKind = Literal["composite", "precondition", "command"]


@dataclass(frozen=True, slots=True)
class Param:
    name: str
    default: str | None = None
    variadic: bool = False

    @property
    def required(self) -> bool:
        return self.default is None and not self.variadic


@dataclass(frozen=True, slots=True)
class Dependency:
    task: str
    args: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RunStep:
    cmd: list[str]
    cwd: str | None = None


@dataclass(frozen=True, slots=True)
class RequireEnvStep:
    names: list[str]


@dataclass(frozen=True, slots=True)
class RemoveStep:
    paths: list[str]


@dataclass(frozen=True, slots=True)
class WriteStep:
    path: str
    content: str
    executable: bool = False
    parents: bool = True


Step = RunStep | RequireEnvStep | RemoveStep | WriteStep


@dataclass(slots=True)
class TaskSpec:
    name: str
    description: str | None = None
    depends_on: list[Dependency] = field(default_factory=list)
    params: list[Param] = field(default_factory=list)
    requires_env: list[str] = field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] | None = None
    steps: list[Step] = field(default_factory=list)

    @property
    def kind(self) -> ActionKind:
        if not self.steps:
            return "composite"
        if all(isinstance(step, RequireEnvStep) for step in self.steps):
            return "precondition"
        return "command"

    @property
    def variadic(self) -> Param | None:
        if self.params and self.params[-1].variadic:
            return self.params[-1]
        return None

    def dependency_names(self) -> list[str]:
        """Return dependency task names in declaration order, without duplicates."""
        return list(dict.fromkeys(dep.task for dep in self.depends_on))


@dataclass(slots=True)
class TaskfileSpec:
    tasks: list[TaskSpec]
    env_file: str | None = None


@dataclass(frozen=True, slots=True)
class Invocation:
    task: str
    args: tuple[str, ...] = ()

    def __str__(self) -> str:
        return " ".join([self.task, *self.args])


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    invocations: tuple[Invocation, ...]

    def __iter__(self) -> Iterator[Invocation]:
        return iter(self.invocations)

    def __len__(self) -> int:
        return len(self.invocations)

    def task_names(self) -> list[str]:
        return [invocation.task for invocation in self.invocations]
