"""Expand requested invocations into an ordered execution plan."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from shipgate.config.params import bind_arguments, render_steps
from shipgate.config.schema import ExecutionPlan, Invocation, TaskSpec
from shipgate.util.errors import CyclicDependencyError, UnknownTaskError


def resolve_plan(tasks: Mapping[str, TaskSpec], roots: Sequence[Invocation]) -> ExecutionPlan:
    """Return the dependency-ordered, deduplicated plan for ``roots``.

    Depth-first, dependencies before dependents. An invocation (task plus
    arguments) is recorded the first time it is fully resolved and skipped
    on later encounters, so a dependency shared by several roots runs once.
    Arguments are bound and rendered here so that every resolution error
    surfaces before anything executes.
    """
    order: list[Invocation] = []
    done: set[Invocation] = set()
    in_progress: list[str] = []

    def visit(invocation: Invocation, referenced_by: str | None) -> None:
        if invocation in done:
            return
        task = tasks.get(invocation.task)
        if task is None:
            raise UnknownTaskError(invocation.task, referenced_by)
        if task.name in in_progress:
            start = in_progress.index(task.name)
            raise CyclicDependencyError([*in_progress[start:], task.name])
        render_steps(task, bind_arguments(task, invocation.args))

        in_progress.append(task.name)
        for dep in task.depends_on:
            visit(Invocation(task=dep.task, args=dep.args), task.name)
        in_progress.pop()

        done.add(invocation)
        order.append(invocation)

    for root in roots:
        visit(root, None)
    return ExecutionPlan(invocations=tuple(order))
