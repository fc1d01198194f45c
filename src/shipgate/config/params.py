"""Parameter binding and ``{{name}}`` substitution for task commands."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from shipgate.config.schema import Invocation, RunStep, Step, TaskSpec
from shipgate.util.errors import ArgumentError, UnknownTaskError

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_-]*)\s*\}\}")

Bindings = dict[str, str | list[str]]


def placeholder_names(token: str) -> list[str]:
    return PLACEHOLDER_PATTERN.findall(token)


def bind_arguments(task: TaskSpec, args: Sequence[str]) -> Bindings:
    """Assign positional arguments to the task's parameter slots."""
    if args and not task.params:
        raise ArgumentError(f"task '{task.name}' takes no arguments, got {list(args)}")
    remaining = list(args)
    bindings: Bindings = {}
    for param in task.params:
        if param.variadic:
            bindings[param.name] = remaining
            remaining = []
            break
        if remaining:
            bindings[param.name] = remaining.pop(0)
        elif param.default is not None:
            bindings[param.name] = param.default
        else:
            raise ArgumentError(f"task '{task.name}' missing argument '{param.name}'")
    if remaining:
        raise ArgumentError(f"task '{task.name}' got unexpected arguments: {remaining}")
    return bindings


def _render_token(token: str, bindings: Bindings) -> list[str]:
    whole = PLACEHOLDER_PATTERN.fullmatch(token)
    if whole is not None:
        value = bindings[whole.group(1)]
        return list(value) if isinstance(value, list) else [value]

    def _replace(match: re.Match[str]) -> str:
        value = bindings[match.group(1)]
        return " ".join(value) if isinstance(value, list) else value

    return [PLACEHOLDER_PATTERN.sub(_replace, token)]


def _references(steps: Sequence[Step], name: str) -> bool:
    return any(
        name in placeholder_names(token)
        for step in steps
        if isinstance(step, RunStep)
        for token in step.cmd
    )


def render_steps(task: TaskSpec, bindings: Bindings) -> list[Step]:
    """Return the task's steps with parameters substituted into commands.

    Extra arguments of a variadic parameter that no command references are
    appended verbatim to the last command.
    """
    rendered: list[Step] = []
    for step in task.steps:
        if isinstance(step, RunStep):
            cmd = [part for token in step.cmd for part in _render_token(token, bindings)]
            if not cmd:
                raise ArgumentError(f"task '{task.name}' renders an empty command")
            rendered.append(RunStep(cmd=cmd, cwd=step.cwd))
        else:
            rendered.append(step)

    variadic = task.variadic
    if variadic is not None and not _references(task.steps, variadic.name):
        extra = list(bindings.get(variadic.name, []))
        for idx in range(len(rendered) - 1, -1, -1):
            step = rendered[idx]
            if isinstance(step, RunStep):
                rendered[idx] = RunStep(cmd=[*step.cmd, *extra], cwd=step.cwd)
                break
    return rendered


def split_invocations(tasks: Mapping[str, TaskSpec], tokens: Sequence[str]) -> list[Invocation]:
    """Split command-line tokens into invocations.

    Each task name consumes as many following tokens as it has parameter
    slots; a variadic slot consumes everything that is left.
    """
    invocations: list[Invocation] = []
    idx = 0
    while idx < len(tokens):
        name = tokens[idx]
        idx += 1
        task = tasks.get(name)
        if task is None:
            raise UnknownTaskError(name)
        if task.variadic is not None:
            take = len(tokens) - idx
        else:
            take = min(len(task.params), len(tokens) - idx)
        invocations.append(Invocation(task=name, args=tuple(tokens[idx : idx + take])))
        idx += take
    return invocations
