"""Application-level error types."""

from __future__ import annotations


class ShipgateError(Exception):
    """Base error for shipgate."""


class TaskfileError(ShipgateError):
    """Raised when taskfile loading/validation fails."""


class DuplicateTaskError(TaskfileError):
    """Raised when a task name is registered twice."""

    def __init__(self, name: str) -> None:
        super().__init__(f"task '{name}' is already registered")
        self.name = name


class UnknownTaskError(ShipgateError):
    """Raised when a requested or referenced task is not registered."""

    def __init__(self, name: str, referenced_by: str | None = None) -> None:
        if referenced_by is None:
            message = f"unknown task: '{name}'"
        else:
            message = f"task '{referenced_by}' depends on unknown task '{name}'"
        super().__init__(message)
        self.name = name
        self.referenced_by = referenced_by


class CyclicDependencyError(ShipgateError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__("cyclic dependency: " + " -> ".join(cycle))
        self.cycle = cycle


class ArgumentError(ShipgateError):
    """Raised when invocation arguments do not fit a task's parameters."""


class WorkspaceError(ShipgateError):
    """Raised when the workspace or its env file cannot be used."""


class TaskFailure(ShipgateError):
    """Raised when a task fails while the plan is executing."""

    def __init__(self, task: str, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.task = task
        self.exit_code = exit_code


class MissingEnvironmentError(TaskFailure):
    def __init__(self, variable: str, task: str) -> None:
        super().__init__(task, f"environment variable {variable} must be set and non-empty")
        self.variable = variable


class ExternalCommandFailure(TaskFailure):
    def __init__(self, task: str, cmd: list[str], exit_code: int) -> None:
        super().__init__(task, f"command {cmd[0]!r} exited with status {exit_code}", exit_code)
        self.cmd = cmd


class StepError(TaskFailure):
    """Raised when a filesystem step cannot be completed."""
