from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from shipgate.config.schema import Invocation
from shipgate.util.errors import TaskFailure

RunStatus = Literal["SUCCESS", "FAILED"]
TaskStatus = Literal["PENDING", "SUCCESS", "FAILED", "SKIPPED"]


@dataclass(slots=True)
class TaskOutcome:
    invocation: Invocation
    status: TaskStatus = "PENDING"
    exit_code: int | None = None
    duration_sec: float | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task": self.invocation.task,
            "args": list(self.invocation.args),
            "status": self.status,
            "exit_code": self.exit_code,
            "duration_sec": self.duration_sec,
            "message": self.message,
        }


@dataclass(slots=True)
class RunResult:
    outcomes: list[TaskOutcome] = field(default_factory=list)
    error: TaskFailure | None = None

    @property
    def status(self) -> RunStatus:
        return "FAILED" if self.error is not None else "SUCCESS"

    @property
    def failed_task(self) -> str | None:
        return self.error.task if self.error is not None else None

    @property
    def exit_code(self) -> int:
        return self.error.exit_code if self.error is not None else 0

    def attempted(self) -> list[str]:
        return [o.invocation.task for o in self.outcomes if o.status in {"SUCCESS", "FAILED"}]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "failed_task": self.failed_task,
            "exit_code": self.exit_code,
            "message": None if self.error is None else str(self.error),
            "tasks": [outcome.to_dict() for outcome in self.outcomes],
        }
