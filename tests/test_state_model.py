from __future__ import annotations

from shipgate.config.schema import Invocation
from shipgate.state.model import RunResult, TaskOutcome
from shipgate.util.errors import ExternalCommandFailure


def test_run_result_without_error_is_success() -> None:
    result = RunResult(outcomes=[TaskOutcome(Invocation("test"), status="SUCCESS", exit_code=0)])
    assert result.status == "SUCCESS"
    assert result.exit_code == 0
    assert result.failed_task is None
    assert result.to_dict()["tasks"] == [
        {
            "task": "test",
            "args": [],
            "status": "SUCCESS",
            "exit_code": 0,
            "duration_sec": None,
            "message": None,
        }
    ]


def test_run_result_reports_first_failure() -> None:
    error = ExternalCommandFailure("lint", ["cargo", "fmt", "--", "--check"], 1)
    result = RunResult(
        outcomes=[
            TaskOutcome(Invocation("test"), status="SUCCESS", exit_code=0),
            TaskOutcome(Invocation("lint"), status="FAILED", exit_code=1),
            TaskOutcome(Invocation("doc", ("--open",))),
        ],
        error=error,
    )
    data = result.to_dict()
    assert data["status"] == "FAILED"
    assert data["failed_task"] == "lint"
    assert data["exit_code"] == 1
    assert data["message"] == "command 'cargo' exited with status 1"
    assert result.attempted() == ["test", "lint"]
