from __future__ import annotations

from datetime import datetime

from rich.console import Console
from rich.markup import escape

from shipgate.config.params import bind_arguments, render_steps
from shipgate.config.registry import TaskRegistry
from shipgate.config.schema import (
    ExecutionPlan,
    RemoveStep,
    RequireEnvStep,
    RunStep,
    TaskSpec,
    WriteStep,
)
from shipgate.env.gate import check_required
from shipgate.exec.steps import remove_paths, run_command, write_file
from shipgate.exec.workspace import Workspace
from shipgate.state.model import RunResult, TaskOutcome
from shipgate.util.errors import TaskFailure
from shipgate.util.logging import get_logger
from shipgate.util.time import duration_sec

logger = get_logger(__name__)


def _task_env(task: TaskSpec, workspace: Workspace) -> dict[str, str]:
    merged = dict(workspace.env)
    if task.env:
        merged.update(task.env)
    return merged


def run_task(
    task: TaskSpec,
    args: tuple[str, ...],
    workspace: Workspace,
    *,
    console: Console,
) -> None:
    """Run one task's action; raises ``TaskFailure`` on the first failing step."""
    env = _task_env(task, workspace)
    check_required(task.requires_env, env, task=task.name)

    steps = render_steps(task, bind_arguments(task, args))
    for step in steps:
        if isinstance(step, RunStep):
            run_command(
                task.name,
                step.cmd,
                cwd=workspace.resolve_cwd(task.cwd, step.cwd),
                env=env,
                console=console,
            )
        elif isinstance(step, RequireEnvStep):
            check_required(step.names, env, task=task.name)
        elif isinstance(step, RemoveStep):
            remove_paths(task.name, workspace.root, step, console=console)
        elif isinstance(step, WriteStep):
            write_file(task.name, workspace.root, step, console=console)


def run_plan(
    plan: ExecutionPlan,
    registry: TaskRegistry,
    workspace: Workspace,
    *,
    console: Console | None = None,
) -> RunResult:
    """Run the plan left to right and stop at the first failing task.

    Tasks after the failure are reported SKIPPED and never attempted;
    effects of tasks that already ran stay in place.
    """
    console = console or Console()
    result = RunResult(outcomes=[TaskOutcome(invocation=inv) for inv in plan])

    for outcome in result.outcomes:
        if result.error is not None:
            outcome.status = "SKIPPED"
            continue
        invocation = outcome.invocation
        task = registry.lookup(invocation.task)
        if task.kind != "composite":
            console.rule(f"[bold cyan]{escape(str(invocation))}[/bold cyan]")
        logger.info("task %s started", invocation)
        started = datetime.now().astimezone()
        try:
            run_task(task, invocation.args, workspace, console=console)
        except TaskFailure as exc:
            outcome.status = "FAILED"
            outcome.exit_code = exc.exit_code
            outcome.message = str(exc)
            result.error = exc
            logger.info("task %s failed: %s", invocation, exc)
        else:
            outcome.status = "SUCCESS"
            outcome.exit_code = 0
            logger.info("task %s finished", invocation)
        outcome.duration_sec = duration_sec(started, datetime.now().astimezone())

    return result
