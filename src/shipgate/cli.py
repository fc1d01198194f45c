from __future__ import annotations

import stat
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shipgate.config.loader import discover_taskfile, load_builtin_taskfile, load_taskfile
from shipgate.config.params import split_invocations
from shipgate.config.registry import TaskRegistry
from shipgate.config.schema import ExecutionPlan, Param, TaskfileSpec
from shipgate.dag.resolve import resolve_plan
from shipgate.exec.runner import run_plan
from shipgate.exec.workspace import Workspace
from shipgate.state.model import RunResult
from shipgate.util.errors import (
    ArgumentError,
    CyclicDependencyError,
    ShipgateError,
    UnknownTaskError,
    WorkspaceError,
)
from shipgate.util.logging import configure_logging, get_logger

app = typer.Typer(help="Verification and release pipeline runner", no_args_is_help=True)
console = Console()
logger = get_logger(__name__)

RESOLVE_ERROR_EXIT = 2
INTERRUPTED_EXIT = 130
_DEFAULT_ENV_FILE = ".env"


def _exit_code_for_result(result: RunResult) -> int:
    code = result.exit_code
    if code < 0:
        # terminated by signal
        return 128 - code
    if code > 255:
        return 1
    return code


def _format_param(param: Param) -> str:
    if param.variadic:
        return f"*{param.name}"
    if param.default is not None:
        return f"{param.name}={param.default!r}"
    return param.name


def _resolve_workdir_or_exit(workdir: Path) -> Path:
    try:
        resolved = workdir.resolve()
        meta = resolved.lstat()
    except (OSError, RuntimeError) as exc:
        console.print(f"[red]Invalid workdir:[/red] {workdir}")
        raise typer.Exit(RESOLVE_ERROR_EXIT) from exc
    if not stat.S_ISDIR(meta.st_mode):
        console.print(f"[red]Invalid workdir:[/red] {workdir}")
        raise typer.Exit(RESOLVE_ERROR_EXIT)
    return resolved


def _load_registry_or_exit(
    workdir: Path, taskfile: Path | None
) -> tuple[TaskfileSpec, TaskRegistry]:
    path = discover_taskfile(workdir, taskfile)
    try:
        spec = load_taskfile(path) if path is not None else load_builtin_taskfile()
        registry = TaskRegistry.from_specs(spec.tasks)
    except ShipgateError as exc:
        console.print(f"[red]Taskfile error:[/red] {escape(str(exc))}")
        raise typer.Exit(RESOLVE_ERROR_EXIT) from exc
    logger.info("loaded %d tasks from %s", len(registry), path or "built-in taskfile")
    return spec, registry


def _print_plan(plan: ExecutionPlan, registry: TaskRegistry) -> None:
    table = Table(title="Dry Run - Execution Plan")
    table.add_column("#")
    table.add_column("task", no_wrap=True)
    table.add_column("args")
    table.add_column("kind")
    for idx, invocation in enumerate(plan, start=1):
        task = registry.lookup(invocation.task)
        table.add_row(str(idx), invocation.task, " ".join(invocation.args), task.kind)
    console.print(table)


def _print_summary(result: RunResult) -> None:
    table = Table(title="Run Summary")
    table.add_column("task", no_wrap=True)
    table.add_column("status")
    table.add_column("duration_sec", justify="right")
    table.add_column("exit_code", justify="right")
    for outcome in result.outcomes:
        table.add_row(
            str(outcome.invocation),
            outcome.status,
            "-" if outcome.duration_sec is None else str(outcome.duration_sec),
            "-" if outcome.exit_code is None else str(outcome.exit_code),
        )
    console.print(table)


@app.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
def run(
    tokens: Annotated[
        list[str],
        typer.Argument(help="TASK [ARGS]... ; several tasks may follow each other."),
    ],
    taskfile: Annotated[
        Path | None, typer.Option("--taskfile", envvar="SHIPGATE_TASKFILE")
    ] = None,
    workdir: Annotated[Path, typer.Option("--workdir")] = Path("."),
    env_file: Annotated[str | None, typer.Option("--env-file")] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    configure_logging("INFO" if verbose else None)
    resolved_workdir = _resolve_workdir_or_exit(workdir)
    spec, registry = _load_registry_or_exit(resolved_workdir, taskfile)

    try:
        roots = split_invocations(registry.tasks, tokens)
        plan = resolve_plan(registry.tasks, roots)
    except (UnknownTaskError, CyclicDependencyError, ArgumentError) as exc:
        console.print(f"[red]Plan error:[/red] {escape(str(exc))}")
        raise typer.Exit(RESOLVE_ERROR_EXIT) from exc

    if dry_run:
        _print_plan(plan, registry)
        raise typer.Exit(0)

    try:
        workspace = Workspace.open(
            resolved_workdir, env_file=env_file or spec.env_file or _DEFAULT_ENV_FILE
        )
    except (OSError, WorkspaceError) as exc:
        console.print(f"[red]Failed to open workspace:[/red] {escape(str(exc))}")
        raise typer.Exit(RESOLVE_ERROR_EXIT) from exc

    try:
        result = run_plan(plan, registry, workspace, console=console)
    except KeyboardInterrupt as exc:
        console.print("[yellow]Interrupted[/yellow]")
        raise typer.Exit(INTERRUPTED_EXIT) from exc

    _print_summary(result)
    if result.error is not None:
        console.print(
            f"[red]task {escape(result.error.task)} failed:[/red] {escape(str(result.error))}"
        )
    raise typer.Exit(_exit_code_for_result(result))


@app.command("list")
def list_tasks(
    taskfile: Annotated[
        Path | None, typer.Option("--taskfile", envvar="SHIPGATE_TASKFILE")
    ] = None,
    workdir: Annotated[Path, typer.Option("--workdir")] = Path("."),
) -> None:
    configure_logging()
    resolved_workdir = _resolve_workdir_or_exit(workdir)
    _, registry = _load_registry_or_exit(resolved_workdir, taskfile)

    table = Table(title="Available Tasks")
    table.add_column("task", no_wrap=True)
    table.add_column("params")
    table.add_column("description")
    for task in registry:
        table.add_row(
            task.name,
            " ".join(_format_param(param) for param in task.params),
            task.description or "",
        )
    console.print(table)


if __name__ == "__main__":
    app()
