from __future__ import annotations

import errno
import os
import shlex
import shutil
import stat
import subprocess
from contextlib import suppress
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from shipgate.config.schema import RemoveStep, WriteStep
from shipgate.util.errors import ExternalCommandFailure, StepError
from shipgate.util.logging import get_logger
from shipgate.util.path_guard import workspace_path

logger = get_logger(__name__)

COMMAND_NOT_STARTED = 127


def run_command(
    task: str,
    cmd: list[str],
    *,
    cwd: Path,
    env: dict[str, str],
    console: Console,
) -> None:
    """Run one external command with inherited stdio; blocks until it exits."""
    if not cmd:
        raise StepError(task, "command is empty")
    console.print(f"[bold]$ {escape(shlex.join(cmd))}[/bold]", highlight=False)
    logger.debug("exec %s (cwd=%s)", cmd, cwd)
    try:
        completed = subprocess.run(cmd, cwd=str(cwd), env=env, check=False)
    except (OSError, ValueError) as exc:
        console.print(f"[red]failed to start process:[/red] {escape(str(exc))}")
        raise ExternalCommandFailure(task, cmd, COMMAND_NOT_STARTED) from exc
    if completed.returncode != 0:
        raise ExternalCommandFailure(task, cmd, completed.returncode)


def remove_paths(task: str, root: Path, step: RemoveStep, *, console: Console) -> None:
    """Delete files and directory trees; paths that do not exist are ignored.

    A symlink is removed itself, never the tree it points to.
    """
    for relative in step.paths:
        try:
            target = workspace_path(root, relative)
        except OSError as exc:
            raise StepError(task, str(exc)) from exc
        try:
            meta = target.lstat()
        except FileNotFoundError:
            continue
        except OSError as exc:
            raise StepError(task, f"failed to inspect {relative}: {exc}") from exc
        console.print(f"[bold]rm {escape(relative)}[/bold]", highlight=False)
        try:
            if stat.S_ISDIR(meta.st_mode):
                shutil.rmtree(target)
            else:
                target.unlink(missing_ok=True)
        except OSError as exc:
            raise StepError(task, f"failed to remove {relative}: {exc}") from exc


def write_file(task: str, root: Path, step: WriteStep, *, console: Console) -> None:
    try:
        target = workspace_path(root, step.path)
    except OSError as exc:
        raise StepError(task, str(exc)) from exc
    if target.is_symlink():
        raise StepError(task, f"path must not be symlink: {step.path}")
    console.print(f"[bold]write {escape(step.path)}[/bold]", highlight=False)

    flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
    if hasattr(os, "O_NOFOLLOW"):
        flags |= os.O_NOFOLLOW
    mode = 0o755 if step.executable else 0o644
    fd: int | None = None
    try:
        if step.parents:
            target.parent.mkdir(parents=True, exist_ok=True)
        elif not target.parent.is_dir():
            raise StepError(task, f"parent directory does not exist: {step.path}")
        fd = os.open(str(target), flags, mode)
        if not stat.S_ISREG(os.fstat(fd).st_mode):
            raise StepError(task, f"path must be regular file: {step.path}")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            fd = None
            f.write(step.content)
        os.chmod(target, mode)
    except OSError as exc:
        if exc.errno == errno.ELOOP:
            raise StepError(task, f"path must not be symlink: {step.path}") from exc
        raise StepError(task, f"failed to write {step.path}: {exc}") from exc
    finally:
        if fd is not None:
            with suppress(OSError):
                os.close(fd)
