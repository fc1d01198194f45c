from __future__ import annotations

import io
import os
import stat
import sys
from pathlib import Path

import pytest
from rich.console import Console

from shipgate.config.schema import RemoveStep, WriteStep
from shipgate.exec.steps import COMMAND_NOT_STARTED, remove_paths, run_command, write_file
from shipgate.util.errors import ExternalCommandFailure, StepError


@pytest.fixture()
def console() -> Console:
    return Console(file=io.StringIO(), width=200)


def test_run_command_success_echoes_command(tmp_path: Path, console: Console) -> None:
    marker = tmp_path / "ran"
    cmd = [sys.executable, "-c", f"open({str(marker)!r}, 'w').write('x')"]
    run_command("test", cmd, cwd=tmp_path, env=dict(os.environ), console=console)
    assert marker.read_text(encoding="utf-8") == "x"
    assert "$ " in console.file.getvalue()  # type: ignore[attr-defined]


def test_run_command_uses_given_cwd_and_env(tmp_path: Path, console: Console) -> None:
    cmd = [
        sys.executable,
        "-c",
        "import os; open('seen', 'w').write(os.environ['SHIPGATE_PROBE'])",
    ]
    env = {**os.environ, "SHIPGATE_PROBE": "probe-value"}
    run_command("probe", cmd, cwd=tmp_path, env=env, console=console)
    assert (tmp_path / "seen").read_text(encoding="utf-8") == "probe-value"


def test_run_command_propagates_exit_status(tmp_path: Path, console: Console) -> None:
    cmd = [sys.executable, "-c", "import sys; sys.exit(3)"]
    with pytest.raises(ExternalCommandFailure) as excinfo:
        run_command("lint", cmd, cwd=tmp_path, env=dict(os.environ), console=console)
    assert excinfo.value.task == "lint"
    assert excinfo.value.exit_code == 3
    assert excinfo.value.cmd == cmd


def test_run_command_that_cannot_start(tmp_path: Path, console: Console) -> None:
    cmd = ["__definitely_missing_command__", "--version"]
    with pytest.raises(ExternalCommandFailure) as excinfo:
        run_command("test", cmd, cwd=tmp_path, env=dict(os.environ), console=console)
    assert excinfo.value.exit_code == COMMAND_NOT_STARTED


def test_run_command_rejects_empty_command(tmp_path: Path, console: Console) -> None:
    with pytest.raises(StepError, match="command is empty") as excinfo:
        run_command("x", [], cwd=tmp_path, env=dict(os.environ), console=console)
    assert excinfo.value.exit_code == 1


def test_remove_paths_deletes_files_and_trees(tmp_path: Path, console: Console) -> None:
    (tmp_path / "target" / "debug").mkdir(parents=True)
    (tmp_path / "target" / "debug" / "app").write_text("bin", encoding="utf-8")
    (tmp_path / "Cargo.lock").write_text("lock", encoding="utf-8")
    (tmp_path / "src").mkdir()

    step = RemoveStep(paths=["target", "Cargo.lock", "node_modules"])
    remove_paths("clean", tmp_path, step, console=console)

    assert not (tmp_path / "target").exists()
    assert not (tmp_path / "Cargo.lock").exists()
    assert (tmp_path / "src").is_dir()


def test_remove_paths_unlinks_symlink_without_touching_target(
    tmp_path: Path, console: Console
) -> None:
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "keep").write_text("keep", encoding="utf-8")
    root = tmp_path / "root"
    root.mkdir()
    (root / "node_modules").symlink_to(outside, target_is_directory=True)

    remove_paths("clean", root, RemoveStep(paths=["node_modules"]), console=console)

    assert not (root / "node_modules").exists()
    assert (outside / "keep").read_text(encoding="utf-8") == "keep"


def test_remove_paths_refuses_to_escape_workspace(tmp_path: Path, console: Console) -> None:
    with pytest.raises(StepError) as excinfo:
        remove_paths("clean", tmp_path, RemoveStep(paths=["../elsewhere"]), console=console)
    assert excinfo.value.task == "clean"
    assert excinfo.value.exit_code == 1


def test_write_file_creates_executable_hook(tmp_path: Path, console: Console) -> None:
    step = WriteStep(
        path=".git/hooks/pre-commit",
        content="#!/usr/bin/env sh\nshipgate run verify\n",
        executable=True,
    )
    write_file("install-git-hooks", tmp_path, step, console=console)

    hook = tmp_path / ".git" / "hooks" / "pre-commit"
    assert hook.read_text(encoding="utf-8") == "#!/usr/bin/env sh\nshipgate run verify\n"
    assert hook.stat().st_mode & stat.S_IXUSR


def test_write_file_overwrites_existing_file(tmp_path: Path, console: Console) -> None:
    target = tmp_path / "notes.txt"
    target.write_text("old content that is longer", encoding="utf-8")
    write_file("notes", tmp_path, WriteStep(path="notes.txt", content="new"), console=console)
    assert target.read_text(encoding="utf-8") == "new"
    assert not target.stat().st_mode & stat.S_IXUSR


def test_write_file_refuses_symlink_target(tmp_path: Path, console: Console) -> None:
    outside = tmp_path / "outside.txt"
    outside.write_text("sentinel", encoding="utf-8")
    root = tmp_path / "root"
    root.mkdir()
    (root / "hook").symlink_to(outside)

    with pytest.raises(StepError, match="must not be symlink"):
        write_file("hooks", root, WriteStep(path="hook", content="x"), console=console)
    assert outside.read_text(encoding="utf-8") == "sentinel"


def test_write_file_without_parents_requires_existing_directory(
    tmp_path: Path, console: Console
) -> None:
    step = WriteStep(path=".git/hooks/pre-commit", content="x", parents=False)
    with pytest.raises(StepError, match="parent directory does not exist"):
        write_file("install-git-hooks", tmp_path, step, console=console)
    assert not (tmp_path / ".git").exists()

    (tmp_path / ".git" / "hooks").mkdir(parents=True)
    write_file("install-git-hooks", tmp_path, step, console=console)
    assert (tmp_path / ".git" / "hooks" / "pre-commit").read_text(encoding="utf-8") == "x"
