from __future__ import annotations

from pathlib import Path

import pytest

from shipgate.exec.workspace import Workspace, load_env_file
from shipgate.util.errors import WorkspaceError


def test_open_reads_env_file_and_process_environment_wins(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text(
        "GITHUB_TOKEN=from-file\nCARGO_REGISTRY_TOKEN=crates\n", encoding="utf-8"
    )
    workspace = Workspace.open(tmp_path, environ={"GITHUB_TOKEN": "from-process"})
    assert workspace.root == tmp_path.resolve()
    assert workspace.env["GITHUB_TOKEN"] == "from-process"
    assert workspace.env["CARGO_REGISTRY_TOKEN"] == "crates"
    assert workspace.env_file == tmp_path.resolve() / ".env"


def test_open_without_env_file(tmp_path: Path) -> None:
    workspace = Workspace.open(tmp_path, env_file=None, environ={"PATH": "/bin"})
    assert workspace.env == {"PATH": "/bin"}
    assert workspace.env_file is None


def test_missing_env_file_is_ignored(tmp_path: Path) -> None:
    assert load_env_file(tmp_path / ".env") == {}
    workspace = Workspace.open(tmp_path, env_file="custom.env", environ={})
    assert workspace.env == {}


def test_env_file_entries_without_value_are_dropped(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("EMPTY\nSET=1\n", encoding="utf-8")
    assert load_env_file(tmp_path / ".env") == {"SET": "1"}


def test_open_rejects_non_directory(tmp_path: Path) -> None:
    file_path = tmp_path / "file"
    file_path.write_text("x", encoding="utf-8")
    with pytest.raises(NotADirectoryError):
        Workspace.open(file_path)


def test_resolve_cwd_joins_task_and_step_directories(tmp_path: Path) -> None:
    workspace = Workspace.open(tmp_path, env_file=None, environ={})
    assert workspace.resolve_cwd() == workspace.root
    assert workspace.resolve_cwd("crates", None) == workspace.root / "crates"
    assert workspace.resolve_cwd("crates", "core") == workspace.root / "crates" / "core"


def test_env_file_with_invalid_utf8_raises_workspace_error(tmp_path: Path) -> None:
    (tmp_path / ".env").write_bytes(b"TOKEN=\xff\xfe\n")
    with pytest.raises(WorkspaceError, match="utf-8"):
        load_env_file(tmp_path / ".env")
    with pytest.raises(WorkspaceError):
        Workspace.open(tmp_path, environ={})
