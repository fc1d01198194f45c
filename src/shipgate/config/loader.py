from __future__ import annotations

import errno
import os
import re
import shlex
import stat
from contextlib import suppress
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from shipgate.config.params import placeholder_names
from shipgate.config.schema import (
    Dependency,
    Param,
    RemoveStep,
    RequireEnvStep,
    RunStep,
    Step,
    TaskfileSpec,
    TaskSpec,
    WriteStep,
)
from shipgate.util.errors import TaskfileError
from shipgate.util.path_guard import has_symlink_ancestor

DEFAULT_TASKFILE = Path(__file__).with_name("default_tasks.yaml")
PROJECT_TASKFILE_NAME = "shipgate.yaml"

_SAFE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_PARAM_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")
_TASK_NAME_MAX_LEN = 128
_ALLOWED_ROOT_KEYS = {"env_file", "tasks"}
_ALLOWED_TASK_KEYS = {
    "name",
    "description",
    "depends_on",
    "params",
    "requires_env",
    "cwd",
    "env",
    "steps",
}
_STEP_KINDS = {"run", "require_env", "remove", "write"}
_WRITE_KEYS = {"path", "content", "executable", "parents"}


def _is_non_blank_str(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip()) and "\x00" not in value


def _is_str_without_nul(value: object) -> bool:
    return isinstance(value, str) and "\x00" not in value


def _is_valid_env_key(value: object) -> bool:
    if not isinstance(value, str):
        return False
    return _is_non_blank_str(value) and "=" not in value


def _is_safe_name(value: object) -> bool:
    return isinstance(value, str) and _SAFE_NAME_PATTERN.fullmatch(value) is not None


def normalize_cmd(cmd: str | list[str]) -> list[str]:
    if isinstance(cmd, str):
        try:
            parts = shlex.split(cmd)
        except ValueError as exc:
            raise TaskfileError(f"invalid cmd string: {exc}") from exc
        if not parts:
            raise TaskfileError("cmd string must not be empty")
        if any("\x00" in part for part in parts):
            raise TaskfileError("cmd must not contain null bytes")
        return parts
    if isinstance(cmd, list) and cmd and all(_is_non_blank_str(p) for p in cmd):
        return cmd
    raise TaskfileError("cmd must be str or non-empty list[str]")


def _ensure_list_str(name: str, value: Any, *, non_empty_items: bool = False) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise TaskfileError(f"{name} must be list[str]")
    if non_empty_items and any(not _is_non_blank_str(v) for v in value):
        raise TaskfileError(f"{name} must not contain empty strings")
    return value


def _ensure_env_names(owner: str, name: str, value: Any) -> list[str]:
    names = _ensure_list_str(name, value, non_empty_items=True)
    if not all(_is_valid_env_key(v) for v in names):
        raise TaskfileError(f"task '{owner}' {name} must contain environment variable names")
    return names


def _ensure_workspace_path(owner: str, value: Any) -> str:
    if not _is_non_blank_str(value):
        raise TaskfileError(f"task '{owner}' path must be non-empty string")
    path = PurePosixPath(value)
    if path.is_absolute() or ".." in path.parts:
        raise TaskfileError(f"task '{owner}' path must stay inside the workspace: {value}")
    return value


def _parse_dependency(owner: str, raw: Any) -> Dependency:
    if isinstance(raw, str):
        if not _is_safe_name(raw):
            raise TaskfileError(f"task '{owner}' has invalid dependency name: {raw!r}")
        return Dependency(task=raw)
    if isinstance(raw, dict):
        unknown = set(raw.keys()) - {"task", "args"}
        if unknown:
            raise TaskfileError(f"task '{owner}' dependency has unknown fields: {sorted(unknown)}")
        if not _is_safe_name(raw.get("task")):
            raise TaskfileError(f"task '{owner}' dependency.task must be a task name")
        args = _ensure_list_str("dependency.args", raw.get("args", []))
        if not all(_is_str_without_nul(v) for v in args):
            raise TaskfileError(f"task '{owner}' dependency.args must not contain null bytes")
        return Dependency(task=raw["task"], args=tuple(args))
    raise TaskfileError(f"task '{owner}' depends_on entries must be str or mapping")


def _parse_param(owner: str, raw: Any) -> Param:
    if isinstance(raw, str):
        variadic = raw.startswith("*")
        name = raw[1:] if variadic else raw
        default = None
    elif isinstance(raw, dict):
        unknown = set(raw.keys()) - {"name", "default", "variadic"}
        if unknown:
            raise TaskfileError(f"task '{owner}' param has unknown fields: {sorted(unknown)}")
        name = raw.get("name")
        default = raw.get("default")
        variadic = raw.get("variadic", False)
        if not isinstance(variadic, bool):
            raise TaskfileError(f"task '{owner}' param.variadic must be bool")
        if default is not None:
            if isinstance(default, bool) or not isinstance(default, (str, int, float)):
                raise TaskfileError(f"task '{owner}' param.default must be a scalar")
            default = str(default)
        if variadic and default is not None:
            raise TaskfileError(f"task '{owner}' variadic param must not have a default")
    else:
        raise TaskfileError(f"task '{owner}' params entries must be str or mapping")
    if not isinstance(name, str) or _PARAM_NAME_PATTERN.fullmatch(name) is None:
        raise TaskfileError(f"task '{owner}' has invalid param name: {name!r}")
    return Param(name=name, default=default, variadic=variadic)


def _validate_params(owner: str, params: list[Param]) -> None:
    names = [param.name for param in params]
    if len(set(names)) != len(names):
        raise TaskfileError(f"task '{owner}' has duplicate params")
    for idx, param in enumerate(params):
        if param.variadic and idx != len(params) - 1:
            raise TaskfileError(f"task '{owner}' variadic param '{param.name}' must be last")
    seen_default = False
    for param in params:
        if param.default is not None:
            seen_default = True
        elif param.required and seen_default:
            raise TaskfileError(
                f"task '{owner}' required param '{param.name}' follows a param with a default"
            )


def _parse_step(owner: str, raw: Any) -> Step:
    if not isinstance(raw, dict) or any(not isinstance(key, str) for key in raw):
        raise TaskfileError(f"task '{owner}' step must be mapping")
    kinds = set(raw.keys()) & _STEP_KINDS
    if len(kinds) != 1:
        raise TaskfileError(f"task '{owner}' step must have exactly one of {sorted(_STEP_KINDS)}")
    kind = kinds.pop()

    if kind == "run":
        unknown = set(raw.keys()) - {"run", "cwd"}
        if unknown:
            raise TaskfileError(f"task '{owner}' run step has unknown fields: {sorted(unknown)}")
        cwd = raw.get("cwd")
        if cwd is not None and not _is_non_blank_str(cwd):
            raise TaskfileError(f"task '{owner}' step cwd must be non-empty string")
        return RunStep(cmd=normalize_cmd(raw["run"]), cwd=cwd)

    if set(raw.keys()) != {kind}:
        raise TaskfileError(f"task '{owner}' {kind} step has unknown fields")
    if kind == "require_env":
        names = _ensure_env_names(owner, "require_env", raw["require_env"])
        if not names:
            raise TaskfileError(f"task '{owner}' require_env must not be empty")
        return RequireEnvStep(names=names)
    if kind == "remove":
        paths = raw["remove"]
        if isinstance(paths, str):
            paths = [paths]
        if not isinstance(paths, list) or not paths:
            raise TaskfileError(f"task '{owner}' remove must be a path or non-empty list of paths")
        return RemoveStep(paths=[_ensure_workspace_path(owner, p) for p in paths])

    spec = raw["write"]
    if not isinstance(spec, dict) or set(spec.keys()) - _WRITE_KEYS:
        raise TaskfileError(
            f"task '{owner}' write must be mapping of path/content/executable/parents"
        )
    content = spec.get("content", "")
    if not _is_str_without_nul(content):
        raise TaskfileError(f"task '{owner}' write.content must be string")
    executable = spec.get("executable", False)
    if not isinstance(executable, bool):
        raise TaskfileError(f"task '{owner}' write.executable must be bool")
    parents = spec.get("parents", True)
    if not isinstance(parents, bool):
        raise TaskfileError(f"task '{owner}' write.parents must be bool")
    return WriteStep(
        path=_ensure_workspace_path(owner, spec.get("path")),
        content=content,
        executable=executable,
        parents=parents,
    )


def _parse_task(raw: Any) -> TaskSpec:
    if not isinstance(raw, dict):
        raise TaskfileError("task must be mapping")
    if any(not isinstance(key, str) for key in raw):
        raise TaskfileError("task fields must use string keys")
    if "name" not in raw or not _is_non_blank_str(raw["name"]):
        raise TaskfileError("task.name is required and must be non-empty string")
    name = raw["name"]
    if len(name) > _TASK_NAME_MAX_LEN:
        raise TaskfileError(f"task.name must be <= {_TASK_NAME_MAX_LEN} characters")
    if not _is_safe_name(name):
        raise TaskfileError("task.name must match ^[A-Za-z0-9][A-Za-z0-9._-]*$")
    unknown = set(raw.keys()) - _ALLOWED_TASK_KEYS
    if unknown:
        raise TaskfileError(f"task '{name}' has unknown fields: {sorted(unknown)}")

    description = raw.get("description")
    if description is not None and not _is_non_blank_str(description):
        raise TaskfileError(f"task '{name}' description must be non-empty string")

    raw_deps = raw.get("depends_on") or []
    if not isinstance(raw_deps, list):
        raise TaskfileError(f"task '{name}' depends_on must be a list")
    depends_on = [_parse_dependency(name, dep) for dep in raw_deps]

    raw_params = raw.get("params") or []
    if not isinstance(raw_params, list):
        raise TaskfileError(f"task '{name}' params must be a list")
    params = [_parse_param(name, param) for param in raw_params]
    _validate_params(name, params)

    requires_env = _ensure_env_names(name, "requires_env", raw.get("requires_env"))

    cwd = raw.get("cwd")
    if cwd is not None and not _is_non_blank_str(cwd):
        raise TaskfileError(f"task '{name}' cwd must be non-empty string")

    env = raw.get("env")
    if env is not None and (
        not isinstance(env, dict)
        or not all(_is_valid_env_key(k) and _is_str_without_nul(v) for k, v in env.items())
    ):
        raise TaskfileError(f"task '{name}' env must be dict[str, str]")

    raw_steps = raw.get("steps") or []
    if not isinstance(raw_steps, list):
        raise TaskfileError(f"task '{name}' steps must be a list")
    steps = [_parse_step(name, step) for step in raw_steps]

    declared = {param.name for param in params}
    for step in steps:
        if not isinstance(step, RunStep):
            continue
        for token in step.cmd:
            undeclared = [p for p in placeholder_names(token) if p not in declared]
            if undeclared:
                raise TaskfileError(f"task '{name}' uses undeclared params: {undeclared}")

    return TaskSpec(
        name=name,
        description=description,
        depends_on=depends_on,
        params=params,
        requires_env=requires_env,
        cwd=cwd,
        env=env,
        steps=steps,
    )


def parse_taskfile(raw: Any) -> TaskfileSpec:
    if not isinstance(raw, dict):
        raise TaskfileError("taskfile root must be a mapping")
    if any(not isinstance(key, str) for key in raw):
        raise TaskfileError("taskfile root keys must be strings")
    unknown_root = set(raw.keys()) - _ALLOWED_ROOT_KEYS
    if unknown_root:
        raise TaskfileError(f"taskfile contains unknown fields: {sorted(unknown_root)}")

    raw_tasks = raw.get("tasks")
    if not isinstance(raw_tasks, list) or not raw_tasks:
        raise TaskfileError("taskfile.tasks must be a non-empty list")

    env_file = raw.get("env_file")
    if env_file is not None and not _is_non_blank_str(env_file):
        raise TaskfileError("taskfile.env_file must be non-empty string when provided")

    return TaskfileSpec(tasks=[_parse_task(task) for task in raw_tasks], env_file=env_file)


def load_taskfile(path: Path) -> TaskfileSpec:
    if has_symlink_ancestor(path):
        raise TaskfileError(f"taskfile path must not include symlink: {path}")
    try:
        meta = path.lstat()
    except FileNotFoundError:
        meta = None
    except (OSError, RuntimeError) as exc:
        raise TaskfileError(f"failed to read taskfile: {path}") from exc

    if meta is not None:
        if stat.S_ISLNK(meta.st_mode):
            raise TaskfileError(f"taskfile must not be symlink: {path}")
        if not stat.S_ISREG(meta.st_mode):
            raise TaskfileError(f"failed to read taskfile: {path}")

    open_flags = os.O_RDONLY
    if hasattr(os, "O_NONBLOCK"):
        open_flags |= os.O_NONBLOCK
    if hasattr(os, "O_NOFOLLOW"):
        open_flags |= os.O_NOFOLLOW
    fd: int | None = None
    try:
        fd = os.open(str(path), open_flags)
        if not stat.S_ISREG(os.fstat(fd).st_mode):
            raise TaskfileError(f"taskfile must be regular file: {path}")
        with os.fdopen(fd, "r", encoding="utf-8") as f:
            fd = None
            content = f.read()
    except FileNotFoundError as exc:
        raise TaskfileError(f"taskfile not found: {path}") from exc
    except UnicodeError as exc:
        raise TaskfileError(f"failed to decode taskfile as utf-8: {path}") from exc
    except OSError as exc:
        if exc.errno == errno.ELOOP:
            raise TaskfileError(f"taskfile must not be symlink: {path}") from exc
        raise TaskfileError(f"failed to read taskfile: {path}") from exc
    finally:
        if fd is not None:
            with suppress(OSError):
                os.close(fd)

    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise TaskfileError(f"failed to parse yaml: {exc}") from exc
    return parse_taskfile(raw)


def load_builtin_taskfile() -> TaskfileSpec:
    try:
        content = DEFAULT_TASKFILE.read_text(encoding="utf-8")
    except OSError as exc:
        raise TaskfileError(f"failed to read built-in taskfile: {DEFAULT_TASKFILE}") from exc
    return parse_taskfile(yaml.safe_load(content))


def discover_taskfile(workdir: Path, explicit: Path | None = None) -> Path | None:
    """Return the taskfile to load; ``None`` selects the built-in pipeline."""
    if explicit is not None:
        return explicit
    candidate = workdir / PROJECT_TASKFILE_NAME
    if candidate.is_file():
        return candidate
    return None
