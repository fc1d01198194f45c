from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

from shipgate.util.errors import WorkspaceError
from shipgate.util.logging import get_logger

logger = get_logger(__name__)


def load_env_file(path: Path) -> dict[str, str]:
    """Read KEY=VALUE pairs from a dotenv file; a missing file yields nothing."""
    if not path.is_file():
        return {}
    try:
        values = dotenv_values(path, encoding="utf-8")
    except UnicodeError as exc:
        raise WorkspaceError(f"failed to decode env file as utf-8: {path}") from exc
    except OSError as exc:
        raise WorkspaceError(f"failed to read env file: {path}") from exc
    logger.debug("loaded %d variables from %s", len(values), path)
    return {key: value for key, value in values.items() if value is not None}


@dataclass(frozen=True, slots=True)
class Workspace:
    """Working directory and environment shared by every task of a run.

    Tasks mutate the directory (build output, lockfile) and later tasks read
    it. Nothing guards against two runs using the same directory at once.
    """

    root: Path
    env: dict[str, str] = field(default_factory=dict)
    env_file: Path | None = None

    @classmethod
    def open(
        cls,
        root: Path,
        env_file: str | Path | None = ".env",
        environ: dict[str, str] | None = None,
    ) -> Workspace:
        resolved = root.resolve()
        if not resolved.is_dir():
            raise NotADirectoryError(f"workspace must be a directory: {root}")
        env: dict[str, str] = {}
        env_path: Path | None = None
        if env_file is not None:
            env_path = Path(env_file)
            if not env_path.is_absolute():
                env_path = resolved / env_path
            env.update(load_env_file(env_path))
        env.update(os.environ if environ is None else environ)
        return cls(root=resolved, env=env, env_file=env_path)

    def resolve_cwd(self, *parts: str | None) -> Path:
        cwd = self.root
        for part in parts:
            if part is not None:
                cwd = cwd / part
        return cwd
