from __future__ import annotations

import stat
from pathlib import Path, PurePosixPath


def has_symlink_ancestor(path: Path, stop: Path | None = None) -> bool:
    """Return True if any parent of ``path`` (below ``stop``, when given) is a symlink.

    Lookup errors other than a missing component count as a symlink.
    """
    current = path.parent
    while stop is None or current != stop:
        try:
            meta = current.lstat()
        except FileNotFoundError:
            pass
        except (OSError, RuntimeError):
            return True
        else:
            if stat.S_ISLNK(meta.st_mode):
                return True
        if current == current.parent:
            return False
        current = current.parent
    return False


def workspace_path(root: Path, relative: str) -> Path:
    """Join a workspace-relative path, refusing anything that escapes ``root``."""
    rel = PurePosixPath(relative)
    if rel.is_absolute() or ".." in rel.parts:
        raise OSError(f"path must stay inside the workspace: {relative}")
    target = root.joinpath(*rel.parts)
    if target == root:
        raise OSError(f"path must not be the workspace root: {relative}")
    if has_symlink_ancestor(target, stop=root):
        raise OSError(f"path must not include symlink: {relative}")
    return target
