"""Environment preconditions for sensitive tasks."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from shipgate.util.errors import MissingEnvironmentError
from shipgate.util.logging import get_logger

logger = get_logger(__name__)


def missing_variables(names: Iterable[str], environ: Mapping[str, str]) -> list[str]:
    return [name for name in names if not environ.get(name)]


def check_required(names: Iterable[str], environ: Mapping[str, str], *, task: str) -> None:
    """Raise for the first variable, in declared order, that is unset or empty."""
    missing = missing_variables(names, environ)
    if missing:
        logger.info("task %s blocked: missing %s", task, ", ".join(missing))
        raise MissingEnvironmentError(missing[0], task)
