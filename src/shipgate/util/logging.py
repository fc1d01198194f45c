from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure the root handler once; ``SHIPGATE_LOG_LEVEL`` picks the level by default."""
    global _configured
    name = (level or os.getenv("SHIPGATE_LOG_LEVEL", "WARNING")).upper()
    resolved = getattr(logging, name, logging.WARNING)
    if _configured:
        logging.getLogger("shipgate").setLevel(resolved)
        return
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)
    logging.getLogger("shipgate").setLevel(resolved)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
