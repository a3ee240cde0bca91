from __future__ import annotations

import logging
from pathlib import Path
from typing import Final


DEFAULT_LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_FILE_NAME: Final[str] = "run.log"


def resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def configure_logging(level: int | str = logging.INFO, log_dir: Path | None = None) -> Path | None:
    """Configure standard library logging for CLI runs.

    With log_dir, records also go to '<log_dir>/run.log' (appended across
    invocations), so every resume of a run leaves its history beside the
    checkpoints. Returns the log file path, if any.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_file: Path | None = None
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / LOG_FILE_NAME
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=resolve_level(level), format=DEFAULT_LOG_FORMAT, handlers=handlers, force=True)
    return log_file
