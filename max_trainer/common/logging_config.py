from __future__ import annotations

import logging
from pathlib import Path
from typing import Final


DEFAULT_LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
RUN_LOG_NAME: Final[str] = "run.log"


def log_level(verbose: bool) -> int:
    # DEBUG echoes every external command and archive member, like `set -x`.
    return logging.DEBUG if verbose else logging.INFO


def configure_logging(level: int = logging.INFO) -> None:
    """Send log records to stderr.

    Nothing is written to disk here: this runs before DATA_DIR/RESULT_DIR
    are checked. Use attach_run_log once the environment is known to be valid.
    """
    logging.basicConfig(
        level=level,
        format=DEFAULT_LOG_FORMAT,
        handlers=[logging.StreamHandler()],
        force=True,
    )


def attach_run_log(log_dir: str | Path) -> Path:
    """Also write logs to '<log_dir>/run.log', creating log_dir if needed."""
    path = Path(log_dir).expanduser()
    path.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path / RUN_LOG_NAME, encoding="utf-8")
    handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
    logging.getLogger().addHandler(handler)
    return path / RUN_LOG_NAME
