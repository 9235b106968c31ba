# storefront_search/config/logging_config.py

"""Per-run timestamped logging configuration for storefront_search.

Each application launch creates a dedicated log file inside ``logs/``,
named with the launch timestamp (e.g. ``logs/run_20260214_153045.log``).
All ``storefront_search.*`` loggers route through this file handler so
that cache hits, rate fallbacks and classification decisions from every
module land in the same per-run log.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from storefront_search.config.settings import Settings

_DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(module)s:%(funcName)s:%(lineno)d | "
    "%(message)s"
)

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(name: str) -> int:
    """Map a level name such as ``"info"`` to its numeric value."""
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.DEBUG


def setup_logging(level: str | None = None) -> Path:
    """Initialise the root ``storefront_search`` logger for the current run.

    Args:
        level: Optional override for the file handler level. Defaults to
            :attr:`Settings.LOG_LEVEL`.

    Returns:
        The :class:`~pathlib.Path` to the log file created for this run.
    """
    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"run_{timestamp}.log"

    root_logger = logging.getLogger("storefront_search")
    root_logger.setLevel(logging.DEBUG)

    # Prevent duplicate handlers on repeated calls (e.g. tests)
    if root_logger.handlers:
        return log_file

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(_resolve_level(level or Settings.LOG_LEVEL))
    file_handler.setFormatter(
        logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)
    )

    # Console only carries warnings so stdout stays clean for JSON
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    root_logger.info("Logging initialised, log file: %s", log_file)

    return log_file
