"""Rich logging for the plan engine, sharing one stderr console with progress bars."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console

stderr_console = Console(stderr=True)

# Libraries whose INFO chatter drowns out pipeline progress.
NOISY_LOGGERS = ("httpx", "httpcore")


def _resolve_level(level: str) -> int:
    return getattr(logging, level.upper(), logging.INFO)


def setup_logging(level: str = "info", log_file: Path | None = None) -> logging.Logger:
    """Attach a RichHandler (and optionally a file handler) to the plan_engine logger.

    Calling this again replaces the previous handlers, so the CLI and tests
    can reconfigure freely.
    """
    from rich.logging import RichHandler

    resolved = _resolve_level(level)
    logger = logging.getLogger("plan_engine")
    logger.setLevel(min(resolved, logging.DEBUG) if log_file else resolved)
    logger.handlers.clear()

    rich_handler = RichHandler(
        console=stderr_console,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(resolved)
    logger.addHandler(rich_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s")
        )
        logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(
            logging.DEBUG if resolved <= logging.DEBUG else logging.WARNING
        )

    return logger
