from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional


def level_for(*, verbose: bool = False, debug: bool = False) -> int:
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    return logging.WARNING


def configure_logging(level: int = logging.WARNING, log_path: Optional[str] = None) -> None:
    """Configure the root logger for the command line.

    Messages go to stdout; with log_path they are also appended to that file.
    Calling this again only adjusts the level.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_vimball_configured", False):
        return

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    handlers: list[logging.Handler] = []
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(fmt)
    handlers.append(console)

    if log_path:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(fmt)
        handlers.append(file_handler)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_vimball_configured", True)
    logging.getLogger(__name__).debug("Logging initialized (level=%s, file=%s)", level, log_path)
