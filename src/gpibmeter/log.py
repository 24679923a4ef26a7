"""Log sinks for the application, built on loguru."""
from __future__ import annotations

import os
import pathlib
import sys
from typing import Optional

from loguru import logger

DEFAULT_LOGLEVEL = "INFO"


def log_default_path() -> str:
    return str(pathlib.Path.home().joinpath(".gpibmeter", "gpibmeter.log"))


def start_log(
    log_to_file: bool = True,
    log_to_stdout: bool = False,
    log_path: Optional[str] = None,
    clear_prev: bool = False,
    log_level: str = DEFAULT_LOGLEVEL,
) -> None:
    if log_path is None or log_path == "":
        log_path = log_default_path()
    else:
        log_path = os.path.abspath(log_path)

    if clear_prev:
        clear_log(log_path)

    # drop loguru's default stderr sink
    logger.remove()

    if log_to_file:
        logger.add(log_path, level=log_level, enqueue=True, colorize=False)
    if log_to_stdout:
        logger.add(sys.stderr, level=log_level, enqueue=True, colorize=True)
    if log_to_file:
        logger.info("Log started at {}", log_path)
    else:
        logger.info("Log started.")


def clear_log(log_path: str) -> None:
    if os.path.exists(log_path):
        try:
            os.remove(log_path)
        except PermissionError:
            logger.error("Could not clear log file {}. Permission denied. Continuing.", log_path)


def shutdown_log() -> None:
    logger.info("Closing down log.")
    logger.remove()
