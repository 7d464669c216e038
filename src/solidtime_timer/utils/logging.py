"""Logging configuration for the SolidTime timer client."""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from solidtime_timer.utils.storage import DEFAULT_CONFIG_DIR

LOG_FILE_NAME = "solidtime-timer.log"
QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(log_level: int = logging.INFO, config_dir: Path | None = None) -> Path:
    """Send log records to a file in the config directory and to stderr.

    The console only shows warnings unless ``log_level`` is DEBUG, because
    user-facing notices go through the notifier instead.

    Args:
        log_level: Level for the root logger and the log file.
        config_dir: Directory holding the log file. Defaults to ~/.solidtime-timer/

    Returns:
        Path of the log file.
    """
    config_dir = config_dir or DEFAULT_CONFIG_DIR
    config_dir.mkdir(parents=True, exist_ok=True)
    log_file = config_dir / LOG_FILE_NAME

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(log_level)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(file_handler)

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=log_level <= logging.DEBUG,
    )
    console_handler.setLevel(log_level if log_level <= logging.DEBUG else logging.WARNING)
    root_logger.addHandler(console_handler)

    # both log every request at INFO/DEBUG
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    return log_file
