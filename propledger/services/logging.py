"""Logging configuration for processes embedding the billing engine.

Output goes to stdout and a log file. The level comes from the LOG_LEVEL env
var (falling back to settings.log_level): WARNING for production, DEBUG to
see every rollback and lock acquisition.
"""

import logging
import os
import sys
from pathlib import Path

from propledger.config import settings

# Map string level names to logging constants
LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level(level_name: str | None = None) -> int:
    """Resolve a level name to a logging constant.

    Args:
        level_name: Explicit level; when omitted LOG_LEVEL env var, then
            settings.log_level are consulted

    Returns:
        Logging level constant (default: INFO)
    """
    level_str = (level_name or os.getenv("LOG_LEVEL") or settings.log_level).upper()
    return LOG_LEVEL_MAP.get(level_str, logging.INFO)


def setup_server_logging(log_file: str | None = None, level_name: str | None = None) -> None:
    """
    Configure the root logger.

    Args:
        log_file: Path to log file (default: settings.log_file)
        level_name: Level override (default: LOG_LEVEL env var / settings)

    Behavior:
        - Replaces existing root handlers with a stdout and a file handler
        - Keeps SQLAlchemy engine logging at WARNING unless database_echo is set
    """
    log_path = Path(log_file or settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    log_level = get_log_level(level_name)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove any existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


__all__ = ["get_log_level", "setup_server_logging"]
