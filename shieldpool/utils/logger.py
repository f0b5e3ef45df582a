"""
Logging for the shielded pool.

Every subsystem logs under the "shieldpool" namespace (shieldpool.smt,
shieldpool.pool.escrow, shieldpool.storage, ...). Console output is colored
with colorlog; the CLI can add a plain file under the configured log_dir.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import colorlog

LOG_NAMESPACE = "shieldpool"
LOG_FILE_NAME = "shieldpool.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
CONSOLE_FORMAT = "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s"
LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


class PoolLogger:
    """Owns the handlers of the shieldpool logger."""

    _initialized = False
    _log_dir: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[str] = None,
        log_to_file: bool = True,
        force: bool = False,
    ):
        """
        Attach a colored console handler and optionally a log file.

        Args:
            level: Threshold for every shieldpool logger
            log_dir: Directory for shieldpool.log, ./logs when None
            log_to_file: Whether to add the file handler
            force: Replace an earlier configuration instead of keeping it
        """
        if cls._initialized and not force:
            return

        root_logger = logging.getLogger(LOG_NAMESPACE)
        root_logger.setLevel(level)
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

        console_handler = colorlog.StreamHandler(sys.stdout)
        console_handler.setFormatter(
            colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LEVEL_COLORS)
        )
        root_logger.addHandler(console_handler)

        cls._log_dir = None
        if log_to_file:
            cls._log_dir = Path(log_dir) if log_dir else Path("logs")
            cls._log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(cls._log_dir / LOG_FILE_NAME)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
            root_logger.addHandler(file_handler)

        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Logger for a subsystem, e.g. 'smt' or 'pool.escrow'."""
        if not cls._initialized:
            # Library use: console only, the CLI opts into file logging
            cls.setup(log_to_file=False)

        return logging.getLogger(f"{LOG_NAMESPACE}.{name}")


def get_logger(name: str) -> logging.Logger:
    return PoolLogger.get_logger(name)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    log_to_file: bool = True,
    force: bool = False,
):
    PoolLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file, force=force)
