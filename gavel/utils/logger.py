"""
Logging for Gavel.

All loggers hang off the "gavel" root (gavel.ledger, gavel.settlement,
gavel.oracle, ...). Console output is colored; a rotating file under the
configured log directory is optional and rotates at 5 MB.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import colorlog

ROOT = "gavel"
LINE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

# HTTP client loggers stay at WARNING or above
QUIET_LOGGERS = ("httpx", "httpcore")


class GavelLogger:
    """Owns the handlers on the gavel root logger"""

    _initialized = False
    _log_file: Optional[Path] = None

    @classmethod
    def setup(cls, level: int = logging.INFO, log_dir: Optional[Path] = None, force: bool = False):
        """
        Install console (and optionally file) handlers.

        Args:
            level: Logging level for gavel.* loggers
            log_dir: Directory for gavel.log; console only when None
            force: Replace handlers from an earlier setup
        """
        if cls._initialized and not force:
            return

        root = logging.getLogger(ROOT)
        root.setLevel(level)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

        console = colorlog.StreamHandler(sys.stdout)
        console.setFormatter(colorlog.ColoredFormatter(
            "%(log_color)s" + LINE_FORMAT.replace("%(message)s", "%(reset)s%(message)s"),
            datefmt=DATE_FORMAT,
            log_colors=LEVEL_COLORS,
        ))
        root.addHandler(console)

        cls._log_file = None
        if log_dir is not None:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            cls._log_file = log_dir / "gavel.log"
            file_handler = RotatingFileHandler(cls._log_file, maxBytes=5_000_000, backupCount=3)
            file_handler.setFormatter(logging.Formatter(LINE_FORMAT, datefmt=DATE_FORMAT))
            root.addHandler(file_handler)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        if not cls._initialized:
            cls.setup()
        return logging.getLogger(f"{ROOT}.{name}")


def get_logger(name: str) -> logging.Logger:
    """Logger for a subsystem, e.g. get_logger("settlement")"""
    return GavelLogger.get_logger(name)


def setup_logging(level: int = logging.INFO, log_dir: Optional[Path] = None) -> Optional[Path]:
    """Reconfigure logging (CLI entry point); returns the log file path if any"""
    GavelLogger.setup(level=level, log_dir=log_dir, force=True)
    return GavelLogger._log_file
