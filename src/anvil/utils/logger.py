#!/usr/bin/env python3
"""
Logging utilities for Anvil.

This module provides a centralized logging system with rich console output,
a colored plain-text fallback and a rotating debug log file.
"""

import sys
import logging
import logging.handlers
from pathlib import Path
from typing import Optional, Dict

from colorama import init as colorama_init, Fore, Style
from rich.console import Console
from rich.logging import RichHandler

colorama_init()

LOG_DIR = Path.home() / '.anvil' / 'logs'
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name for plain console output."""

    COLORS = {
        'DEBUG': Fore.CYAN,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.MAGENTA,
    }

    def __init__(self, fmt: str = None, datefmt: str = None, use_colors: bool = True):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)

        original_levelname = record.levelname
        color = self.COLORS.get(record.levelname, '')
        record.levelname = f"{color}{record.levelname}{Style.RESET_ALL}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname


class AnvilLogger:
    """Thin wrapper around a standard library logger with Anvil's handlers."""

    def __init__(self, name: str = 'anvil', rich_console: bool = True):
        self.name = name
        self.logger = logging.getLogger(name)

        # Child loggers propagate to the root 'anvil' logger
        if name != 'anvil':
            return

        self.logger.setLevel(logging.DEBUG)
        if self.logger.handlers:
            return

        self._setup_handlers(rich_console)

    def _setup_handlers(self, rich_console: bool):
        """Setup logging handlers for console and file output."""
        if rich_console:
            console_handler = RichHandler(
                console=Console(stderr=True),
                show_time=False,
                show_path=False,
                rich_tracebacks=True
            )
            console_handler.setFormatter(logging.Formatter("%(message)s"))
        else:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(ColoredFormatter(
                "[%(levelname)s] %(name)s: %(message)s",
                use_colors=sys.stderr.isatty()
            ))

        console_handler.setLevel(logging.WARNING)
        self.logger.addHandler(console_handler)

        self._setup_file_handler()

    def _setup_file_handler(self):
        """Setup the rotating debug log under ~/.anvil/logs."""
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                LOG_DIR / 'anvil.log',
                maxBytes=5 * 1024 * 1024,  # 5MB
                backupCount=5
            )
        except OSError as e:
            self.logger.debug(f"Could not setup file logging: {e}")
            return

        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        self.logger.addHandler(file_handler)

    def set_level(self, level: str):
        """Set the console logging level."""
        log_level = getattr(logging, level.upper(), logging.INFO)
        for handler in self.logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(log_level)

    def debug(self, message: str, *args, **kwargs):
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs):
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs):
        self.logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs):
        self.logger.error(message, *args, **kwargs)

    def exception(self, message: str, *args, **kwargs):
        """Log exception with traceback."""
        self.logger.exception(message, *args, **kwargs)


_loggers: Dict[str, AnvilLogger] = {}


def get_logger(name: str = 'anvil') -> AnvilLogger:
    """Get or create a logger instance."""
    if name not in _loggers:
        if name != 'anvil':
            get_logger('anvil')
        _loggers[name] = AnvilLogger(name)
    return _loggers[name]


def setup_logging(
    level: str = 'WARNING',
    log_file: Optional[Path] = None,
    verbose: bool = False
):
    """Configure the root Anvil logger for a CLI run."""
    if verbose:
        level = 'DEBUG'

    logger = get_logger()
    logger.set_level(level)

    if log_file:
        try:
            log_file = Path(log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
        except OSError as e:
            logger.warning(f"Could not setup custom log file {log_file}: {e}")
            return

        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        logger.logger.addHandler(file_handler)
        logger.debug(f"Logging to file: {log_file}")
