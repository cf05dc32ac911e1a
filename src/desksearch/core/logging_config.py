"""Logging setup for desksearch.

desksearch usually runs inside a host helpdesk application, so handlers are
attached to the ``desksearch`` package logger and the host's root logging is
left as it is. The CLI calls ``setup_logging`` once at startup.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from logging.handlers import RotatingFileHandler

from rich.logging import RichHandler


PACKAGE_LOGGER = "desksearch"

# HTTP client loggers used by the Meilisearch backend; every request is
# logged at INFO.
_NOISY_LOGGERS: tuple[str, ...] = (
    "httpx",
    "httpcore",
)


@dataclass
class LogConfig:
    """Logging section of the configuration."""

    level: str = "INFO"
    file_enabled: bool = True
    file_path: str = "~/.desksearch/logs/desksearch.log"
    file_max_bytes: int = 10 * 1024 * 1024
    file_backup_count: int = 5
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    use_rich_console: bool = True
    quiet_third_party: bool = True
    propagate: bool = False

    def __post_init__(self) -> None:
        if not isinstance(logging.getLevelName(str(self.level).upper()), int):
            raise ValueError(f"Unknown log level: {self.level!r}")

    @property
    def level_number(self) -> int:
        return logging.getLevelName(str(self.level).upper())


def _file_handler(config: LogConfig, formatter: logging.Formatter) -> RotatingFileHandler:
    log_path = Path(config.file_path).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=config.file_max_bytes,
        backupCount=config.file_backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def _console_handler(config: LogConfig, formatter: logging.Formatter) -> logging.Handler:
    if config.use_rich_console:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
    return handler


def setup_logging(config: LogConfig) -> logging.Logger:
    """
    Point the ``desksearch`` logger at a rotating file and the console.

    Handlers from an earlier call are closed and replaced, so calling this
    again with a new config is safe.

    Args:
        config: Logging configuration

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(config.level_number)

    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(config.format)
    if config.file_enabled:
        package_logger.addHandler(_file_handler(config, formatter))
    package_logger.addHandler(_console_handler(config, formatter))
    package_logger.propagate = config.propagate

    if config.quiet_third_party:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return package_logger


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name``, placed under the ``desksearch`` package logger.

    ``__name__`` of a desksearch module is used as is; other names are
    prefixed so their records reach the handlers ``setup_logging`` installs.
    """
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
