"""Logging setup shared by the API, the CLI and the agent loop."""

import logging
import os
import sys
from collections.abc import MutableMapping
from typing import Any

from pydantic import BaseModel

from automatron.errors import ConfigurationError

QUIET_LOGGERS = ("anthropic", "httpx", "httpcore", "mcp", "uvicorn.access")


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    quiet_loggers: tuple[str, ...] = QUIET_LOGGERS

    @classmethod
    def from_env(cls) -> "LogConfig":
        return cls(level=os.getenv("LOG_LEVEL", "INFO"))


def _level_number(level: str) -> int:
    number = logging.getLevelName(level.upper())
    if not isinstance(number, int):
        raise ConfigurationError("LOG_LEVEL", f"unknown level {level!r}")
    return number


def setup_logging(config: LogConfig | None = None) -> None:
    """Configure the root logger for the process.

    Loggers listed in ``quiet_loggers`` are limited to warnings; the SDK and
    HTTP clients log every request at INFO.
    """
    config = config or LogConfig.from_env()

    logging.basicConfig(
        level=_level_number(config.level),
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        name: Module name (typically __name__)
        level: Explicit level, otherwise LOG_LEVEL from the environment

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(_level_number(level or os.getenv("LOG_LEVEL", "INFO")))
    return logger


class RunLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the id of the agent run it belongs to."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[run {self.extra['run_id']}] {msg}", kwargs


def get_run_logger(logger: logging.Logger, run_id: str) -> RunLoggerAdapter:
    return RunLoggerAdapter(logger, {"run_id": run_id})
