"""
Logging configuration.

Built once from Settings and applied at app construction; components get
their logger from structlog rather than from module-level constants.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

import structlog

from app.core.config import Settings


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "info"
    format: Literal["json", "text"] = "json"

    @classmethod
    def from_settings(cls, settings: Settings) -> "LoggingConfig":
        return cls(level=settings.log_level, format=settings.log_format)


def configure_logging(config: LoggingConfig) -> None:
    """Configure structlog with the given level and renderer."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if config.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.level.upper())
        ),
        cache_logger_on_first_use=False,
    )
