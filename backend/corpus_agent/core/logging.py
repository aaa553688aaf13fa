"""Logging module for the corpus agent.

All modules log through a ``ContextualLogger``: a ``logging.LoggerAdapter`` that
carries structured dimensions (filesystem, file, source, task id...) and attaches
them to every record it emits.

Usage:
    from corpus_agent.core.logging import logger

    logger.with_context(file="watched/1.txt").info("indexing new document")
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, Tuple

from rich.console import Console
from rich.logging import RichHandler

from corpus_agent.core.config import settings

ROOT_LOGGER_NAME = "corpus_agent"


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter carrying structured dimensions."""

    def __init__(self, logger: logging.Logger, dimensions: Optional[Dict[str, Any]] = None):
        """Initialize the adapter.

        Args:
            logger: Underlying standard library logger
            dimensions: Key/value pairs attached to every record
        """
        super().__init__(logger, {})
        self.dimensions: Dict[str, Any] = dict(dimensions or {})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping]:
        """Merge dimensions into the record's ``extra`` mapping."""
        extra = dict(kwargs.get("extra") or {})
        extra["dimensions"] = {**self.dimensions, **extra.get("dimensions", {})}
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(self, **dimensions: Any) -> "ContextualLogger":
        """Return a new logger with additional dimensions.

        Dimensions whose value is ``None`` or an empty string are dropped.
        """
        merged = dict(self.dimensions)
        merged.update({k: v for k, v in dimensions.items() if v is not None and v != ""})
        return ContextualLogger(self.logger, merged)


class _JSONFormatter(logging.Formatter):
    """Render each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(getattr(record, "dimensions", {}) or {})
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class _DimensionsFormatter(logging.Formatter):
    """Append ``key=value`` dimensions after the message."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        dimensions = getattr(record, "dimensions", None)
        if not dimensions:
            return message
        rendered = " ".join(f"{key}={value}" for key, value in dimensions.items())
        return f"{message} ({rendered})"


class LoggerConfigurator:
    """Configure handlers once and hand out contextual loggers."""

    _configured = False

    @classmethod
    def setup(cls, level: Optional[str] = None, fmt: Optional[str] = None) -> None:
        """Install the package handler.

        Args:
            level: Log level, defaults to ``settings.LOG_LEVEL``
            fmt: ``rich`` or ``json``, defaults to ``settings.LOG_FORMAT``
        """
        root = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in list(root.handlers):
            root.removeHandler(handler)

        fmt = fmt or settings.LOG_FORMAT
        if fmt == "json":
            handler: logging.Handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(_JSONFormatter())
        else:
            handler = RichHandler(
                console=Console(stderr=True),
                show_path=False,
                markup=False,
                rich_tracebacks=True,
            )
            handler.setFormatter(_DimensionsFormatter("%(message)s"))

        root.addHandler(handler)
        root.setLevel((level or settings.LOG_LEVEL).upper())
        root.propagate = False
        cls._configured = True

    @classmethod
    def configure_logger(
        cls, name: str, dimensions: Optional[Dict[str, Any]] = None
    ) -> ContextualLogger:
        """Build a contextual logger.

        Args:
            name: Logger name, usually a dotted module path under ``corpus_agent``
            dimensions: Initial dimensions

        Returns:
            ContextualLogger bound to ``name``
        """
        if not cls._configured:
            cls.setup()
        return ContextualLogger(logging.getLogger(name), dimensions)


logger = LoggerConfigurator.configure_logger(ROOT_LOGGER_NAME)
