"""
Idle Guild Logging Subsystem

Purpose
-------
One logging stack for the whole process:

- Console output: JSON lines in production, colored text in a dev terminal.
- Optional daily-rotated JSON file.
- Records pass through a bounded queue so handlers never block the event loop.
- `log_context()` binds guild / owner / action fields to every record emitted
  inside the block (ContextVar based, so concurrent tasks do not mix).

Design Decisions
----------------
- Everything passed through `extra={...}` lands in the JSON `extra` object.
- When the queue is full, records are dropped and counted rather than blocking.
- Third-party chatter (discord, sqlalchemy, aiosqlite) is capped at WARNING.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional

from idleguild.core.config.config import Config

_bound_fields: ContextVar[Mapping[str, Any]] = ContextVar("idleguild_log_fields", default={})

CONTEXT_FIELDS = ("guild_id", "owner_id", "action", "component")

# Attributes every LogRecord carries; anything else arrived through `extra`.
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", *CONTEXT_FIELDS}

_QUIET_LOGGERS = ("discord", "sqlalchemy.engine", "aiosqlite", "asyncio")


@dataclass(frozen=True)
class LoggingSettings:
    level: int
    json_output: bool
    colors: bool
    to_file: bool
    logs_dir: Path
    environment: str
    queue_size: int = 10_000
    console_format: str = "%(asctime)s | %(levelname)-8s | %(name)-34s | %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_name: str = "idleguild.json.log"

    @classmethod
    def from_config(cls) -> "LoggingSettings":
        environment = str(Config.ENVIRONMENT).lower()
        production = environment == "production"
        json_output = production if Config.LOG_JSON is None else bool(Config.LOG_JSON)
        return cls(
            level=getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO),
            json_output=json_output,
            colors=not json_output and sys.stdout.isatty(),
            to_file=bool(Config.LOG_TO_FILE),
            logs_dir=Path(Config.LOGS_DIR).resolve(),
            environment=environment,
        )


# ============================================================================
# Filters & Formatters
# ============================================================================


class GameContextFilter(logging.Filter):
    """Copies the bound context fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        bound = _bound_fields.get()
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, bound.get(name))
        return True


class ConsoleFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: "\033[90m",
        logging.INFO: "\033[94m",
        logging.WARNING: "\033[93m",
        logging.ERROR: "\033[91m",
        logging.CRITICAL: "\033[1;91m",
    }

    def __init__(self, settings: LoggingSettings) -> None:
        super().__init__(fmt=settings.console_format, datefmt=settings.date_format)
        self._colors = settings.colors

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        line = super().format(record)
        guild_id = getattr(record, "guild_id", None)
        if guild_id is not None:
            line = f"{line} [guild={guild_id}]"
        if self._colors and record.levelno in self.LEVEL_COLORS:
            return f"{self.LEVEL_COLORS[record.levelno]}{line}\033[0m"
        return line


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record; context fields at top level, extras nested."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value

        extra = {key: value for key, value in vars(record).items() if key not in _RESERVED and not key.startswith("_")}
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class DroppingQueueHandler(QueueHandler):
    dropped = 0

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            DroppingQueueHandler.dropped += 1


# ============================================================================
# Setup / Teardown
# ============================================================================

_listener: Optional[QueueListener] = None
_queue_handler: Optional[DroppingQueueHandler] = None


def _handlers(settings: LoggingSettings) -> list:
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(JsonLineFormatter() if settings.json_output else ConsoleFormatter(settings))
    handlers = [console]

    if settings.to_file:
        settings.logs_dir.mkdir(parents=True, exist_ok=True)
        daily = TimedRotatingFileHandler(
            filename=str(settings.logs_dir / settings.file_name),
            when="midnight",
            backupCount=1,
            encoding="utf-8",
            utc=True,
        )
        daily.setFormatter(JsonLineFormatter())
        handlers.append(daily)

    for handler in handlers:
        handler.setLevel(settings.level)
    return handlers


def setup_logging(settings: Optional[LoggingSettings] = None) -> None:
    """Install the queue-backed handlers on the root logger (idempotent)."""
    global _listener, _queue_handler

    if _queue_handler is not None:
        return
    settings = settings or LoggingSettings.from_config()

    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(settings.queue_size)
    _listener = QueueListener(log_queue, *_handlers(settings), respect_handler_level=True)
    _listener.start()

    _queue_handler = DroppingQueueHandler(log_queue)
    _queue_handler.addFilter(GameContextFilter())
    root = logging.getLogger()
    root.setLevel(settings.level)
    root.addHandler(_queue_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": settings.environment,
            "level": logging.getLevelName(settings.level),
            "json": settings.json_output,
            "to_file": settings.to_file,
        },
    )


def shutdown_logging() -> None:
    """Flush queued records and detach the handlers."""
    global _listener, _queue_handler

    if _listener is not None:
        _listener.stop()
        _listener = None
    if _queue_handler is not None:
        logging.getLogger().removeHandler(_queue_handler)
        _queue_handler.close()
        _queue_handler = None


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


@contextmanager
def log_context(**fields: Any) -> Iterator[Mapping[str, Any]]:
    """
    Bind context fields for the duration of the block.

    Example
    -------
    >>> with log_context(component="sweeper", action="challenges"):
    ...     await battles.sweep_challenges()
    """
    merged = {**_bound_fields.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _bound_fields.set(merged)
    try:
        yield merged
    finally:
        _bound_fields.reset(token)


def current_log_context() -> Dict[str, Any]:
    return dict(_bound_fields.get())


setup_logging()
