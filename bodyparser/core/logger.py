"""Structured logging for the parse engine and the demo service."""

import logging
from dataclasses import dataclass, field
from enum import StrEnum

import orjson
import structlog
from asgi_correlation_id import correlation_id
from beartype import beartype

from bodyparser.core.settings import settings


class LoggerError(Exception):
    """Raised when a log call carries invalid extras."""


class LogLevel(StrEnum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogIcon(StrEnum):
    """Icons prepended to events in DEBUG mode."""

    DEFAULT = "📋"

    # Lifecycle
    START = "🚀"
    SUCCESS = "✅"
    HEALTHCHECK = "❤️"

    # Decoding
    PROCESSING = "🔄"
    STREAMING = "📡"
    COMPLETE = "✨"

    # Storage
    FILE = "📄"
    UPLOAD = "📤"
    SKIP = "⏭️"

    # Limits, aborts and failures
    EXHAUSTION = "😵"
    FORBIDDEN = "🚫"
    WARNING = "⚠️"
    ERROR = "❌"


@dataclass
class LoggerConfig:
    debug: bool = field(default_factory=lambda: settings.DEBUG)
    log_level: LogLevel = field(default_factory=lambda: LogLevel(settings.LOG_LEVEL.upper()))
    max_event_length: int = 80


def add_correlation_id(logger, method_name: str, event_dict: dict) -> dict:
    """Tag the event with the correlation id of the parse or request in flight."""
    if request_id := correlation_id.get():
        event_dict.setdefault("correlation_id", request_id)
    return event_dict


class BusinessRulesProcessor:
    """Normalize event messages.

    Events are uppercased and cut to ``max_event_length``; the ``icon`` extra
    must be a ``LogIcon`` and is only rendered in DEBUG mode.
    """

    def __init__(self, debug: bool, max_event_length: int = 80) -> None:
        self.debug = debug
        self.max_event_length = max_event_length

    @beartype
    def __call__(self, logger, name: str, event_dict: dict) -> dict:
        raw_icon = event_dict.pop("icon", LogIcon.DEFAULT)
        try:
            icon = LogIcon(raw_icon)
        except ValueError as err:
            raise LoggerError(f"Unknown log icon: {raw_icon!r}") from err

        event = str(event_dict.get("event", ""))[: self.max_event_length].upper()
        event_dict["event"] = f"{icon.value} {event}" if self.debug else event
        return event_dict


def dev_pipeline_renderer(logger, name: str, event_dict: dict) -> str:
    """Render ``timestamp | LEVEL | EVENT | key=value ... | file:line``."""
    timestamp = event_dict.pop("timestamp", "")
    level = str(event_dict.pop("level", LogLevel.INFO.value)).upper()
    event = event_dict.pop("event", "")
    filename = event_dict.pop("filename", "")
    lineno = event_dict.pop("lineno", "")

    extras = " | ".join(f"{key}={value}" for key, value in event_dict.items())
    location = f"{filename}:{lineno}" if filename else ""
    return " | ".join(part for part in (timestamp, level, event, extras, location) if part)


def build_processors(config: LoggerConfig) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
            additional_ignores=["logger"],
        ),
        BusinessRulesProcessor(debug=config.debug, max_event_length=config.max_event_length),
        add_correlation_id,
    ]
    if config.debug:
        return [*processors, dev_pipeline_renderer]
    return [
        *processors,
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(serializer=orjson.dumps),
    ]


def setup_logging(config: LoggerConfig) -> None:
    structlog.configure(
        processors=build_processors(config),
        logger_factory=structlog.BytesLoggerFactory() if not config.debug else structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelNamesMapping()[config.log_level]),
        cache_logger_on_first_use=True,
    )


setup_logging(LoggerConfig())

logger = structlog.get_logger()
