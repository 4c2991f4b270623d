"""
Structured Logging Setup using structlog

Configures structlog on top of the standard library logging machinery so that every
module in the package can log key/value events through structlog.get_logger(__name__)
and have them rendered as JSON (production) or human-readable console lines
(development).

Session identifiers are bearer credentials: a dedicated processor masks them in
every event before rendering so logs never contain a usable identifier.
"""

import logging
import logging.config
import os
from typing import Any, Dict, Optional

import structlog
from structlog.types import EventDict, WrappedLogger


# Event keys that carry session identifiers
SESSION_ID_FIELDS = ('session_id', 'old_session_id', 'new_session_id')


class LoggingConfig:
    """Logging configuration read from the environment."""

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'json')  # json, console
    COLORED_CONSOLE_OUTPUT = os.getenv('COLORED_CONSOLE_OUTPUT', 'false').lower() == 'true'
    APPLICATION_NAME = os.getenv('APPLICATION_NAME', 'sessionward')


def mask_session_id(value: Any) -> Any:
    """Keep only enough of an identifier to correlate log lines."""
    if isinstance(value, str) and len(value) > 8:
        return f"{value[:6]}***"
    if isinstance(value, str) and value:
        return "***"
    return value


def mask_session_identifiers(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Mask session identifiers in log entries.

    Args:
        logger: Wrapped logger instance
        method_name: Logging method name
        event_dict: Event dictionary to filter

    Returns:
        Event dictionary with session identifiers masked
    """
    for field in SESSION_ID_FIELDS:
        if field in event_dict:
            event_dict[field] = mask_session_id(event_dict[field])
    return event_dict


def setup_structured_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None
) -> structlog.stdlib.BoundLogger:
    """
    Configure structlog and standard library logging.

    Args:
        log_level: Log level override (defaults to LOG_LEVEL)
        log_format: Renderer override, 'json' or 'console' (defaults to LOG_FORMAT)

    Returns:
        Configured structured logger for the application
    """
    level = (log_level or LoggingConfig.LOG_LEVEL).upper()
    fmt = log_format or LoggingConfig.LOG_FORMAT

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        mask_session_identifiers,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if fmt == 'console':
        processors.append(structlog.dev.ConsoleRenderer(colors=LoggingConfig.COLORED_CONSOLE_OUTPUT))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging_config: Dict[str, Any] = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'plain': {
                'format': '%(message)s'
            }
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'plain',
                'stream': 'ext://sys.stdout'
            }
        },
        'loggers': {
            '': {
                'handlers': ['console'],
                'level': level,
                'propagate': False
            }
        }
    }
    logging.config.dictConfig(logging_config)

    logger = structlog.get_logger(LoggingConfig.APPLICATION_NAME)
    logger.info(
        "Structured logging initialized",
        log_level=level,
        log_format=fmt
    )
    return logger


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance with optional name.

    Args:
        name: Logger name, defaults to application name

    Returns:
        Structured logger
    """
    return structlog.get_logger(name or LoggingConfig.APPLICATION_NAME)


__all__ = [
    'LoggingConfig',
    'mask_session_id',
    'mask_session_identifiers',
    'setup_structured_logging',
    'get_logger',
]
