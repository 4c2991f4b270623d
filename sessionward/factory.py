"""
Configuration-driven construction of session lifecycle managers.

Wires a configuration object into the pieces it describes: structured logging
from LOG_LEVEL / LOG_FORMAT, the backend from SESSION_BACKEND and REDIS_*, and a
lifecycle manager for SESSION_NAMESPACE using the configured timeouts.

Usage:
    >>> from sessionward.factory import configure_logging, create_manager
    >>> config = get_config()
    >>> configure_logging(config)
    >>> manager = create_manager(config)
"""

from datetime import datetime
from typing import Callable, Optional

import structlog

from sessionward.cache import create_backend
from sessionward.config.settings import BaseConfig, get_config
from sessionward.monitoring.logging import setup_structured_logging
from sessionward.session.manager import SessionLifecycleManager
from sessionward.session.registry import NamespaceRegistry
from sessionward.session.store import SessionStore

logger = structlog.get_logger(__name__)


def configure_logging(config: Optional[BaseConfig] = None) -> structlog.stdlib.BoundLogger:
    """
    Configure structured logging from a configuration's LOG_LEVEL and LOG_FORMAT.

    Args:
        config: Configuration instance, defaults to get_config()

    Returns:
        Configured structured logger
    """
    config = config or get_config()
    return setup_structured_logging(log_level=config.LOG_LEVEL, log_format=config.LOG_FORMAT)


def create_manager(
    config: Optional[BaseConfig] = None,
    *,
    registry: Optional[NamespaceRegistry] = None,
    clock: Optional[Callable[[], datetime]] = None
) -> SessionLifecycleManager:
    """
    Build a lifecycle manager, store and backend from a configuration.

    Args:
        config: Configuration instance, defaults to get_config()
        registry: Namespace registry, defaults to the process registry
        clock: Optional clock passed to the manager

    Returns:
        Lifecycle manager for config.SESSION_NAMESPACE

    Raises:
        ConfigurationError: If the backend or lifecycle settings are invalid
        DuplicateNamespaceError: If the namespace is already registered
    """
    config = config or get_config()
    backend = create_backend(config)

    try:
        manager = SessionLifecycleManager(
            config.SESSION_NAMESPACE,
            SessionStore(backend),
            config.lifecycle_settings(),
            registry=registry,
            clock=clock
        )
    except Exception:
        backend.close()
        raise

    logger.info(
        "Session manager created from configuration",
        namespace=manager.namespace,
        backend=backend.name
    )
    return manager


__all__ = ['configure_logging', 'create_manager']
