"""
Session store backends.

Provides the SessionBackend contract, the in-memory reference backend and the
Redis backend, plus create_backend() selecting one from a configuration object.

Usage:
    >>> from sessionward.config import get_config
    >>> from sessionward.cache import create_backend
    >>> backend = create_backend(get_config('testing'))
"""

import structlog

from sessionward.cache.backends import InMemoryBackend, SessionBackend
from sessionward.cache.client import (
    DEFAULT_KEY_PREFIX,
    RedisBackend,
    create_redis_backend,
    handle_redis_exception,
)
from sessionward.config.settings import BaseConfig, ConfigurationError

logger = structlog.get_logger(__name__)


def create_backend(config: BaseConfig) -> SessionBackend:
    """
    Create the session backend selected by a configuration.

    Args:
        config: Configuration with SESSION_BACKEND and REDIS_* settings

    Returns:
        Configured session backend

    Raises:
        ConfigurationError: If the backend name is unknown
    """
    backend_name = config.SESSION_BACKEND

    if backend_name == 'memory':
        backend: SessionBackend = InMemoryBackend()
    elif backend_name == 'redis':
        backend = create_redis_backend(
            config.REDIS_URL,
            key_prefix=config.REDIS_KEY_PREFIX,
            socket_timeout=config.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=config.REDIS_CONNECT_TIMEOUT,
            retry_attempts=config.REDIS_RETRY_ATTEMPTS,
            retry_backoff=config.REDIS_RETRY_BACKOFF
        )
    else:
        raise ConfigurationError(f"Unsupported session backend '{backend_name}'")

    logger.info("Session backend created", backend=backend.name)
    return backend


__all__ = [
    'SessionBackend',
    'InMemoryBackend',
    'RedisBackend',
    'create_redis_backend',
    'create_backend',
    'handle_redis_exception',
    'DEFAULT_KEY_PREFIX',
]
