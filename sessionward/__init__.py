"""
sessionward
===========

Server-side session lifecycle management with a pluggable, concurrency-safe
session store.

Sessions are governed by three independent clocks: an idle timeout reset on
every request, a renewal timeout after which the session identifier is rotated,
and an absolute lifetime that is never extended.

Quick start:
    >>> from sessionward import SessionLifecycleManager, SessionStore, InMemoryBackend
    >>> manager = SessionLifecycleManager("app", SessionStore(InMemoryBackend()))
    >>> record = manager.create_session({"user_id": "42"})
    >>> record = manager.process_request(record.id)
"""

__version__ = "1.0.0"

from sessionward.session import (
    ContextKey,
    DecodeError,
    DuplicateNamespaceError,
    EncodeError,
    NamespaceRegistry,
    NotFoundError,
    RequestContext,
    RotationFailedError,
    SessionCodec,
    SessionContextAdapter,
    SessionCookie,
    SessionError,
    SessionInvalidError,
    SessionLifecycleManager,
    SessionRecord,
    SessionState,
    SessionStatus,
    SessionStore,
    StoreIOError,
    StoreTimeoutError,
    UnsupportedTypeError,
    get_namespace_registry,
)
from sessionward.cache import InMemoryBackend, RedisBackend, SessionBackend, create_backend
from sessionward.config import ConfigurationError, LifecycleSettings, get_config
from sessionward.factory import configure_logging, create_manager

__all__ = [
    '__version__',
    'ContextKey',
    'DecodeError',
    'DuplicateNamespaceError',
    'EncodeError',
    'NamespaceRegistry',
    'NotFoundError',
    'RequestContext',
    'RotationFailedError',
    'SessionCodec',
    'SessionContextAdapter',
    'SessionCookie',
    'SessionError',
    'SessionInvalidError',
    'SessionLifecycleManager',
    'SessionRecord',
    'SessionState',
    'SessionStatus',
    'SessionStore',
    'StoreIOError',
    'StoreTimeoutError',
    'UnsupportedTypeError',
    'get_namespace_registry',
    'InMemoryBackend',
    'RedisBackend',
    'SessionBackend',
    'create_backend',
    'ConfigurationError',
    'LifecycleSettings',
    'get_config',
    'configure_logging',
    'create_manager',
]
