"""
Session lifecycle package.

Exports the session data model, codec, store, lifecycle manager, namespace
registry and context adapter.
"""

from sessionward.session.exceptions import (
    HTTP_STATUS_CODES,
    DecodeError,
    DuplicateNamespaceError,
    EncodeError,
    NotFoundError,
    RotationFailedError,
    SessionError,
    SessionErrorCode,
    SessionInvalidError,
    StoreIOError,
    StoreTimeoutError,
    UnsupportedTypeError,
)
from sessionward.session.models import (
    SessionCookie,
    SessionRecord,
    SessionState,
    SessionStatus,
    SessionValue,
)
from sessionward.session.codec import SessionCodec
from sessionward.session.context import (
    ContextKey,
    RequestContext,
    SessionContextAdapter,
    derive_context_key,
)
from sessionward.session.registry import NamespaceRegistry, get_namespace_registry
from sessionward.session.store import SessionStore
from sessionward.session.manager import SessionLifecycleManager

__all__ = [
    'HTTP_STATUS_CODES',
    'DecodeError',
    'DuplicateNamespaceError',
    'EncodeError',
    'NotFoundError',
    'RotationFailedError',
    'SessionError',
    'SessionErrorCode',
    'SessionInvalidError',
    'StoreIOError',
    'StoreTimeoutError',
    'UnsupportedTypeError',
    'SessionCookie',
    'SessionRecord',
    'SessionState',
    'SessionStatus',
    'SessionValue',
    'SessionCodec',
    'ContextKey',
    'RequestContext',
    'SessionContextAdapter',
    'derive_context_key',
    'NamespaceRegistry',
    'get_namespace_registry',
    'SessionStore',
    'SessionLifecycleManager',
]
