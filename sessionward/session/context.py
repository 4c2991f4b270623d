"""
Request context propagation for session records.

A RequestContext is an immutable mapping shaped like a parent chain: with_value()
returns a new context holding one extra key and delegating every other lookup to
its parent, so extending a context never disturbs values that were already
attached. The session adapter stores a record under a ContextKey derived from the
manager namespace; ContextKey is its own type, so it never collides with plain
string keys set by other middleware.
"""

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from sessionward.session.models import SessionRecord


@dataclass(frozen=True)
class ContextKey:
    """Opaque key under which a manager attaches its session record."""

    token: str

    def __str__(self) -> str:
        return self.token


def derive_context_key(namespace: str) -> ContextKey:
    """Derive a stable context key from a manager namespace."""
    digest = hashlib.sha256(f"{namespace}:context".encode("utf-8")).hexdigest()
    return ContextKey(digest[:32])


_MISSING = object()


class RequestContext(Mapping):
    """Immutable key/value context extended by chaining."""

    __slots__ = ("_parent", "_key", "_value")

    def __init__(self, parent: Optional[Mapping] = None, key: Any = _MISSING, value: Any = None):
        self._parent = parent if parent is not None else {}
        self._key = key
        self._value = value

    def with_value(self, key: Any, value: Any) -> "RequestContext":
        return RequestContext(self, key, value)

    def __getitem__(self, key: Any) -> Any:
        if self._key is not _MISSING and key == self._key:
            return self._value
        return self._parent[key]

    def __iter__(self) -> Iterator[Any]:
        if self._key is not _MISSING:
            yield self._key
        for key in self._parent:
            if self._key is _MISSING or key != self._key:
                yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __repr__(self) -> str:
        return f"RequestContext({dict(self)!r})"


class SessionContextAdapter:
    """Attach and retrieve session records on a request context."""

    def __init__(self, key: ContextKey):
        self.key = key

    def attach(self, request_context: Optional[Mapping], record: Optional[SessionRecord]) -> RequestContext:
        """
        Return a context that yields record under this adapter's key.

        The given context is not modified; all of its key/value pairs remain
        retrievable from the returned context.
        """
        if isinstance(request_context, RequestContext):
            base = request_context
        else:
            base = RequestContext(request_context or {})
        return base.with_value(self.key, record)

    def retrieve(self, request_context: Optional[Mapping]) -> Optional[SessionRecord]:
        if request_context is None:
            return None
        return request_context.get(self.key)


__all__ = [
    "ContextKey",
    "RequestContext",
    "SessionContextAdapter",
    "derive_context_key",
]
