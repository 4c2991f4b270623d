"""
Namespace registry for lifecycle managers.

Each lifecycle manager registers its namespace at construction time so two
independently built managers in the same process cannot share identifier scopes or
context keys. The registry is an explicit object; a process default is available
through get_namespace_registry() and tests build fresh instances. It has no effect
across processes.
"""

import threading
from typing import Optional, Set

import structlog

from sessionward.monitoring.metrics import session_metrics
from sessionward.session.exceptions import DuplicateNamespaceError

logger = structlog.get_logger(__name__)


class NamespaceRegistry:
    """Thread-safe set of registered manager namespaces."""

    def __init__(self) -> None:
        self._namespaces: Set[str] = set()
        self._lock = threading.Lock()

    def register(self, namespace: str) -> None:
        """
        Register a namespace.

        Raises:
            DuplicateNamespaceError: If the namespace is already registered
        """
        with self._lock:
            if namespace in self._namespaces:
                raise DuplicateNamespaceError(namespace)
            self._namespaces.add(namespace)
            session_metrics['registered_namespaces'].inc()
        logger.debug("Session namespace registered", namespace=namespace)

    def release(self, namespace: str) -> None:
        """Release a namespace so it can be registered again. Unknown names are ignored."""
        with self._lock:
            if namespace not in self._namespaces:
                return
            self._namespaces.discard(namespace)
            session_metrics['registered_namespaces'].dec()
        logger.debug("Session namespace released", namespace=namespace)

    def clear(self) -> None:
        with self._lock:
            session_metrics['registered_namespaces'].dec(len(self._namespaces))
            self._namespaces.clear()

    def __contains__(self, namespace: object) -> bool:
        with self._lock:
            return namespace in self._namespaces

    def __len__(self) -> int:
        with self._lock:
            return len(self._namespaces)


_default_registry: Optional[NamespaceRegistry] = None
_default_registry_lock = threading.Lock()


def get_namespace_registry() -> NamespaceRegistry:
    """
    Get the process default namespace registry.

    Returns:
        NamespaceRegistry shared by managers built without an explicit registry
    """
    global _default_registry

    with _default_registry_lock:
        if _default_registry is None:
            _default_registry = NamespaceRegistry()
        return _default_registry


def reset_namespace_registry() -> NamespaceRegistry:
    """Replace the process default registry with an empty one."""
    global _default_registry

    with _default_registry_lock:
        if _default_registry is not None:
            _default_registry.clear()
        _default_registry = NamespaceRegistry()
        return _default_registry


__all__ = [
    "NamespaceRegistry",
    "get_namespace_registry",
    "reset_namespace_registry",
]
