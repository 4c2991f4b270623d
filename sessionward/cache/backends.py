"""
Session Store Backends

A backend is a concurrency-safe keyed container of encoded session payloads. The
lifecycle core only depends on the SessionBackend contract, so any storage that can
honour it (in-memory map, file, remote cache) is pluggable without changes to the
session store or lifecycle manager.

Contract:
- get(session_id) returns the full payload or raises NotFoundError
- put(session_id, payload, expires_at) stores the full payload
- delete(session_id) is idempotent
- rename(old_id, new_id, payload, expires_at) replaces old_id with new_id; atomic
  when supports_atomic_rename is True, delete-then-put otherwise
- reads never observe a partially written value

InMemoryBackend is the reference implementation: a dict guarded by a single
reader/writer lock over the whole map. It is not sharded, so writes on distinct
keys serialize; this is fine for moderate concurrency within one process.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

import structlog

from sessionward.monitoring.metrics import track_backend_operation
from sessionward.session.exceptions import NotFoundError
from sessionward.utils.locks import ReadWriteLock

logger = structlog.get_logger(__name__)


class SessionBackend(ABC):
    """Abstract keyed container for encoded session payloads."""

    name = "abstract"
    supports_atomic_rename = False

    @abstractmethod
    def get(self, session_id: str) -> bytes:
        """
        Fetch the payload stored under a session identifier.

        Raises:
            NotFoundError: If no payload is stored under the identifier
            StoreIOError: If the backend fails
        """

    @abstractmethod
    def put(self, session_id: str, payload: bytes, expires_at: Optional[datetime] = None) -> None:
        """
        Store a payload under a session identifier, replacing any previous value.

        Args:
            session_id: Session identifier
            payload: Encoded session record
            expires_at: Optional expiry hint for backends with native TTL support

        Raises:
            StoreIOError: If the backend fails
        """

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Delete the payload stored under a session identifier. Absent keys are not an error."""

    @abstractmethod
    def ids(self) -> List[str]:
        """Return a snapshot of the stored session identifiers."""

    def rename(
        self,
        old_id: str,
        new_id: str,
        payload: bytes,
        expires_at: Optional[datetime] = None
    ) -> None:
        """
        Replace the record under old_id with payload stored under new_id.

        The default implementation is not atomic: a failure between the delete and
        the put loses the session. Backends that can perform both steps as one
        mutation override this and set supports_atomic_rename.
        """
        self.delete(old_id)
        self.put(new_id, payload, expires_at)

    def close(self) -> None:
        """Release backend resources."""


class InMemoryBackend(SessionBackend):
    """Process-local backend over a dict guarded by a reader/writer lock."""

    name = "memory"
    supports_atomic_rename = True

    def __init__(self) -> None:
        self._data: Dict[str, bytes] = {}
        self._lock = ReadWriteLock()

    def get(self, session_id: str) -> bytes:
        with track_backend_operation(self.name, 'get'):
            with self._lock.read_locked():
                payload = self._data.get(session_id)
        if payload is None:
            raise NotFoundError("Session not found", session_id=session_id)
        return payload

    def put(self, session_id: str, payload: bytes, expires_at: Optional[datetime] = None) -> None:
        # bytes are immutable, so readers always see a complete value
        payload = bytes(payload)
        with track_backend_operation(self.name, 'put'):
            with self._lock.write_locked():
                self._data[session_id] = payload

    def delete(self, session_id: str) -> None:
        with track_backend_operation(self.name, 'delete'):
            with self._lock.write_locked():
                self._data.pop(session_id, None)

    def rename(
        self,
        old_id: str,
        new_id: str,
        payload: bytes,
        expires_at: Optional[datetime] = None
    ) -> None:
        payload = bytes(payload)
        with track_backend_operation(self.name, 'rename'):
            with self._lock.write_locked():
                self._data.pop(old_id, None)
                self._data[new_id] = payload

    def ids(self) -> List[str]:
        with self._lock.read_locked():
            return list(self._data)

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._data)

    def __contains__(self, session_id: object) -> bool:
        with self._lock.read_locked():
            return session_id in self._data

    def clear(self) -> None:
        with self._lock.write_locked():
            self._data.clear()
        logger.debug("In-memory session backend cleared")


__all__ = ["SessionBackend", "InMemoryBackend"]
