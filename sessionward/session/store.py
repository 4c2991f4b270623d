"""
Session Store

Public persistence API for session records, combining the codec with a backend:

- get(session_id): backend fetch, then decode; corrupt payloads are surfaced, not dropped
- save(record): encode, then put under the record's own identifier
- delete(session_id): idempotent forward to the backend
- update(old_id, record): replace semantics (delete old, save new)

update() is only atomic when the backend supports an atomic rename. Otherwise a
failure after the old record was deleted loses the session; that case is reported
as RotationFailedError so the caller can force re-authentication.
"""

from typing import Optional

import structlog

from sessionward.cache.backends import SessionBackend
from sessionward.monitoring.metrics import record_operation
from sessionward.session.codec import SessionCodec
from sessionward.session.exceptions import DecodeError, RotationFailedError, StoreIOError
from sessionward.session.models import SessionRecord

logger = structlog.get_logger(__name__)


class SessionStore:
    """Encode/decode session records and persist them through a backend."""

    def __init__(self, backend: SessionBackend, codec: Optional[SessionCodec] = None):
        self.backend = backend
        self.codec = codec or SessionCodec()

    def get(self, session_id: str) -> SessionRecord:
        """
        Load a session record.

        Raises:
            NotFoundError: If the identifier is not stored
            DecodeError: If the stored payload is corrupt
            StoreIOError: If the backend fails
        """
        payload = self.backend.get(session_id)
        try:
            record = self.codec.decode(payload)
        except DecodeError:
            record_operation('get', 'corrupt')
            logger.error("Stored session payload is corrupt", session_id=session_id)
            raise

        if record.id != session_id:
            record_operation('get', 'corrupt')
            logger.error(
                "Stored session identifier does not match its key",
                session_id=session_id
            )
            raise DecodeError("Stored session identifier does not match its key")

        return record

    def save(self, record: SessionRecord) -> None:
        """
        Persist a session record under its own identifier.

        Raises:
            EncodeError: If the record cannot be encoded
            StoreIOError: If the backend fails
        """
        payload = self.codec.encode(record)
        self.backend.put(record.id, payload, record.expires_at)

    def delete(self, session_id: str) -> None:
        self.backend.delete(session_id)

    def update(self, old_id: str, record: SessionRecord) -> None:
        """
        Replace the record stored under old_id with record.

        The end state is always that of delete(old_id) followed by save(record).

        Raises:
            EncodeError: If the record cannot be encoded (nothing is modified)
            RotationFailedError: If the old record was deleted but the new one
                could not be saved
            StoreIOError: If the backend fails before anything was lost
        """
        payload = self.codec.encode(record)

        if old_id == record.id:
            self.backend.put(record.id, payload, record.expires_at)
            return

        if self.backend.supports_atomic_rename:
            self.backend.rename(old_id, record.id, payload, record.expires_at)
            return

        self.backend.delete(old_id)
        try:
            self.backend.put(record.id, payload, record.expires_at)
        except StoreIOError as e:
            record_operation('update', 'lost')
            logger.error(
                "Session lost during non-atomic update",
                old_session_id=old_id,
                new_session_id=record.id,
                error=str(e)
            )
            raise RotationFailedError(
                "Session was deleted but its rotated copy could not be saved",
                original_error=e
            ) from e


__all__ = ["SessionStore"]
