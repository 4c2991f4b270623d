"""
Session Lifecycle Manager

Owns the timeout policy of one session namespace and drives every state
transition of the records it manages. The manager is the only component that
decides when a session is refreshed, rotated or invalidated; persistence goes
through the SessionStore and per-request propagation through the context adapter.

Key Features:
- Three independent expiry clocks: idle timeout, renewal timeout and absolute lifetime
- Identifier rotation on renewal with session data kept intact
- Idle and lifetime expiry evaluated before renewal, so an expired session is never rotated
- Fail-safe handling of rotation failures: a session lost mid-rotation is invalidated
- Namespace registration preventing two managers from sharing a cookie and context key
- Expired and corrupt session cleanup sweeps with structured statistics
- Injectable clock so timeout behaviour is testable without sleeping

Request flow:
    record = manager.process_request(cookie_value)     # load + evaluate
    ctx = manager.attach(ctx, record)                  # propagate
    ...handler...
    manager.save_session(record)                       # persist final state
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import structlog

from sessionward.config.settings import ConfigurationError, LifecycleSettings
from sessionward.monitoring.metrics import record_operation, record_transition, session_metrics
from sessionward.session.context import (
    ContextKey,
    RequestContext,
    SessionContextAdapter,
    derive_context_key,
)
from sessionward.session.exceptions import (
    DecodeError,
    EncodeError,
    NotFoundError,
    RotationFailedError,
    SessionInvalidError,
    StoreIOError,
)
from sessionward.session.models import (
    SessionCookie,
    SessionRecord,
    SessionState,
    SessionStatus,
    check_session_value,
)
from sessionward.session.registry import NamespaceRegistry, get_namespace_registry
from sessionward.session.store import SessionStore

logger = structlog.get_logger(__name__)

SESSION_ID_BYTES = 32


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionLifecycleManager:
    """
    Lifecycle manager for the sessions of a single namespace.

    The manager holds no per-session state; records are passed in and mutated in
    place, so one manager can serve concurrent requests as long as each request
    works on its own record.

    Attributes:
        namespace: Unique namespace of this manager
        store: Session store used for persistence
        settings: Effective timeout and cookie policy
        context_key: Key under which records are attached to request contexts
    """

    def __init__(
        self,
        namespace: str,
        store: SessionStore,
        settings: Optional[LifecycleSettings] = None,
        *,
        idle_timeout: Optional[timedelta] = None,
        renewal_timeout: Optional[timedelta] = None,
        lifetime: Optional[timedelta] = None,
        registry: Optional[NamespaceRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the lifecycle manager and register its namespace.

        Args:
            namespace: Unique namespace; drives the cookie name and context key
            store: Session store used for persistence
            settings: Base lifecycle settings, defaults to LifecycleSettings()
            idle_timeout: Optional override of settings.idle_timeout
            renewal_timeout: Optional override of settings.renewal_timeout
            lifetime: Optional override of settings.lifetime
            registry: Namespace registry, defaults to the process registry
            clock: Callable returning the current aware datetime

        Raises:
            ConfigurationError: If the namespace is empty or a timeout is not positive
            DuplicateNamespaceError: If the namespace is already registered
        """
        if not namespace or not isinstance(namespace, str):
            raise ConfigurationError("Session namespace must be a non-empty string")

        self.namespace = namespace
        self.store = store
        self.settings = (settings or LifecycleSettings()).with_overrides(
            idle_timeout=idle_timeout,
            renewal_timeout=renewal_timeout,
            lifetime=lifetime
        )
        self.registry = registry if registry is not None else get_namespace_registry()
        self._clock = clock or utc_now

        self.context_key: ContextKey = derive_context_key(namespace)
        self.cookie_name = self.settings.cookie_name(namespace)
        self._adapter = SessionContextAdapter(self.context_key)
        self.logger = logger.bind(namespace=namespace)

        # Last step: nothing may fail once the namespace is claimed
        self.registry.register(namespace)
        self._closed = False

        self.logger.info(
            "Session lifecycle manager initialized",
            backend=store.backend.name,
            idle_timeout=self.settings.idle_timeout.total_seconds(),
            renewal_timeout=self.settings.renewal_timeout.total_seconds(),
            lifetime=self.settings.lifetime.total_seconds()
        )

    @property
    def idle_timeout(self) -> timedelta:
        return self.settings.idle_timeout

    @property
    def renewal_timeout(self) -> timedelta:
        return self.settings.renewal_timeout

    @property
    def lifetime(self) -> timedelta:
        return self.settings.lifetime

    def now(self) -> datetime:
        return self._clock()

    def new_session_id(self) -> str:
        """
        Generate a session identifier.

        Returns:
            64 hex characters drawn from a cryptographically secure source
        """
        return secrets.token_hex(SESSION_ID_BYTES)

    def create_session(self, data: Optional[Mapping[str, Any]] = None) -> SessionRecord:
        """
        Create and persist a new valid session.

        Args:
            data: Optional initial session data

        Returns:
            The persisted session record

        Raises:
            UnsupportedTypeError: If data holds a value outside the session value variant
            StoreIOError: If the record cannot be persisted
        """
        initial_data = dict(data or {})
        for key, value in initial_data.items():
            check_session_value(value, key)

        now = self.now()
        session_id = self.new_session_id()
        lifetime_deadline = now + self.settings.lifetime

        record = SessionRecord(
            id=session_id,
            status=SessionStatus.VALID,
            idle_deadline=now + self.settings.idle_timeout,
            renewal_deadline=now + self.settings.renewal_timeout,
            lifetime_deadline=lifetime_deadline,
            cookie=SessionCookie(
                name=self.cookie_name,
                value=session_id,
                expires=lifetime_deadline,
                path=self.settings.cookie_path,
                secure=self.settings.cookie_secure,
                http_only=True,
                same_site=self.settings.cookie_same_site
            ),
            data=initial_data
        )

        try:
            self.store.save(record)
        except (StoreIOError, EncodeError):
            record_operation('create', 'error')
            raise

        record_operation('create', 'success')
        self.logger.info(
            "Session created",
            session_id=session_id,
            lifetime_deadline=lifetime_deadline.isoformat()
        )
        return record

    def load_session(self, session_id: str) -> SessionRecord:
        """
        Load a session record without evaluating it.

        Raises:
            NotFoundError: If the identifier is unknown
            DecodeError: If the stored payload is corrupt
            StoreIOError: If the backend fails
        """
        return self.store.get(session_id)

    def evaluate(self, record: SessionRecord) -> SessionRecord:
        """
        Apply the per-request lifecycle transition to a record.

        Idle and lifetime expiry are checked first and invalidate the session.
        Otherwise the idle deadline is reset and, once the renewal deadline has
        passed, the identifier is rotated. Records that are already invalid are
        returned untouched.

        Args:
            record: Session record loaded for the current request

        Returns:
            The same record, mutated in place

        Raises:
            RotationFailedError: If rotation lost the session (record is invalidated)
            StoreIOError: If rotation could not be persisted (record is reverted)
        """
        if not record.is_valid:
            return record

        now = self.now()
        state = record.state_at(now)

        if state is SessionState.INVALID:
            reason = 'lifetime' if now >= record.lifetime_deadline else 'idle'
            self._invalidate(record, now)
            record_transition(f'expired_{reason}')
            self.logger.info("Session expired", session_id=record.id, reason=reason)
            return record

        record.idle_deadline = now + self.settings.idle_timeout

        if state is SessionState.PENDING_RENEWAL:
            self._rotate(record, now)
            record_transition('renewed')
        else:
            record_transition('refreshed')

        return record

    def rotate_session(self, record: SessionRecord) -> SessionRecord:
        """
        Rotate the identifier of a valid session on demand, e.g. after login.

        Raises:
            SessionInvalidError: If the record is invalid or already expired
            RotationFailedError: If rotation lost the session (record is invalidated)
            StoreIOError: If rotation could not be persisted (record is reverted)
        """
        now = self.now()
        if record.state_at(now) is SessionState.INVALID:
            raise SessionInvalidError(
                "Cannot rotate an invalid session",
                details={"status": record.status.value}
            )

        self._rotate(record, now)
        record_transition('rotated')
        return record

    def invalidate_session(self, record: SessionRecord) -> SessionRecord:
        """
        Invalidate a session on demand, e.g. on logout.

        The record is removed from the store; a failing delete is logged and the
        record is still invalidated locally.
        """
        self._invalidate(record, self.now())
        record_transition('invalidated')
        self.logger.info("Session invalidated", session_id=record.id)
        return record

    def process_request(self, session_id: Optional[str]) -> Optional[SessionRecord]:
        """
        Load and evaluate the session referenced by an inbound request.

        Args:
            session_id: Identifier from the request cookie, if any

        Returns:
            The evaluated record, or None when the request carries no known session

        Raises:
            DecodeError: If the stored payload is corrupt
            StoreIOError: If the backend fails
        """
        if not session_id:
            return None

        try:
            record = self.load_session(session_id)
        except NotFoundError:
            record_operation('load', 'not_found')
            self.logger.debug("Session not found", session_id=session_id)
            return None

        record_operation('load', 'success')
        return self.evaluate(record)

    def save_session(self, record: SessionRecord) -> bool:
        """
        Persist the final state of a record after the request.

        Returns:
            True if the record was saved, False if it was invalid and skipped

        Raises:
            EncodeError: If the session data cannot be encoded
            StoreIOError: If the backend fails
        """
        if not record.is_valid:
            return False

        try:
            self.store.save(record)
        except (StoreIOError, EncodeError):
            record_operation('save', 'error')
            raise

        record_operation('save', 'success')
        return True

    def attach(self, request_context: Optional[Mapping], record: Optional[SessionRecord]) -> RequestContext:
        return self._adapter.attach(request_context, record)

    def session_from(self, request_context: Optional[Mapping]) -> Optional[SessionRecord]:
        return self._adapter.retrieve(request_context)

    def cleanup_expired_sessions(self) -> Dict[str, int]:
        """
        Remove expired and undecodable sessions from the store.

        Returns:
            Dictionary with cleanup statistics

        Raises:
            StoreIOError: If the stored identifiers cannot be listed
        """
        cleanup_start = self.now()
        cleanup_stats = {
            'processed_sessions': 0,
            'expired_sessions': 0,
            'orphaned_sessions': 0,
            'cleanup_errors': 0
        }

        for session_id in self.store.backend.ids():
            cleanup_stats['processed_sessions'] += 1
            try:
                try:
                    record = self.store.get(session_id)
                except NotFoundError:
                    # Removed concurrently
                    continue
                except DecodeError:
                    self.store.delete(session_id)
                    cleanup_stats['orphaned_sessions'] += 1
                    continue

                if record.state_at(self.now()) is SessionState.INVALID:
                    self.store.delete(session_id)
                    cleanup_stats['expired_sessions'] += 1

            except StoreIOError as e:
                cleanup_stats['cleanup_errors'] += 1
                self.logger.error(
                    "Error during session cleanup",
                    session_id=session_id,
                    error=str(e)
                )

        session_metrics['cleanup_operations'].labels(cleanup_type='expired').inc(
            cleanup_stats['expired_sessions']
        )
        session_metrics['cleanup_operations'].labels(cleanup_type='orphaned').inc(
            cleanup_stats['orphaned_sessions']
        )

        self.logger.info(
            "Session cleanup completed",
            cleanup_stats=cleanup_stats,
            duration_seconds=(self.now() - cleanup_start).total_seconds()
        )
        return cleanup_stats

    def close(self) -> None:
        """Release the namespace. Safe to call more than once."""
        if self._closed:
            return
        self.registry.release(self.namespace)
        self._closed = True
        self.logger.debug("Session lifecycle manager closed")

    def __enter__(self) -> "SessionLifecycleManager":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SessionLifecycleManager(namespace={self.namespace!r}, backend={self.store.backend.name!r})"

    def _rotate(self, record: SessionRecord, now: datetime) -> None:
        old_id = record.id
        old_cookie_value = record.cookie.value
        old_renewal_deadline = record.renewal_deadline

        new_id = self.new_session_id()
        record.id = new_id
        record.cookie.value = new_id
        record.renewal_deadline = now + self.settings.renewal_timeout

        try:
            self.store.update(old_id, record)
        except RotationFailedError:
            self._mark_invalid(record, now)
            record_operation('rotate', 'lost')
            self.logger.error(
                "Session lost during rotation, forcing re-authentication",
                old_session_id=old_id,
                new_session_id=new_id
            )
            raise
        except (StoreIOError, EncodeError) as e:
            record.id = old_id
            record.cookie.value = old_cookie_value
            record.renewal_deadline = old_renewal_deadline
            record_operation('rotate', 'error')
            self.logger.warning(
                "Session rotation failed, keeping previous identifier",
                session_id=old_id,
                error=str(e)
            )
            raise

        record_operation('rotate', 'success')
        self.logger.info(
            "Session identifier rotated",
            old_session_id=old_id,
            new_session_id=new_id
        )

    def _invalidate(self, record: SessionRecord, now: datetime) -> None:
        session_id = record.id
        try:
            self.store.delete(session_id)
        except StoreIOError as e:
            record_operation('delete', 'error')
            self.logger.warning(
                "Failed to delete invalidated session from store",
                session_id=session_id,
                error=str(e)
            )
        self._mark_invalid(record, now)

    def _mark_invalid(self, record: SessionRecord, now: datetime) -> None:
        record.status = SessionStatus.INVALID
        record.cookie.expire(now - self.settings.idle_timeout)


__all__ = [
    "SessionLifecycleManager",
    "utc_now",
]
