"""
Flask Session Middleware

Thin transport adapter binding a SessionLifecycleManager to a Flask application.
The manager owns every lifecycle decision; the middleware only moves the session
identifier between the HTTP cookie and the manager and keeps the evaluated record
on the per-request context.

Request flow:
- before_request: read the namespace cookie, run manager.process_request() and
  attach the resulting record to the RequestContext stored on flask.g
- view: current_session(), start_session(data) and end_session() work on the
  attached record
- after_request: persist valid records and write the cookie; invalid records get
  an empty, already expired cookie

Also registers a JSON error handler for SessionError and the `flask
cleanup-sessions` CLI command.

Usage:
    >>> app = Flask(__name__)
    >>> manager = SessionLifecycleManager("app", SessionStore(InMemoryBackend()))
    >>> SessionMiddleware(manager, app)
"""

from typing import Any, Dict, Mapping, Optional

import structlog
from flask import Flask, Response, current_app, g, jsonify, request

from sessionward.session.exceptions import (
    HTTP_STATUS_CODES,
    DecodeError,
    EncodeError,
    RotationFailedError,
    SessionError,
    StoreIOError,
)
from sessionward.session.manager import SessionLifecycleManager
from sessionward.session.models import SessionRecord

logger = structlog.get_logger(__name__)

EXTENSION_KEY = 'sessionward'
CONTEXT_ATTR = 'sessionward_context'
STALE_COOKIES_ATTR = 'sessionward_stale_cookies'


class SessionMiddleware:
    """Flask extension wiring a lifecycle manager into the request cycle."""

    def __init__(self, manager: SessionLifecycleManager, app: Optional[Flask] = None):
        self.manager = manager
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """
        Register request hooks, the error handler and the cleanup command.

        Args:
            app: Flask application instance
        """
        middlewares = app.extensions.setdefault(EXTENSION_KEY, {})
        first_registration = not middlewares
        middlewares[self.manager.namespace] = self

        app.before_request(self._load_session)
        app.after_request(self._persist_session)

        if first_registration:
            app.register_error_handler(SessionError, handle_session_error)
            self._register_cleanup_command(app)

        logger.info(
            "Session middleware initialized",
            namespace=self.manager.namespace,
            cookie_name=self.manager.cookie_name
        )

    def _load_session(self) -> None:
        session_id = request.cookies.get(self.manager.cookie_name)

        try:
            record = self.manager.process_request(session_id)
        except (DecodeError, RotationFailedError) as e:
            logger.warning(
                "Discarding unusable session cookie",
                namespace=self.manager.namespace,
                error_code=e.error_code.value
            )
            record = None

        if session_id and record is None:
            stale = g.setdefault(STALE_COOKIES_ATTR, set())
            stale.add(self.manager.cookie_name)

        setattr(g, CONTEXT_ATTR, self.manager.attach(g.get(CONTEXT_ATTR), record))

    def _persist_session(self, response: Response) -> Response:
        record = self.manager.session_from(g.get(CONTEXT_ATTR))

        if record is None:
            if self.manager.cookie_name in g.get(STALE_COOKIES_ATTR, ()):
                response.delete_cookie(
                    self.manager.cookie_name,
                    path=self.manager.settings.cookie_path,
                    secure=self.manager.settings.cookie_secure,
                    httponly=True,
                    samesite=self.manager.settings.cookie_same_site
                )
            return response

        if record.is_valid:
            try:
                self.manager.save_session(record)
            except (StoreIOError, EncodeError) as e:
                logger.error(
                    "Failed to persist session after request",
                    namespace=self.manager.namespace,
                    error_code=e.error_code.value
                )
                return handle_session_error(e)

        write_cookie(response, record)
        return response

    def _register_cleanup_command(self, app: Flask) -> None:

        @app.cli.command('cleanup-sessions')
        def cleanup_sessions_command():
            """Remove expired and corrupt sessions from every registered store."""
            for namespace, middleware in current_app.extensions[EXTENSION_KEY].items():
                result = middleware.manager.cleanup_expired_sessions()
                print(f"[{namespace}] Cleaned up {result['expired_sessions']} expired sessions")
                print(f"[{namespace}] Cleaned up {result['orphaned_sessions']} orphaned sessions")


def write_cookie(response: Response, record: SessionRecord) -> None:
    """Materialize a record's cookie metadata on a response."""
    cookie = record.cookie
    response.set_cookie(
        cookie.name,
        cookie.value,
        expires=cookie.expires,
        path=cookie.path,
        secure=cookie.secure,
        httponly=cookie.http_only,
        samesite=cookie.same_site
    )


def handle_session_error(error: SessionError):
    """Render a SessionError as a JSON response with a mapped status code."""
    status_code = HTTP_STATUS_CODES.get(error.error_code, 500)
    logger.warning(
        "Session error during request",
        error_code=error.error_code.value,
        status_code=status_code,
        path=request.path
    )
    response = jsonify(error.to_dict())
    response.status_code = status_code
    return response


def _get_middleware(namespace: Optional[str] = None) -> SessionMiddleware:
    middlewares: Dict[str, SessionMiddleware] = current_app.extensions.get(EXTENSION_KEY, {})
    if namespace is not None:
        try:
            return middlewares[namespace]
        except KeyError:
            raise RuntimeError(f"No session middleware registered for namespace '{namespace}'") from None
    if len(middlewares) != 1:
        raise RuntimeError("A namespace is required when zero or several session managers are registered")
    return next(iter(middlewares.values()))


def current_session(namespace: Optional[str] = None) -> Optional[SessionRecord]:
    """
    Get the session record attached to the current request.

    Returns:
        The record, or None when the request is not authenticated
    """
    middleware = _get_middleware(namespace)
    return middleware.manager.session_from(g.get(CONTEXT_ATTR))


def start_session(data: Optional[Mapping[str, Any]] = None, namespace: Optional[str] = None) -> SessionRecord:
    """
    Create a session for the current request, replacing any existing one.

    An existing valid session is invalidated first so a pre-login identifier
    never survives into the authenticated session.
    """
    middleware = _get_middleware(namespace)
    manager = middleware.manager

    existing = manager.session_from(g.get(CONTEXT_ATTR))
    if existing is not None and existing.is_valid:
        manager.invalidate_session(existing)

    record = manager.create_session(data)
    setattr(g, CONTEXT_ATTR, manager.attach(g.get(CONTEXT_ATTR), record))
    return record


def end_session(namespace: Optional[str] = None) -> Optional[SessionRecord]:
    """Invalidate the session of the current request, if any."""
    middleware = _get_middleware(namespace)
    record = middleware.manager.session_from(g.get(CONTEXT_ATTR))
    if record is None:
        return None
    return middleware.manager.invalidate_session(record)


__all__ = [
    'SessionMiddleware',
    'current_session',
    'start_session',
    'end_session',
    'handle_session_error',
    'write_cookie',
]
