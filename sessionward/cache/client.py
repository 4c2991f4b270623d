"""
Redis Session Backend

Implements the SessionBackend contract on top of redis-py. Payloads are stored as
plain Redis strings under a configurable key prefix, with an absolute expiry (PXAT)
taken from the record's earliest deadline so Redis drops dead sessions on its own.

Key Features:
- Socket and connect timeouts on the client so no backend call hangs
- Exponential backoff retries for transient connection and timeout failures (tenacity)
- Atomic identifier rotation: DEL old key and SET new key inside one MULTI/EXEC
- Translation of redis-py exceptions into the session store error taxonomy
- Per-operation latency and error metrics
"""

from datetime import datetime
from typing import Any, Callable, List, Optional

import redis
import structlog
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
)
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from sessionward.cache.backends import SessionBackend
from sessionward.monitoring.metrics import track_backend_operation
from sessionward.session.exceptions import NotFoundError, StoreIOError, StoreTimeoutError

logger = structlog.get_logger(__name__)

DEFAULT_KEY_PREFIX = "sessionward:session:"


def handle_redis_exception(redis_error: Exception, operation: str = "unknown") -> StoreIOError:
    """
    Convert redis-py exceptions to session store exceptions.

    Args:
        redis_error: Original Redis exception
        operation: Backend operation that failed

    Returns:
        StoreTimeoutError for timeouts, StoreIOError for everything else
    """
    error_message = f"Redis operation '{operation}' failed: {redis_error}"

    if isinstance(redis_error, RedisTimeoutError):
        return StoreTimeoutError(
            error_message,
            operation=operation,
            backend=RedisBackend.name,
            original_error=redis_error
        )

    return StoreIOError(
        error_message,
        operation=operation,
        backend=RedisBackend.name,
        original_error=redis_error
    )


def _to_pxat(expires_at: Optional[datetime]) -> Optional[int]:
    if expires_at is None:
        return None
    return max(int(expires_at.timestamp() * 1000), 1)


class RedisBackend(SessionBackend):
    """
    Session backend storing encoded records in Redis.

    The client must be created with decode_responses=False so payloads come
    back as bytes.
    """

    name = "redis"
    supports_atomic_rename = True

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        retry_attempts: int = 3,
        retry_backoff: float = 0.1
    ):
        """
        Initialize Redis backend.

        Args:
            client: redis-py client
            key_prefix: Prefix for every session key
            retry_attempts: Attempts per operation for transient failures
            retry_backoff: Exponential backoff multiplier in seconds (0 disables waiting)
        """
        self._client = client
        self._key_prefix = key_prefix
        self._retry_attempts = max(retry_attempts, 1)
        self._retry_backoff = retry_backoff

        logger.info(
            "RedisBackend initialized",
            key_prefix=key_prefix,
            retry_attempts=self._retry_attempts
        )

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    def _format_key(self, session_id: str) -> str:
        if not session_id or not isinstance(session_id, str):
            raise ValueError(f"Invalid session identifier: {session_id!r}")
        return f"{self._key_prefix}{session_id}"

    def _execute(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        retrying = Retrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=self._retry_backoff, max=2),
            retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError)),
            reraise=True
        )
        try:
            with track_backend_operation(self.name, operation):
                return retrying(func, *args, **kwargs)
        except redis.RedisError as e:
            store_error = handle_redis_exception(e, operation)
            logger.error(
                "Redis session operation failed",
                operation=operation,
                error=str(e),
                error_code=store_error.error_code.value
            )
            raise store_error from e

    def get(self, session_id: str) -> bytes:
        value = self._execute('get', self._client.get, self._format_key(session_id))
        if value is None:
            raise NotFoundError("Session not found", session_id=session_id)
        if isinstance(value, str):
            value = value.encode('utf-8')
        return value

    def put(self, session_id: str, payload: bytes, expires_at: Optional[datetime] = None) -> None:
        key = self._format_key(session_id)
        pxat = _to_pxat(expires_at)
        if pxat is None:
            self._execute('put', self._client.set, key, payload)
        else:
            self._execute('put', self._client.set, key, payload, pxat=pxat)

    def delete(self, session_id: str) -> None:
        self._execute('delete', self._client.delete, self._format_key(session_id))

    def rename(
        self,
        old_id: str,
        new_id: str,
        payload: bytes,
        expires_at: Optional[datetime] = None
    ) -> None:
        old_key = self._format_key(old_id)
        new_key = self._format_key(new_id)
        pxat = _to_pxat(expires_at)

        def _rename() -> None:
            with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(old_key)
                if pxat is None:
                    pipe.set(new_key, payload)
                else:
                    pipe.set(new_key, payload, pxat=pxat)
                pipe.execute()

        self._execute('rename', _rename)

    def ids(self) -> List[str]:
        def _scan() -> List[str]:
            prefix_length = len(self._key_prefix)
            identifiers = []
            for key in self._client.scan_iter(match=f"{self._key_prefix}*"):
                if isinstance(key, bytes):
                    key = key.decode('utf-8')
                identifiers.append(key[prefix_length:])
            return identifiers

        return self._execute('ids', _scan)

    def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            return bool(self._execute('ping', self._client.ping))
        except StoreIOError:
            return False

    def close(self) -> None:
        self._client.close()
        logger.info("RedisBackend closed", key_prefix=self._key_prefix)


def create_redis_backend(
    url: str,
    key_prefix: str = DEFAULT_KEY_PREFIX,
    socket_timeout: float = 5.0,
    socket_connect_timeout: float = 2.0,
    retry_attempts: int = 3,
    retry_backoff: float = 0.1
) -> RedisBackend:
    """
    Create a Redis backend from a connection URL.

    Args:
        url: Redis connection URL (redis://host:port/db)
        key_prefix: Prefix for every session key
        socket_timeout: Per-command socket timeout in seconds
        socket_connect_timeout: Connection establishment timeout in seconds
        retry_attempts: Attempts per operation for transient failures
        retry_backoff: Exponential backoff multiplier in seconds

    Returns:
        Configured RedisBackend
    """
    client = redis.Redis.from_url(
        url,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_connect_timeout,
        decode_responses=False
    )
    return RedisBackend(
        client,
        key_prefix=key_prefix,
        retry_attempts=retry_attempts,
        retry_backoff=retry_backoff
    )


__all__ = [
    "RedisBackend",
    "create_redis_backend",
    "handle_redis_exception",
    "DEFAULT_KEY_PREFIX",
]
