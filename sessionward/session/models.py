"""
Session Data Model

Defines the persisted session record, its transport cookie metadata and the closed
set of value types allowed inside the session data map.

A session record carries three independent deadlines:
- idle_deadline: reset on every successful request, inactivity past it invalidates
- renewal_deadline: once elapsed the identifier is rotated and the deadline reset
- lifetime_deadline: absolute cap fixed at creation, never extended
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Tuple, Union

from sessionward.session.exceptions import UnsupportedTypeError


# Closed variant for session data values; nested maps hold the same variant.
SessionValue = Union[str, int, float, bool, bytes, Dict[str, "SessionValue"]]

# Deepest map nesting accepted inside session data
MAX_NESTING_DEPTH = 32


def check_nesting(mapping: Dict[Any, Any], path: str, ancestors: Tuple[int, ...]) -> Tuple[int, ...]:
    """
    Reject a nested map that refers back to an enclosing map or nests too deeply.

    Args:
        mapping: Map about to be descended into
        path: Dotted location of the map, used in error reporting
        ancestors: ids of the maps enclosing this one

    Returns:
        The ancestor ids extended with this map

    Raises:
        UnsupportedTypeError: On a reference cycle or excessive nesting
    """
    if id(mapping) in ancestors:
        raise UnsupportedTypeError(
            "Session map contains a reference cycle",
            value_type="dict",
            path=path
        )
    if len(ancestors) >= MAX_NESTING_DEPTH:
        raise UnsupportedTypeError(
            f"Session map nesting exceeds {MAX_NESTING_DEPTH} levels",
            value_type="dict",
            path=path
        )
    return ancestors + (id(mapping),)


class SessionStatus(str, Enum):
    """Persisted validity flag of a session record."""

    VALID = "valid"
    INVALID = "invalid"


class SessionState(str, Enum):
    """Lifecycle state of a session relative to a point in time."""

    FRESH = "fresh"
    PENDING_RENEWAL = "pending_renewal"
    INVALID = "invalid"


def check_session_value(value: Any, path: str = "", ancestors: Tuple[int, ...] = ()) -> None:
    """
    Validate that a value belongs to the session value variant.

    Args:
        value: Value to validate
        path: Dotted location of the value, used in error reporting
        ancestors: ids of the enclosing maps, tracked while descending

    Raises:
        UnsupportedTypeError: If the value (or a nested entry) is not supported, or
            if nested maps form a cycle or exceed MAX_NESTING_DEPTH
    """
    if isinstance(value, (str, bool, int, float, bytes)):
        return
    if isinstance(value, dict):
        ancestors = check_nesting(value, path, ancestors)
        for key, nested in value.items():
            if not isinstance(key, str):
                raise UnsupportedTypeError(
                    f"Session map keys must be strings, got {type(key).__name__}",
                    value_type=type(key).__name__,
                    path=path
                )
            check_session_value(nested, f"{path}.{key}" if path else key, ancestors)
        return
    raise UnsupportedTypeError(
        f"Unsupported session value type: {type(value).__name__}",
        value_type=type(value).__name__,
        path=path
    )


@dataclass
class SessionCookie:
    """
    Transport metadata used when materializing the response cookie.

    Attributes:
        name: Cookie name derived from the manager namespace
        value: Session identifier, empty once the session is invalidated
        expires: Cookie expiry timestamp
        path: Cookie path
        secure: Send only over HTTPS
        http_only: Hide from client-side scripts
        same_site: SameSite policy
    """

    name: str
    value: str
    expires: datetime
    path: str = "/"
    secure: bool = True
    http_only: bool = True
    same_site: str = "Lax"

    def expire(self, expires: datetime) -> None:
        """Clear the identifying value and move expiry to the given past time."""
        self.value = ""
        self.expires = expires


@dataclass
class SessionRecord:
    """
    Persisted unit of per-user state keyed by identifier.

    Records are mutated in place by the lifecycle manager (deadline resets and
    identifier rotation) and are local to the request handling them until saved.
    """

    id: str
    status: SessionStatus
    idle_deadline: datetime
    renewal_deadline: datetime
    lifetime_deadline: datetime
    cookie: SessionCookie
    data: Dict[str, SessionValue] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return self.status is SessionStatus.VALID

    @property
    def expires_at(self) -> datetime:
        """Earliest instant at which the record can no longer be valid."""
        return min(self.idle_deadline, self.lifetime_deadline)

    def state_at(self, now: datetime) -> SessionState:
        """
        Compute the lifecycle state at a given time.

        Idle and lifetime expiry take precedence over renewal, so a session
        whose idle and renewal windows have both elapsed is INVALID.
        """
        if not self.is_valid:
            return SessionState.INVALID
        if now >= self.lifetime_deadline or now >= self.idle_deadline:
            return SessionState.INVALID
        if now >= self.renewal_deadline:
            return SessionState.PENDING_RENEWAL
        return SessionState.FRESH

    def time_remaining(self, now: datetime) -> timedelta:
        return max(self.expires_at - now, timedelta(0))

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: SessionValue) -> None:
        """
        Store a value in the session data map.

        Raises:
            UnsupportedTypeError: If the value is outside the session value variant
        """
        check_session_value(value, key)
        self.data[key] = value

    def pop(self, key: str, default: Any = None) -> Any:
        return self.data.pop(key, default)


__all__ = [
    "SessionValue",
    "SessionStatus",
    "SessionState",
    "SessionCookie",
    "SessionRecord",
    "check_session_value",
    "check_nesting",
    "MAX_NESTING_DEPTH",
]
