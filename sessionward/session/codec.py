"""
Session Record Codec

Serializes session records to and from a UTF-8 JSON byte payload. The codec is
lossless for every field of a record: data values are tagged with their variant so
booleans, integers, floats, bytes and nested maps decode to exactly the value that
was encoded, and timestamps keep their offset and microseconds.

Payload layout (format version 1):

    {
        "v": 1,
        "id": "...",
        "status": "valid",
        "idle_deadline": "2024-01-01T00:15:00+00:00",
        "renewal_deadline": "...",
        "lifetime_deadline": "...",
        "cookie": {"name": ..., "value": ..., "expires": ..., "path": ...,
                   "secure": ..., "http_only": ..., "same_site": ...},
        "data": {"key": ["s", "value"], "nested": ["m", {"n": ["i", 1]}]}
    }

The codec has no side effects: no I/O and no logging.
"""

import base64
import binascii
import json
from datetime import datetime
from typing import Any, Dict, List, Tuple

from sessionward.session.exceptions import DecodeError, EncodeError, UnsupportedTypeError
from sessionward.session.models import (
    SessionCookie,
    SessionRecord,
    SessionStatus,
    SessionValue,
    check_nesting,
)

FORMAT_VERSION = 1

# Variant tags
TAG_STRING = "s"
TAG_INT = "i"
TAG_FLOAT = "f"
TAG_BOOL = "b"
TAG_BYTES = "y"
TAG_MAP = "m"


def _encode_value(value: Any, path: str, ancestors: Tuple[int, ...] = ()) -> List[Any]:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return [TAG_BOOL, value]
    if isinstance(value, int):
        return [TAG_INT, value]
    if isinstance(value, float):
        return [TAG_FLOAT, value]
    if isinstance(value, str):
        return [TAG_STRING, value]
    if isinstance(value, bytes):
        return [TAG_BYTES, base64.b64encode(value).decode("ascii")]
    if isinstance(value, dict):
        return [TAG_MAP, _encode_map(value, path, check_nesting(value, path, ancestors))]
    raise UnsupportedTypeError(
        f"Unsupported session value type: {type(value).__name__}",
        value_type=type(value).__name__,
        path=path
    )


def _encode_map(
    mapping: Dict[str, SessionValue],
    path: str = "",
    ancestors: Tuple[int, ...] = ()
) -> Dict[str, List[Any]]:
    encoded = {}
    for key, value in mapping.items():
        if not isinstance(key, str):
            raise UnsupportedTypeError(
                f"Session map keys must be strings, got {type(key).__name__}",
                value_type=type(key).__name__,
                path=path
            )
        encoded[key] = _encode_value(value, f"{path}.{key}" if path else key, ancestors)
    return encoded


def _decode_value(tagged: Any) -> SessionValue:
    if not isinstance(tagged, list) or len(tagged) != 2:
        raise DecodeError(f"Malformed tagged value: {tagged!r}")

    tag, raw = tagged
    if tag == TAG_BOOL and isinstance(raw, bool):
        return raw
    if tag == TAG_INT and isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if tag == TAG_FLOAT and isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    if tag == TAG_STRING and isinstance(raw, str):
        return raw
    if tag == TAG_BYTES and isinstance(raw, str):
        try:
            return base64.b64decode(raw.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise DecodeError("Invalid base64 bytes value", original_error=e) from e
    if tag == TAG_MAP and isinstance(raw, dict):
        return _decode_map(raw)
    raise DecodeError(f"Unknown or mismatched value tag: {tag!r}")


def _decode_map(encoded: Dict[str, Any]) -> Dict[str, SessionValue]:
    return {key: _decode_value(value) for key, value in encoded.items()}


def _parse_timestamp(raw: Any) -> datetime:
    if not isinstance(raw, str):
        raise DecodeError(f"Timestamp must be a string, got {type(raw).__name__}")
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as e:
        raise DecodeError(f"Invalid timestamp: {raw!r}", original_error=e) from e
    if parsed.tzinfo is None:
        raise DecodeError(f"Timestamp has no UTC offset: {raw!r}")
    return parsed


class SessionCodec:
    """JSON codec for session records."""

    content_type = "application/json"

    def encode(self, record: SessionRecord) -> bytes:
        """
        Encode a session record into a byte payload.

        Args:
            record: Session record to encode

        Returns:
            UTF-8 encoded JSON payload

        Raises:
            UnsupportedTypeError: If the data map holds an unsupported value
            EncodeError: If the record cannot be serialized for any other reason
        """
        cookie = record.cookie
        try:
            document = {
                "v": FORMAT_VERSION,
                "id": record.id,
                "status": SessionStatus(record.status).value,
                "idle_deadline": record.idle_deadline.isoformat(),
                "renewal_deadline": record.renewal_deadline.isoformat(),
                "lifetime_deadline": record.lifetime_deadline.isoformat(),
                "cookie": {
                    "name": cookie.name,
                    "value": cookie.value,
                    "expires": cookie.expires.isoformat(),
                    "path": cookie.path,
                    "secure": cookie.secure,
                    "http_only": cookie.http_only,
                    "same_site": cookie.same_site,
                },
                "data": _encode_map(record.data),
            }
            return json.dumps(document, separators=(",", ":")).encode("utf-8")
        except EncodeError:
            raise
        except (TypeError, ValueError, AttributeError) as e:
            raise EncodeError(f"Failed to encode session record: {e}") from e

    def decode(self, payload: bytes) -> SessionRecord:
        """
        Decode a byte payload into a session record.

        Args:
            payload: Bytes previously produced by encode()

        Returns:
            Decoded session record

        Raises:
            DecodeError: If the payload is corrupt, incomplete or of an unknown version
        """
        try:
            document = json.loads(payload)
        except (TypeError, ValueError, RecursionError) as e:
            raise DecodeError(f"Session payload is not valid JSON: {e}", original_error=e) from e

        if not isinstance(document, dict):
            raise DecodeError("Session payload must be a JSON object")
        if document.get("v") != FORMAT_VERSION:
            raise DecodeError(f"Unsupported session payload version: {document.get('v')!r}")

        try:
            cookie_doc = document["cookie"]
            cookie = SessionCookie(
                name=cookie_doc["name"],
                value=cookie_doc["value"],
                expires=_parse_timestamp(cookie_doc["expires"]),
                path=cookie_doc["path"],
                secure=cookie_doc["secure"],
                http_only=cookie_doc["http_only"],
                same_site=cookie_doc["same_site"],
            )
            data = document["data"]
            if not isinstance(data, dict):
                raise DecodeError("Session data must be a JSON object")

            return SessionRecord(
                id=document["id"],
                status=SessionStatus(document["status"]),
                idle_deadline=_parse_timestamp(document["idle_deadline"]),
                renewal_deadline=_parse_timestamp(document["renewal_deadline"]),
                lifetime_deadline=_parse_timestamp(document["lifetime_deadline"]),
                cookie=cookie,
                data=_decode_map(data),
            )
        except DecodeError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Malformed session payload: {e!r}", original_error=e) from e


__all__ = ["SessionCodec", "FORMAT_VERSION"]
