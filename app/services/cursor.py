"""Opaque pagination cursors for the Responses API"""
import base64
import binascii
import json
from typing import NamedTuple, Optional

from app.services.payload_builder import parse_timestamp


class InvalidCursorError(ValueError):
    """Raised when a client sends a cursor this service did not issue"""


class Cursor(NamedTuple):
    """Sort key of the last row a page returned"""
    submitted_at: Optional[str]
    id: str


def encode_cursor(submitted_at: Optional[str], row_id: str) -> str:
    raw = json.dumps({"submitted_at": submitted_at, "id": row_id}, separators=(",", ":"))
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(token: str) -> Cursor:
    # Query strings turn an unescaped "+" into a space
    token = token.strip().replace(" ", "+")
    try:
        data = json.loads(base64.b64decode(token, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidCursorError("Invalid cursor") from e

    if not isinstance(data, dict) or not isinstance(data.get("id"), str):
        raise InvalidCursorError("Invalid cursor")
    submitted_at = data.get("submitted_at")
    if submitted_at is not None:
        if not isinstance(submitted_at, str):
            raise InvalidCursorError("Invalid cursor")
        try:
            parse_timestamp(submitted_at)
        except ValueError as e:
            raise InvalidCursorError("Invalid cursor") from e

    return Cursor(submitted_at=submitted_at, id=data["id"])
