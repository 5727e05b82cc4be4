"""
Identifier, hashing and timestamp utilities.

Provides new_message_id() for broker messages, stable_hash() for the synthetic
values derived from an order id, and now_iso() with deterministic UTC ISO 8601
formatting.
"""

from __future__ import annotations

import zlib
from datetime import datetime, timezone

from ulid import ULID


def new_message_id() -> str:
    """
    Generate a new broker message ID (ULID, lexicographically sortable).

    >>> id_ = new_message_id()
    >>> isinstance(id_, str) and len(id_) == 26
    True
    """
    return str(ULID())


def stable_hash(value: str) -> int:
    """
    Non-negative string hash that is identical across processes and runs.

    Python's built-in hash() is salted per process, so CRC-32 of the UTF-8
    bytes is used instead.

    >>> stable_hash("abc") == stable_hash("abc")
    True
    >>> stable_hash("abc")
    891568578
    """
    return zlib.crc32(value.encode("utf-8"))


def now_iso() -> str:
    """
    Return current UTC time as ISO 8601 string with Z suffix.
    Deterministic format: YYYY-MM-DDTHH:MM:SS.ffffffZ

    >>> s = now_iso()
    >>> s.endswith('Z') and 'T' in s
    True
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
