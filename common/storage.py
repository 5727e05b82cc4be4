"""
SQLite helpers for the notification service.

Provides init_db(), the notification audit trail, and message-id idempotency
for redelivered broker messages. Uses WAL mode and parameterized queries.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path

from common.ids import now_iso
from common.models import NotificationRequest


def init_db(db_path: str) -> None:
    """
    Create database and tables if they do not exist.
    Enables WAL mode for better concurrency.

    Tables:
    - notification_audit(id, order_id, type, channel, status, message, created_at)
    - processed_messages(message_id, order_id, seen_at)
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with _connection(db_path) as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS notification_audit (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                order_id TEXT NOT NULL,
                type TEXT NOT NULL,
                channel TEXT NOT NULL,
                status TEXT NOT NULL,
                message TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS processed_messages (
                message_id TEXT PRIMARY KEY,
                order_id TEXT NOT NULL,
                seen_at TEXT NOT NULL
            )
        """)
        conn.commit()


@contextmanager
def _connection(db_path: str):
    """Context manager for a SQLite connection (auto-commit on exit, rollback on error)."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def record_notification(db_path: str, request: NotificationRequest, message: str) -> None:
    """Append one sent notification to the audit trail."""
    with _connection(db_path) as conn:
        conn.execute(
            """
            INSERT INTO notification_audit (order_id, type, channel, status, message, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (request.order_id, request.type, request.channel, request.status, message, now_iso()),
        )


def get_audit_trail(db_path: str, order_id: str) -> list[dict[str, str]]:
    """
    Return audit rows for order_id, oldest first.

    >>> import tempfile
    >>> db = tempfile.mktemp(suffix=".db")
    >>> init_db(db)
    >>> req = NotificationRequest(orderId="o1", type="ORDER_UPDATE", status="RESERVED", channel="EMAIL")
    >>> record_notification(db, req, "Dear Customer, your order o1 is RESERVED")
    >>> [row["message"] for row in get_audit_trail(db, "o1")]
    ['Dear Customer, your order o1 is RESERVED']
    """
    with _connection(db_path) as conn:
        rows = conn.execute(
            """
            SELECT order_id, type, channel, status, message, created_at
            FROM notification_audit WHERE order_id = ? ORDER BY id
            """,
            (order_id,),
        ).fetchall()
    return [dict(row) for row in rows]


def is_message_processed(db_path: str, message_id: str) -> bool:
    """True if message_id was already recorded by mark_message_processed()."""
    with _connection(db_path) as conn:
        row = conn.execute(
            "SELECT 1 FROM processed_messages WHERE message_id = ?",
            (message_id,),
        ).fetchone()
    return row is not None


def mark_message_processed(db_path: str, message_id: str, order_id: str) -> bool:
    """
    Record that a message was processed (idempotency). Returns True if inserted,
    False if message_id was already seen.

    >>> import tempfile
    >>> db = tempfile.mktemp(suffix=".db")
    >>> init_db(db)
    >>> mark_message_processed(db, "msg-1", "o1")
    True
    >>> mark_message_processed(db, "msg-1", "o1")
    False
    """
    with _connection(db_path) as conn:
        try:
            conn.execute(
                "INSERT INTO processed_messages (message_id, order_id, seen_at) VALUES (?, ?, ?)",
                (message_id, order_id, now_iso()),
            )
            return True
        except sqlite3.IntegrityError:
            return False
