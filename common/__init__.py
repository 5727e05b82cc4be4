"""
Shared common module for the gateway, order, inventory and notification services.

Uses Pydantic v2 for the message schema and httpx for outbound calls.
"""

from common.config import Settings
from common.errors import (
    InvalidArgument,
    NotFound,
    ServiceError,
    Timeout,
    UpstreamError,
    error_for_status,
)
from common.ids import new_message_id, now_iso, stable_hash
from common.logging import setup_logging
from common.models import Channel, NotificationRequest, NotificationType
from common.outcomes import Outcome, SideEffect, best_effort
from common.storage import (
    get_audit_trail,
    init_db,
    is_message_processed,
    mark_message_processed,
    record_notification,
)

__all__ = [
    "Settings",
    "ServiceError",
    "InvalidArgument",
    "NotFound",
    "Timeout",
    "UpstreamError",
    "error_for_status",
    "new_message_id",
    "now_iso",
    "stable_hash",
    "setup_logging",
    "Channel",
    "NotificationRequest",
    "NotificationType",
    "Outcome",
    "SideEffect",
    "best_effort",
    "init_db",
    "record_notification",
    "get_audit_trail",
    "is_message_processed",
    "mark_message_processed",
]
