"""
Pydantic v2 models for the notification message exchanged between services.

NotificationRequest is both the broker message body and the POST /notify
body. Its JSON field names are camelCase; Python code uses snake_case
attributes through aliases.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Event tags the pipeline recognizes. Other values pass through untouched."""

    ORDER_CREATED = "ORDER_CREATED"
    ORDER_PROCESSED = "ORDER_PROCESSED"
    ORDER_UPDATE = "ORDER_UPDATE"
    INVENTORY_RESERVED = "INVENTORY_RESERVED"


class Channel(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"


class NotificationRequest(BaseModel):
    """
    Notification about an order event.

    type is an open string: the consumer branches only on NotificationType
    values and must accept anything else. Unknown JSON fields are ignored so
    newer publishers do not break older consumers.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    order_id: str = Field(..., alias="orderId")
    type: str
    status: str = ""
    channel: str
    callback_required: bool = Field(False, alias="callbackRequired")

    @property
    def known_type(self) -> NotificationType | None:
        """The recognized NotificationType, or None for an unrecognized tag."""
        try:
            return NotificationType(self.type)
        except ValueError:
            return None

    def to_wire(self) -> dict:
        """JSON-ready dict with the camelCase field names."""
        return self.model_dump(by_alias=True)

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode()
