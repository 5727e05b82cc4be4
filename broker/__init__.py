"""Shared RabbitMQ broker config, setup and publisher."""

from broker.config import (
    EXCHANGE,
    QUEUE_NOTIFICATIONS,
    QUEUE_NOTIFICATIONS_DLQ,
    ROUTING_KEY,
)
from broker.publisher import NotificationPublisher

__all__ = [
    "EXCHANGE",
    "QUEUE_NOTIFICATIONS",
    "QUEUE_NOTIFICATIONS_DLQ",
    "ROUTING_KEY",
    "NotificationPublisher",
]
