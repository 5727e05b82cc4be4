"""
Publishes NotificationRequest messages to the notification exchange.
"""

from __future__ import annotations

import asyncio
import logging

import aio_pika

from broker.config import ROUTING_KEY
from broker.setup import declare_exchange, setup_queues
from common.ids import new_message_id
from common.models import NotificationRequest

logger = logging.getLogger(__name__)


class NotificationPublisher:
    """
    Lazily connects on first publish so a service can start while RabbitMQ is
    still down; publishing then fails and the caller treats it as best-effort.
    """

    def __init__(self, rabbit_url: str, connect_timeout: float = 5.0) -> None:
        self._rabbit_url = rabbit_url
        self._connect_timeout = connect_timeout
        self._connection: aio_pika.abc.AbstractRobustConnection | None = None
        self._exchange: aio_pika.abc.AbstractExchange | None = None
        self._lock = asyncio.Lock()

    async def _get_exchange(self) -> aio_pika.abc.AbstractExchange:
        async with self._lock:
            if self._exchange is not None:
                return self._exchange
            connection = await aio_pika.connect_robust(self._rabbit_url, timeout=self._connect_timeout)
            try:
                channel = await connection.channel(publisher_confirms=True)
                await setup_queues(channel)
                exchange = await declare_exchange(channel)
            except Exception:
                await connection.close()
                raise
            self._connection = connection
            self._exchange = exchange
            return exchange

    async def publish(self, request: NotificationRequest) -> str:
        """Publish a persistent message and return its message_id."""
        exchange = await self._get_exchange()
        message_id = new_message_id()
        await exchange.publish(
            aio_pika.Message(
                body=request.to_json_bytes(),
                content_type="application/json",
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                message_id=message_id,
                correlation_id=request.order_id,
            ),
            routing_key=ROUTING_KEY,
        )
        logger.info("Published %s for order %s (message %s)", request.type, request.order_id, message_id)
        return message_id

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
        self._connection = None
        self._exchange = None
