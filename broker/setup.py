"""Declare the notification exchange, queue, binding, and DLQ."""

import asyncio
import logging

import aio_pika
from aio_pika import ExchangeType

from broker.config import EXCHANGE, QUEUE_NOTIFICATIONS, QUEUE_NOTIFICATIONS_DLQ, ROUTING_KEY

logger = logging.getLogger(__name__)


async def declare_exchange(channel: aio_pika.abc.AbstractChannel) -> aio_pika.abc.AbstractExchange:
    return await channel.declare_exchange(EXCHANGE, ExchangeType.TOPIC, durable=True)


async def setup_queues(channel: aio_pika.abc.AbstractChannel) -> aio_pika.abc.AbstractQueue:
    """Declare exchange, queue, DLQ, and binding. Returns the notification queue."""
    exchange = await declare_exchange(channel)

    # DLQ for notification-queue (poison messages)
    await channel.declare_queue(QUEUE_NOTIFICATIONS_DLQ, durable=True)

    queue = await channel.declare_queue(
        QUEUE_NOTIFICATIONS,
        durable=True,
        arguments={"x-dead-letter-exchange": "", "x-dead-letter-routing-key": QUEUE_NOTIFICATIONS_DLQ},
    )
    await queue.bind(exchange, routing_key=ROUTING_KEY)

    logger.info("Broker queues declared")
    return queue


async def connect(rabbit_url: str, attempts: int = 30, delay: float = 2.0) -> aio_pika.abc.AbstractRobustConnection:
    """Connect to RabbitMQ, retrying a bounded number of times."""
    for attempt in range(attempts):
        try:
            return await aio_pika.connect_robust(rabbit_url)
        except Exception as e:
            logger.warning("RabbitMQ connect attempt %s failed: %s", attempt + 1, e)
            if attempt + 1 < attempts:
                await asyncio.sleep(delay)
    raise RuntimeError("Could not connect to RabbitMQ")
