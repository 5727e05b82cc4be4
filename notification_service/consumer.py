"""
NotificationService queue ingress: consumes NotificationRequest messages.

Messages that cannot be parsed, or lack an order id or channel, are rejected
without requeue and land in the DLQ. A message whose pipeline fails or exceeds
the per-message timeout is nacked with requeue so the broker redelivers it.
Redeliveries of an already processed message_id are acknowledged and skipped,
so a duplicate never triggers a second gateway callback.
"""

import asyncio
import logging

import aio_pika
import httpx
from pydantic import ValidationError

from broker import QUEUE_NOTIFICATIONS
from broker.setup import connect, setup_queues
from common import (
    NotificationRequest,
    Settings,
    init_db,
    is_message_processed,
    mark_message_processed,
    setup_logging,
)
from common.outcomes import Outcome
from notification_service.pipeline import AuditingStages, NotificationPipeline

logger = logging.getLogger(__name__)


def parse_notification(body: bytes) -> NotificationRequest | None:
    """Parse a NotificationRequest from JSON. Returns None if malformed (poison)."""
    try:
        request = NotificationRequest.model_validate_json(body)
    except ValidationError as e:
        logger.warning("Malformed notification message (rejecting to DLQ): %s", e.error_count())
        return None
    if not request.order_id or not request.channel:
        logger.warning("Notification message without orderId or channel (rejecting to DLQ)")
        return None
    return request


class NotificationConsumer:
    def __init__(self, settings: Settings, pipeline: NotificationPipeline) -> None:
        self.settings = settings
        self.pipeline = pipeline
        init_db(settings.db_path)

    async def handle(self, message_id: str | None, request: NotificationRequest) -> Outcome | None:
        """
        Run the queue pipeline once per message_id. Returns None for a duplicate.

        Raises asyncio.TimeoutError when processing exceeds the per-message
        timeout; the message is then left for redelivery.
        """
        if message_id and is_message_processed(self.settings.db_path, message_id):
            logger.info("Duplicate message %s (order %s), skipping", message_id, request.order_id)
            return None

        outcome = await asyncio.wait_for(
            self.pipeline.process_queued(request),
            timeout=self.settings.consumer_message_timeout_ms / 1000.0,
        )
        if message_id:
            mark_message_processed(self.settings.db_path, message_id, request.order_id)
        return outcome

    async def on_message(self, message: aio_pika.abc.AbstractIncomingMessage) -> None:
        request = parse_notification(message.body)
        if request is None:
            # Poison message: reject without requeue -> goes to DLQ
            await message.reject(requeue=False)
            return

        async with message.process(requeue=True, ignore_processed=True):
            await self.handle(message.message_id, request)


async def run_consumer(settings: Settings, pipeline: NotificationPipeline) -> None:
    """Consume the notification queue until cancelled."""
    connection = await connect(settings.rabbit_url)
    try:
        channel = await connection.channel()
        await channel.set_qos(prefetch_count=settings.consumer_prefetch)
        queue = await setup_queues(channel)

        consumer = NotificationConsumer(settings, pipeline)
        await queue.consume(consumer.on_message)
        logger.info("NotificationService consuming %s", QUEUE_NOTIFICATIONS)
        await asyncio.Future()
    finally:
        await connection.close()


async def main() -> None:
    settings = Settings.from_env()
    async with httpx.AsyncClient() as client:
        pipeline = NotificationPipeline(
            settings, client, AuditingStages(settings.db_path, settings.stage_delay_scale)
        )
        await run_consumer(settings, pipeline)


if __name__ == "__main__":
    setup_logging("notification-consumer")
    asyncio.run(main())
