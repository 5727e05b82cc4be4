"""
Notification pipelines shared by both ingress paths.

Queue ingress:  prepare -> enrich -> format_content -> deliver
HTTP ingress:   validate -> load_template -> personalize -> send_to_channel -> audit

Either path ends with at most one callback to the gateway, issued only after a
successful delivery and only when the request asks for it.
"""

from __future__ import annotations

import logging
import re

import httpx

from common import InvalidArgument, Settings, init_db, record_notification
from common.http import fetch_text, resource_url
from common.models import NotificationRequest, NotificationType
from common.outcomes import Outcome, SideEffect, best_effort
from common.stages import SimulatedStages

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "Dear Customer, your order {{orderId}} is {{status}}"

TEMPLATES: dict[NotificationType, str] = {
    NotificationType.ORDER_CREATED: "Dear Customer, your order {{orderId}} has been received and is {{status}}",
    NotificationType.ORDER_PROCESSED: DEFAULT_TEMPLATE,
    NotificationType.ORDER_UPDATE: DEFAULT_TEMPLATE,
    NotificationType.INVENTORY_RESERVED: "Dear Customer, items for your order {{orderId}} are {{status}}",
}

_PLACEHOLDER = re.compile(r"\{\{(orderId|status)\}\}")


def template_for(notification_type: str) -> str:
    """Template for a recognized type, DEFAULT_TEMPLATE for anything else."""
    try:
        return TEMPLATES[NotificationType(notification_type)]
    except ValueError:
        return DEFAULT_TEMPLATE


def personalize(template: str, order_id: str, status: str) -> str:
    """
    Replace every {{orderId}} and {{status}} placeholder in a single pass.

    Substituted values are never rescanned, so a value that itself looks
    like a placeholder is inserted literally.

    >>> personalize("Dear Customer, your order {{orderId}} is {{status}}", "X", "Y")
    'Dear Customer, your order X is Y'
    """
    values = {"orderId": order_id, "status": status}
    return _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)


class NotificationStages(SimulatedStages):
    """Stage work for both pipelines. Override a method to do real I/O."""

    # queue ingress

    async def prepare(self, request: NotificationRequest) -> None:
        await self.work("prepare", 30)

    async def enrich(self, request: NotificationRequest) -> None:
        await self.work("enrich", 40)

    async def format_content(self, request: NotificationRequest) -> str:
        await self.work("format_content", 25)
        return personalize(template_for(request.type), request.order_id, request.status)

    async def deliver(self, channel: str, message: str) -> bool:
        logger.debug("Delivering notification via %s", channel)
        await self.work("deliver", 50)
        return True

    # HTTP ingress

    async def validate(self, request: NotificationRequest) -> None:
        await self.work("validate", 20)
        if not request.channel:
            raise InvalidArgument("Channel is required")

    async def load_template(self, notification_type: str) -> str:
        await self.work("load_template", 30)
        return template_for(notification_type)

    async def personalize(self, template: str, request: NotificationRequest) -> str:
        await self.work("personalize", 25)
        return personalize(template, request.order_id, request.status)

    async def send_to_channel(self, channel: str, message: str) -> bool:
        logger.debug("Sending notification via channel %s", channel)
        await self.work("send_to_channel", 40)
        return True

    async def audit(self, request: NotificationRequest, message: str) -> None:
        await self.work("audit", 15)

    async def check_history(self, order_id: str) -> str:
        await self.work("check_history", 35)
        return "DELIVERED"


class AuditingStages(NotificationStages):
    """NotificationStages that write the audit step to SQLite."""

    def __init__(self, db_path: str, delay_scale: float = 1.0) -> None:
        super().__init__(delay_scale)
        self.db_path = db_path
        self._db_ready = False

    async def audit(self, request: NotificationRequest, message: str) -> None:
        await super().audit(request, message)
        if not self._db_ready:
            init_db(self.db_path)
            self._db_ready = True
        record_notification(self.db_path, request, message)


class NotificationPipeline:
    def __init__(self, settings: Settings, client: httpx.AsyncClient, stages: NotificationStages) -> None:
        self.settings = settings
        self.client = client
        self.stages = stages

    async def process_queued(self, request: NotificationRequest) -> Outcome:
        """Run the queue pipeline for one message."""
        logger.info("Processing queued %s notification for order %s", request.type, request.order_id)

        await self.stages.prepare(request)
        await self.stages.enrich(request)
        message = await self.stages.format_content(request)
        delivered = await self.stages.deliver(request.channel, message)

        side_effects = []
        if delivered and request.callback_required:
            side_effects.append(await self._callback(request.order_id))

        logger.info("Queued notification processed for order %s", request.order_id)
        return Outcome(response=message, side_effects=side_effects)

    async def send_direct(self, request: NotificationRequest) -> Outcome:
        """Run the HTTP pipeline. Raises InvalidArgument before any work for an empty order id."""
        if not request.order_id:
            raise InvalidArgument("Order ID is required")
        logger.info("Received notification request for order %s", request.order_id)

        await self.stages.validate(request)
        template = await self.stages.load_template(request.type)
        message = await self.stages.personalize(template, request)
        sent = await self.stages.send_to_channel(request.channel, message)

        side_effects = []
        if sent:
            await self.stages.audit(request, message)
            if request.callback_required:
                side_effects.append(await self._callback(request.order_id))

        logger.info("Notification sent for order %s", request.order_id)
        return Outcome(response=f"Notification sent: {message}", side_effects=side_effects)

    async def notification_status(self, order_id: str) -> str:
        logger.info("Checking notification status for order %s", order_id)
        status = await self.stages.check_history(order_id)
        return f"Notification: Status for order {order_id} - {status}"

    async def _callback(self, order_id: str) -> SideEffect:
        op = fetch_text(
            self.client,
            resource_url(self.settings.gateway_url, "api/callback", order_id),
            self.settings.callback_timeout,
        )
        return await best_effort("gateway callback", order_id, op)
