"""
OrderService: processes an order and reserves its inventory.

GET /order/{order_id} runs the per-request state machine

    RECEIVED -> ELIGIBILITY_CHECKED -> AMOUNT_CALCULATED -> INVENTORY_QUERIED
    -> RULES_APPLIED -> CALLBACK_SENT -> NOTIFIED -> DONE

Reserved sentinel ids stop right after RECEIVED with a distinct error each,
which is how the chain demonstrates propagation of heterogeneous failures.
The gateway callback and the ORDER_PROCESSED notification are best-effort.
"""

import logging
from contextlib import asynccontextmanager
from enum import Enum

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import PlainTextResponse

from broker import NotificationPublisher
from common import (
    InvalidArgument,
    NotFound,
    ServiceError,
    Settings,
    Timeout,
    UpstreamError,
    setup_logging,
    stable_hash,
)
from common.http import fetch_text, resource_url
from common.models import Channel, NotificationRequest, NotificationType
from common.outcomes import Outcome, best_effort
from common.stages import SimulatedStages

setup_logging("order-service")
logger = logging.getLogger(__name__)

AMOUNT_BASE = 99.99

# order id -> (error class, error type tag, message)
SENTINEL_FAILURES: dict[str, tuple[type[ServiceError], str, str]] = {
    "timeout-order": (Timeout, "timeout", "Order processing timeout exceeded"),
    "invalid-order": (InvalidArgument, "validation", "Invalid order ID format"),
    "not-found-order": (NotFound, "not_found", "Order not found in database"),
    "db-error-order": (UpstreamError, "database", "Database connection failed"),
}


class OrderState(str, Enum):
    RECEIVED = "RECEIVED"
    ELIGIBILITY_CHECKED = "ELIGIBILITY_CHECKED"
    AMOUNT_CALCULATED = "AMOUNT_CALCULATED"
    INVENTORY_QUERIED = "INVENTORY_QUERIED"
    RULES_APPLIED = "RULES_APPLIED"
    CALLBACK_SENT = "CALLBACK_SENT"
    NOTIFIED = "NOTIFIED"
    DONE = "DONE"
    FAILED = "FAILED"


def calculate_amount(order_id: str) -> float:
    """
    >>> calculate_amount("abc") == calculate_amount("abc")
    True
    """
    return round(AMOUNT_BASE + stable_hash(order_id) % 100, 2)


class OrderStages(SimulatedStages):
    async def check_eligibility(self, order_id: str) -> None:
        await self.work("check_eligibility", 50)

    async def calculate_amount(self, order_id: str) -> float:
        await self.work("calculate_amount", 30)
        return calculate_amount(order_id)

    async def apply_business_rules(self, order_id: str, amount: float) -> None:
        # Pass-through hook; real rules plug in here.
        logger.debug("Applying business rules for order %s with amount $%.2f", order_id, amount)
        await self.work("apply_business_rules", 20)


class OrderProcessor:
    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        publisher: NotificationPublisher,
        stages: OrderStages | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.publisher = publisher
        self.stages = stages or OrderStages(settings.stage_delay_scale)

    async def process_order(self, order_id: str) -> Outcome:
        logger.info("Processing order %s", order_id)
        self._enter(order_id, OrderState.RECEIVED)

        failure = SENTINEL_FAILURES.get(order_id)
        if failure is not None:
            error_cls, error_type, message = failure
            self._enter(order_id, OrderState.FAILED)
            logger.error("Order %s failed [error.type=%s]: %s", order_id, error_type, message)
            raise error_cls(message)

        await self.stages.check_eligibility(order_id)
        self._enter(order_id, OrderState.ELIGIBILITY_CHECKED)

        amount = await self.stages.calculate_amount(order_id)
        self._enter(order_id, OrderState.AMOUNT_CALCULATED)
        logger.info("Order %s amount calculated: $%.2f", order_id, amount)

        inventory_response = await fetch_text(
            self.client,
            resource_url(self.settings.inventory_url, "inventory", order_id),
            self.settings.http_timeout,
        )
        self._enter(order_id, OrderState.INVENTORY_QUERIED)

        await self.stages.apply_business_rules(order_id, amount)
        self._enter(order_id, OrderState.RULES_APPLIED)

        callback = await best_effort("gateway callback", order_id, self._callback_gateway(order_id))
        if callback.ok:
            self._enter(order_id, OrderState.CALLBACK_SENT)

        notified = await best_effort("publish ORDER_PROCESSED", order_id, self._publish_processed(order_id))
        self._enter(order_id, OrderState.NOTIFIED)

        self._enter(order_id, OrderState.DONE)
        logger.info("Order %s processed successfully", order_id)
        return Outcome(
            response=f"Order -> {inventory_response}",
            side_effects=[callback, notified],
        )

    @staticmethod
    def _enter(order_id: str, state: OrderState) -> None:
        logger.debug("Order %s -> %s", order_id, state.value)

    async def _callback_gateway(self, order_id: str) -> str:
        return await fetch_text(
            self.client,
            resource_url(self.settings.gateway_url, "process", order_id),
            self.settings.callback_timeout,
        )

    async def _publish_processed(self, order_id: str) -> str:
        return await self.publisher.publish(
            NotificationRequest(
                order_id=order_id,
                type=NotificationType.ORDER_PROCESSED.value,
                status="PROCESSED",
                channel=Channel.SMS.value,
                callback_required=False,
            )
        )


router = APIRouter()


@router.get("/order/{order_id:path}", response_class=PlainTextResponse)
async def process_order(order_id: str, request: Request) -> str:
    outcome = await request.app.state.orders.process_order(order_id)
    return outcome.response


@router.get("/health", response_class=PlainTextResponse)
def health() -> str:
    return "Order service is running"


def create_app(
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
    publisher: NotificationPublisher | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    owns_client = client is None
    client = client or httpx.AsyncClient()
    publisher = publisher or NotificationPublisher(settings.rabbit_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await publisher.close()
        if owns_client:
            await client.aclose()

    app = FastAPI(title="Order Service", lifespan=lifespan)
    app.state.orders = OrderProcessor(settings, client, publisher)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8081)
