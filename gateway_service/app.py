"""
GatewayService: client entry point and callback target.

GET /api/order/{order_id} fans out to OrderService and InventoryService,
waits for both, and composes their responses. The callback endpoints are hit
asynchronously by the other services and must tolerate repeated calls.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import PlainTextResponse

from broker import NotificationPublisher
from common import InvalidArgument, Settings, setup_logging
from common.http import fetch_text, resource_url
from common.models import Channel, NotificationRequest, NotificationType
from common.outcomes import Outcome, best_effort
from common.stages import SimulatedStages

setup_logging("gateway-service")
logger = logging.getLogger(__name__)


class GatewayStages(SimulatedStages):
    async def process_callback(self, order_id: str) -> None:
        await self.work("process_callback", 25)

    async def verify(self, order_id: str) -> None:
        await self.work("verify", 15)


class Gateway:
    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        publisher: NotificationPublisher,
        stages: GatewayStages | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.publisher = publisher
        self.stages = stages or GatewayStages(settings.stage_delay_scale)

    async def handle_order_request(self, order_id: str) -> Outcome:
        if not order_id or not order_id.strip():
            raise InvalidArgument("Order ID cannot be empty")
        logger.info("Received request for order %s", order_id)

        metadata = {"orderId": order_id, "timestamp": int(time.time() * 1000), "source": "gateway-service"}
        logger.info("Order metadata prepared: %s", metadata)

        calls = [self._get(resource_url(self.settings.order_url, "order", order_id))]
        if self.settings.gateway_calls_inventory:
            calls.append(self._get(resource_url(self.settings.inventory_url, "inventory", order_id)))

        # Every sub-call settles before we either answer or fail.
        results = await asyncio.gather(*calls, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("Downstream call for order %s failed: %s", order_id, result)
                raise result

        published = await best_effort("publish ORDER_CREATED", order_id, self._publish_created(order_id))

        logger.info("Completed request for order %s", order_id)
        return Outcome(response=self.format_response(results), side_effects=[published])

    @staticmethod
    def format_response(sub_responses: list[str]) -> str:
        """
        >>> Gateway.format_response(["Order -> x", "Inventory: y"])
        'Gateway -> Order -> x | Gateway -> Inventory: y'
        """
        return " | ".join(f"Gateway -> {r}" for r in sub_responses)

    async def process_callback(self, order_id: str) -> str:
        logger.info("Callback received for order %s", order_id)
        await self.stages.process_callback(order_id)
        return f"Gateway: Callback processed for order {order_id}"

    async def verify(self, order_id: str) -> str:
        logger.info("Verification requested for order %s", order_id)
        await self.stages.verify(order_id)
        return f"Gateway: Order {order_id} verified"

    async def _get(self, url: str) -> str:
        return await fetch_text(self.client, url, self.settings.http_timeout)

    async def _publish_created(self, order_id: str) -> str:
        return await self.publisher.publish(
            NotificationRequest(
                order_id=order_id,
                type=NotificationType.ORDER_CREATED.value,
                status="CREATED",
                channel=Channel.EMAIL.value,
                callback_required=True,
            )
        )


router = APIRouter()


@router.get("/api/order/", response_class=PlainTextResponse)
async def order_without_id() -> str:
    raise InvalidArgument("Order ID cannot be empty")


@router.get("/api/order/{order_id:path}", response_class=PlainTextResponse)
async def get_order(order_id: str, request: Request) -> str:
    outcome = await request.app.state.gateway.handle_order_request(order_id)
    return outcome.response


@router.get("/api/callback/{order_id:path}", response_class=PlainTextResponse)
async def callback(order_id: str, request: Request) -> str:
    return await request.app.state.gateway.process_callback(order_id)


@router.get("/process/{order_id:path}", response_class=PlainTextResponse)
async def process(order_id: str, request: Request) -> str:
    return await request.app.state.gateway.process_callback(order_id)


@router.get("/verify/{order_id:path}", response_class=PlainTextResponse)
async def verify(order_id: str, request: Request) -> str:
    return await request.app.state.gateway.verify(order_id)


@router.get("/health", response_class=PlainTextResponse)
def health() -> str:
    return "Gateway service is running"


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

    app = FastAPI(title="Gateway Service", lifespan=lifespan)
    app.state.gateway = Gateway(settings, client, publisher)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
