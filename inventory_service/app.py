"""
InventoryService: checks and reserves stock for an order.

Pipeline per request: query database -> check stock level -> reserve ->
update cache. Afterwards it verifies with the gateway and emits an
ORDER_UPDATE notification, both best-effort.
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import PlainTextResponse

from broker import NotificationPublisher
from common import Settings, setup_logging, stable_hash
from common.http import fetch_text, post_json, resource_url
from common.models import Channel, NotificationRequest, NotificationType
from common.outcomes import Outcome, SideEffect, best_effort
from common.stages import SimulatedStages

setup_logging("inventory-service")
logger = logging.getLogger(__name__)

STOCK_BASE = 100


def inventory_confirmation(order_id: str) -> str:
    return f"Inventory: Stock available for order {order_id}"


class InventoryStages(SimulatedStages):
    async def query_database(self, order_id: str) -> None:
        await self.work("query_database", 50)

    async def check_stock_level(self, order_id: str) -> int:
        await self.work("check_stock_level", 40)
        return STOCK_BASE + stable_hash(order_id) % 50

    async def reserve_inventory(self, order_id: str, quantity: int) -> None:
        logger.debug("Reserving %d units for order %s", quantity, order_id)
        await self.work("reserve_inventory", 30)

    async def update_cache(self, order_id: str) -> None:
        await self.work("update_cache", 20)


class InventoryService:
    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        publisher: NotificationPublisher,
        stages: InventoryStages | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.publisher = publisher
        self.stages = stages or InventoryStages(settings.stage_delay_scale)

    async def check_inventory(self, order_id: str) -> Outcome:
        logger.info("Checking inventory for order %s", order_id)

        await self.stages.query_database(order_id)
        stock_level = await self.stages.check_stock_level(order_id)
        logger.info("Stock level for order %s: %d", order_id, stock_level)
        await self.stages.reserve_inventory(order_id, stock_level)
        await self.stages.update_cache(order_id)

        side_effects = [
            await best_effort("gateway verify", order_id, self._verify_with_gateway(order_id)),
        ]
        notified = await self._notify(order_id)
        if notified is not None:
            side_effects.append(notified)

        logger.info("Inventory check completed for order %s", order_id)
        return Outcome(response=inventory_confirmation(order_id), side_effects=side_effects)

    async def _verify_with_gateway(self, order_id: str) -> str:
        return await fetch_text(
            self.client,
            resource_url(self.settings.gateway_url, "verify", order_id),
            self.settings.callback_timeout,
        )

    async def _notify(self, order_id: str) -> SideEffect | None:
        request = NotificationRequest(
            order_id=order_id,
            type=NotificationType.ORDER_UPDATE.value,
            status="RESERVED",
            channel=Channel.EMAIL.value,
            callback_required=True,
        )
        via = self.settings.inventory_notify_via
        if via == "http":
            op = post_json(
                self.client,
                f"{self.settings.notification_url}/notify",
                request.to_wire(),
                self.settings.http_timeout,
            )
            return await best_effort("notify via http", order_id, op)
        if via == "broker":
            return await best_effort("notify via broker", order_id, self.publisher.publish(request))
        return None


router = APIRouter()


@router.get("/inventory/{order_id:path}", response_class=PlainTextResponse)
async def check_inventory(order_id: str, request: Request) -> str:
    outcome = await request.app.state.inventory.check_inventory(order_id)
    return outcome.response


@router.get("/health", response_class=PlainTextResponse)
def health() -> str:
    return "Inventory service is running"


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

    app = FastAPI(title="Inventory Service", lifespan=lifespan)
    app.state.inventory = InventoryService(settings, client, publisher)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8082)
