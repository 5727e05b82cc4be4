"""
NotificationService HTTP ingress.

POST /notify runs the direct pipeline; GET /notifications/{order_id} reports a
synthetic delivery status. When NOTIFICATION_CONSUME_QUEUE is set the same
process also drains the notification queue in a background task.
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import PlainTextResponse

from common import Settings, setup_logging
from common.models import NotificationRequest
from notification_service.consumer import run_consumer
from notification_service.pipeline import AuditingStages, NotificationPipeline

setup_logging("notification-service")
logger = logging.getLogger(__name__)


def _log_consumer_exit(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Notification consumer stopped: %s", task.exception())


router = APIRouter()


@router.post("/notify", response_class=PlainTextResponse)
async def notify(payload: NotificationRequest, request: Request) -> str:
    outcome = await request.app.state.pipeline.send_direct(payload)
    return outcome.response


@router.get("/notifications/{order_id:path}", response_class=PlainTextResponse)
async def notification_status(order_id: str, request: Request) -> str:
    return await request.app.state.pipeline.notification_status(order_id)


@router.get("/health", response_class=PlainTextResponse)
def health() -> str:
    return "Notification service is running"


def create_app(
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
    consume_queue: bool | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    owns_client = client is None
    client = client or httpx.AsyncClient()
    if consume_queue is None:
        consume_queue = settings.consume_queue

    pipeline = NotificationPipeline(
        settings, client, AuditingStages(settings.db_path, settings.stage_delay_scale)
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        consumer = None
        if consume_queue:
            consumer = asyncio.create_task(run_consumer(settings, pipeline))
            consumer.add_done_callback(_log_consumer_exit)
        yield
        if consumer is not None:
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        if owns_client:
            await client.aclose()

    app = FastAPI(title="Notification Service", lifespan=lifespan)
    app.state.pipeline = pipeline
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8083)
