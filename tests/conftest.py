"""
Shared pytest fixtures.

The four services run in-process: every outbound httpx call goes through a
ServiceRouter transport that dispatches by host name to the matching FastAPI
app, and the RabbitMQ publisher is replaced by RecordingPublisher.
"""

import dataclasses
import os
import tempfile
from dataclasses import dataclass, field

import httpx
import pytest

# Module-level apps are built on import; keep them quiet and off the broker.
os.environ.setdefault("STAGE_DELAY_SCALE", "0")
os.environ.setdefault("NOTIFICATION_CONSUME_QUEUE", "false")
os.environ.setdefault("NOTIFICATION_DB_PATH", os.path.join(tempfile.mkdtemp(), "notifications.db"))

from common import NotificationRequest, Settings  # noqa: E402
from gateway_service.app import create_app as create_gateway  # noqa: E402
from inventory_service.app import create_app as create_inventory  # noqa: E402
from notification_service.app import create_app as create_notification  # noqa: E402
from order_service.app import create_app as create_order  # noqa: E402


class RecordingPublisher:
    """Stands in for NotificationPublisher; keeps every published request."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[NotificationRequest] = []

    async def publish(self, request: NotificationRequest) -> str:
        if self.fail:
            raise ConnectionError("broker unavailable")
        self.published.append(request)
        return f"msg-{len(self.published)}"

    async def close(self) -> None:
        pass

    def of_type(self, notification_type: str) -> list[NotificationRequest]:
        return [r for r in self.published if r.type == notification_type]


class ServiceRouter(httpx.AsyncBaseTransport):
    """Routes requests by host to in-process ASGI apps and records each call."""

    def __init__(self) -> None:
        self.apps: dict[str, httpx.ASGITransport] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str, str]] = []

    def mount(self, host: str, app) -> None:
        self.apps[host] = httpx.ASGITransport(app=app)

    def paths_to(self, host: str) -> list[str]:
        return [path for h, _, path in self.calls if h == host]

    def paths_starting(self, prefix: str) -> list[str]:
        return [path for _, _, path in self.calls if path.startswith(prefix)]

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.calls.append((host, request.method, request.url.path))
        if host in self.failures:
            raise self.failures[host]
        return await self.apps[host].handle_async_request(request)


@dataclass
class Cluster:
    settings: Settings
    router: ServiceRouter
    client: httpx.AsyncClient
    publisher: RecordingPublisher
    apps: dict = field(default_factory=dict)

    def client_for(self, host: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.router, base_url=f"http://{host}")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        gateway_url="http://gateway",
        order_url="http://order",
        inventory_url="http://inventory",
        notification_url="http://notification",
        stage_delay_scale=0.0,
        db_path=str(tmp_path / "notifications.db"),
        consume_queue=False,
        http_timeout_ms=1000,
        callback_timeout_ms=500,
        consumer_message_timeout_ms=1000,
    )


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


def build_cluster(settings: Settings, publisher: RecordingPublisher) -> Cluster:
    router = ServiceRouter()
    client = httpx.AsyncClient(transport=router)
    apps = {
        "gateway": create_gateway(settings, client, publisher),
        "order": create_order(settings, client, publisher),
        "inventory": create_inventory(settings, client, publisher),
        "notification": create_notification(settings, client, consume_queue=False),
    }
    for host, app in apps.items():
        router.mount(host, app)
    return Cluster(settings=settings, router=router, client=client, publisher=publisher, apps=apps)


@pytest.fixture
def cluster(settings, publisher) -> Cluster:
    return build_cluster(settings, publisher)


@pytest.fixture
def make_cluster(settings):
    """Build a cluster with Settings overrides and an optional publisher."""

    def _make(publisher: RecordingPublisher | None = None, **overrides) -> Cluster:
        return build_cluster(dataclasses.replace(settings, **overrides), publisher or RecordingPublisher())

    return _make


@pytest.fixture
def broken_publisher() -> RecordingPublisher:
    return RecordingPublisher(fail=True)
