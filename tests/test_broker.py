"""Tests for the RabbitMQ publisher and connect helper, using in-memory stand-ins for aio-pika objects."""

import asyncio
import json

import aio_pika
import pytest

from broker import EXCHANGE, QUEUE_NOTIFICATIONS, QUEUE_NOTIFICATIONS_DLQ, ROUTING_KEY, NotificationPublisher
from broker.setup import connect
from common import NotificationRequest


class FakeExchange:
    def __init__(self, name: str) -> None:
        self.name = name
        self.published: list[tuple[aio_pika.Message, str]] = []

    async def publish(self, message: aio_pika.Message, routing_key: str) -> None:
        self.published.append((message, routing_key))


class FakeQueue:
    def __init__(self, name: str, arguments: dict | None) -> None:
        self.name = name
        self.arguments = arguments
        self.bindings: list[str] = []

    async def bind(self, exchange: FakeExchange, routing_key: str) -> None:
        self.bindings.append(f"{exchange.name}:{routing_key}")


class FakeChannel:
    def __init__(self, broken: bool) -> None:
        self.broken = broken
        self.exchanges: dict[str, FakeExchange] = {}
        self.queues: dict[str, FakeQueue] = {}

    async def declare_exchange(self, name, type_, durable=False) -> FakeExchange:
        return self.exchanges.setdefault(name, FakeExchange(name))

    async def declare_queue(self, name, durable=False, arguments=None) -> FakeQueue:
        if self.broken and name == QUEUE_NOTIFICATIONS:
            raise RuntimeError("PRECONDITION_FAILED - inequivalent arg 'x-dead-letter-exchange'")
        self.queues[name] = FakeQueue(name, arguments)
        return self.queues[name]


class FakeConnection:
    def __init__(self, broken: bool) -> None:
        self.broken = broken
        self.channels: list[FakeChannel] = []
        self.closed = False

    async def channel(self, publisher_confirms: bool = True) -> FakeChannel:
        self.channels.append(FakeChannel(self.broken))
        return self.channels[-1]

    async def close(self) -> None:
        self.closed = True


class FakeBroker:
    """Records every connection the publisher opens; set broken to fail queue declaration."""

    def __init__(self) -> None:
        self.broken = False
        self.opened: list[FakeConnection] = []

    async def connect_robust(self, url, timeout=None) -> FakeConnection:
        self.opened.append(FakeConnection(self.broken))
        return self.opened[-1]


@pytest.fixture
def broker(monkeypatch) -> FakeBroker:
    fake = FakeBroker()
    monkeypatch.setattr(aio_pika, "connect_robust", fake.connect_robust)
    return fake


def _request(order_id: str = "order-42") -> NotificationRequest:
    return NotificationRequest(
        order_id=order_id, type="ORDER_CREATED", status="CREATED", channel="EMAIL", callback_required=True
    )


@pytest.mark.asyncio
async def test_publish_sends_persistent_message_with_unique_id(broker):
    publisher = NotificationPublisher("amqp://broker")

    first_id = await publisher.publish(_request("order-42"))
    second_id = await publisher.publish(_request("order-43"))

    [connection] = broker.opened
    [channel] = connection.channels
    exchange = channel.exchanges[EXCHANGE]
    [(first, first_key), (second, second_key)] = exchange.published

    assert first_key == second_key == ROUTING_KEY
    assert first.delivery_mode == aio_pika.DeliveryMode.PERSISTENT
    assert first.content_type == "application/json"
    assert first.message_id == first_id
    assert second.message_id == second_id
    assert first_id != second_id and len(first_id) == 26
    assert first.correlation_id == "order-42"
    assert json.loads(first.body) == {
        "orderId": "order-42",
        "type": "ORDER_CREATED",
        "status": "CREATED",
        "channel": "EMAIL",
        "callbackRequired": True,
    }


@pytest.mark.asyncio
async def test_publish_declares_queue_with_dead_letter_routing(broker):
    await NotificationPublisher("amqp://broker").publish(_request())

    queues = broker.opened[0].channels[0].queues
    assert set(queues) == {QUEUE_NOTIFICATIONS, QUEUE_NOTIFICATIONS_DLQ}
    assert queues[QUEUE_NOTIFICATIONS].arguments == {
        "x-dead-letter-exchange": "",
        "x-dead-letter-routing-key": QUEUE_NOTIFICATIONS_DLQ,
    }
    assert queues[QUEUE_NOTIFICATIONS].bindings == [f"{EXCHANGE}:{ROUTING_KEY}"]


@pytest.mark.asyncio
async def test_failed_setup_closes_its_connection(broker):
    broker.broken = True
    publisher = NotificationPublisher("amqp://broker")

    for _ in range(3):
        with pytest.raises(RuntimeError, match="PRECONDITION_FAILED"):
            await publisher.publish(_request())
    await publisher.close()

    assert len(broker.opened) == 3
    assert all(c.closed for c in broker.opened)


@pytest.mark.asyncio
async def test_publisher_recovers_after_failed_setup(broker):
    broker.broken = True
    publisher = NotificationPublisher("amqp://broker")
    with pytest.raises(RuntimeError):
        await publisher.publish(_request())

    broker.broken = False
    await publisher.publish(_request())
    await publisher.publish(_request())
    await publisher.close()

    assert len(broker.opened) == 2
    assert all(c.closed for c in broker.opened)
    assert len(broker.opened[1].channels[0].exchanges[EXCHANGE].published) == 2


@pytest.mark.asyncio
async def test_connect_gives_up_without_a_trailing_wait(monkeypatch):
    attempts = []
    waits = []

    async def refuse(url, timeout=None):
        attempts.append(url)
        raise ConnectionError("connection refused")

    async def record_wait(delay):
        waits.append(delay)

    monkeypatch.setattr(aio_pika, "connect_robust", refuse)
    monkeypatch.setattr(asyncio, "sleep", record_wait)

    with pytest.raises(RuntimeError, match="Could not connect"):
        await connect("amqp://broker", attempts=3, delay=0.5)

    assert len(attempts) == 3
    assert waits == [0.5, 0.5]
