"""Tests for the settled-order publisher, with pika's connection replaced."""

import json
import threading
import time
from decimal import Decimal

import pika
import pytest

from settlement_service import events
from settlement_service.events import OrderEventPublisher
from settlement_service.models import Currency, Order

from conftest import make_item


class FakeChannel:
    def __init__(self):
        self.bodies = []
        self.errors = []
        self.active = 0
        self.max_active = 0

    def queue_declare(self, queue, durable):
        self.queue = queue

    def basic_publish(self, exchange, routing_key, body, properties):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(0.001)
            if self.errors:
                raise self.errors.pop(0)
            self.bodies.append(json.loads(body))
        finally:
            self.active -= 1


class FakeConnection:
    def __init__(self, channel):
        self._channel = channel
        self.is_open = True

    @property
    def is_closed(self):
        return not self.is_open

    def channel(self):
        return self._channel

    def close(self):
        self.is_open = False


@pytest.fixture
def connections(monkeypatch):
    opened = []

    def connect(parameters):
        connection = FakeConnection(FakeChannel())
        opened.append(connection)
        return connection

    monkeypatch.setattr(events.pika, "BlockingConnection", connect)
    return opened


def make_order(order_id="order-1"):
    item = make_item().to_order_item()
    return Order(
        id=order_id, user_id="user-1", items=[item],
        subtotal=Decimal("1000"), service_fee=Decimal("20"), delivery_fee=Decimal("3500"),
        total=Decimal("4520"), payment_method="wallet", delivery_address="Lagos", currency=Currency.NGN,
    )


def test_publish_connects_lazily(connections):
    publisher = OrderEventPublisher(host="broker", queue="orders.settled")
    assert connections == []

    publisher.publish_order_settled(make_order())

    assert len(connections) == 1
    body = connections[0].channel().bodies[0]
    assert body["orderId"] == "order-1"
    assert body["total"] == "4520"
    assert body["currency"] == "NGN"


def test_failed_publish_reconnects_next_time(connections):
    publisher = OrderEventPublisher(host="broker")
    publisher.publish_order_settled(make_order("order-1"))
    connections[0].channel().errors.append(pika.exceptions.StreamLostError("connection reset"))

    with pytest.raises(pika.exceptions.AMQPError):
        publisher.publish_order_settled(make_order("order-2"))
    assert publisher.connection is None
    assert connections[0].is_closed

    publisher.publish_order_settled(make_order("order-3"))
    assert len(connections) == 2
    assert connections[1].channel().bodies[0]["orderId"] == "order-3"


def test_concurrent_publishes_share_the_channel_one_at_a_time(connections):
    publisher = OrderEventPublisher(host="broker")
    threads = [
        threading.Thread(target=publisher.publish_order_settled, args=(make_order(f"order-{n}"),))
        for n in range(8)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(connections) == 1
    channel = connections[0].channel()
    assert channel.max_active == 1
    assert len(channel.bodies) == 8
