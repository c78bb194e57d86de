"""
events.py — Settled-Order Publisher (RabbitMQ)

Announces every settled order on the fulfilment queue so the warehouse side can
pick it up. The connection is opened on the first publish, not at construction,
so the service starts even while the broker is down.
"""

import json
import logging
import threading
import time
import uuid

import pika

from .config import ORDER_EVENTS_QUEUE, RABBITMQ_HOST, RABBITMQ_PASSWORD, RABBITMQ_USER
from .models import Order

log = logging.getLogger(__name__)


class OrderEventPublisher:
    """
    Publishes settled orders to the ``orders.settled`` queue.
    """

    def __init__(self, host: str = RABBITMQ_HOST, queue: str = ORDER_EVENTS_QUEUE):
        self.host = host
        self.queue = queue
        self.connection = None
        self.channel = None
        # BlockingConnection channels are not thread-safe; FastAPI runs sync endpoints in a pool
        self._lock = threading.Lock()

    def _connect(self):
        """
        Establishes the RabbitMQ connection and declares the queue.
        Raises:
            pika.exceptions.AMQPConnectionError: If the connection fails.
        """
        try:
            credentials = pika.PlainCredentials(RABBITMQ_USER, RABBITMQ_PASSWORD)
            self.connection = pika.BlockingConnection(
                pika.ConnectionParameters(host=self.host, credentials=credentials, heartbeat=60)
            )
            self.channel = self.connection.channel()
            self.channel.queue_declare(queue=self.queue, durable=True)
            log.info("Order event publisher connected to RabbitMQ.")
        except pika.exceptions.AMQPConnectionError as e:
            log.critical(f"Cannot connect to RabbitMQ (fulfilment): {e}")
            raise

    def publish_order_settled(self, order: Order):
        """
        Sends a settled-order message.
        Args:
            order (Order): The paid order.
        Raises:
            pika.exceptions.AMQPError: If connecting or publishing fails.
        """
        message = {
            "eventId": str(uuid.uuid4()),
            "orderId": order.id,
            "userId": order.user_id,
            "paymentMethod": order.payment_method,
            "total": str(order.total),
            "currency": order.currency.value,
            "deliveryAddress": order.delivery_address,
            "items": [item.model_dump(mode="json") for item in order.items],
            "settledAt": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
        with self._lock:
            if not self.connection or self.connection.is_closed:
                self._connect()
            try:
                self.channel.basic_publish(
                    exchange='',
                    routing_key=self.queue,
                    body=json.dumps(message),
                    properties=pika.BasicProperties(delivery_mode=2)  # persistent
                )
            except pika.exceptions.AMQPError:
                # Reconnect on the next publish
                self._reset()
                raise
        log.info(f"[Order: {order.id}] Settled-order event published.")

    def _reset(self):
        connection, self.connection, self.channel = self.connection, None, None
        if connection and connection.is_open:
            try:
                connection.close()
            except pika.exceptions.AMQPError as e:
                log.warning(f"Closing broken RabbitMQ connection failed: {e}")

    def close(self):
        with self._lock:
            if self.connection and self.connection.is_open:
                self.connection.close()
