"""
mock_fulfilment.py — Mock Fulfilment Consumer (RabbitMQ)

Consumes settled-order events published by the settlement service and logs them,
standing in for the warehouse side during local runs.

Communication Channels:
    - Input Queue: 'orders.settled' ← Receives settled orders
"""

import json
import logging
import os
import time

import pika

logging.basicConfig(level=logging.INFO)
RABBITMQ_HOST = os.environ.get("RABBITMQ_HOST", "localhost")
RABBITMQ_USER = os.environ.get("RABBITMQ_USER", "storefront")
RABBITMQ_PASSWORD = os.environ.get("RABBITMQ_PASSWORD", "storefront")
ORDER_EVENTS_QUEUE = os.environ.get("ORDER_EVENTS_QUEUE", "orders.settled")


def get_mq_connection():
    """
    Establishes and returns a connection to the RabbitMQ message broker.

    Raises:
        pika.exceptions.AMQPConnectionError: If the broker is unavailable.
    """
    credentials = pika.PlainCredentials(RABBITMQ_USER, RABBITMQ_PASSWORD)
    return pika.BlockingConnection(
        pika.ConnectionParameters(host=RABBITMQ_HOST, credentials=credentials)
    )


def on_order_settled(ch, method, properties, body):
    """
    Callback for messages on the settled-order queue.

    Logs the order and acknowledges it. Malformed messages are rejected without
    requeueing (dead-lettered if a DLQ is configured).
    """
    try:
        data = json.loads(body)
        logging.info(
            f"[FUL] Order {data['orderId']} received: {len(data.get('items', []))} lines, "
            f"total {data.get('total')} {data.get('currency')}, ship to {data.get('deliveryAddress')}"
        )
        ch.basic_ack(delivery_tag=method.delivery_tag)
    except (json.JSONDecodeError, KeyError) as e:
        logging.error(f"[FUL] Invalid settled-order message: {e}")
        ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)


def main():
    """
    Starts the consumer loop, reconnecting every 5 seconds if the broker is lost.
    Stops on keyboard interrupt (Ctrl+C).
    """
    logging.info("Mock fulfilment consumer starting...")
    while True:
        try:
            connection = get_mq_connection()
            channel = connection.channel()
            channel.queue_declare(queue=ORDER_EVENTS_QUEUE, durable=True)

            logging.info(f"[FUL] Waiting for settled orders on '{ORDER_EVENTS_QUEUE}'.")
            channel.basic_consume(queue=ORDER_EVENTS_QUEUE, on_message_callback=on_order_settled)
            channel.start_consuming()
        except pika.exceptions.AMQPConnectionError as e:
            logging.warning(f"MQ connection failed, retrying in 5s... {e}")
            time.sleep(5)
        except KeyboardInterrupt:
            break


if __name__ == '__main__':
    main()
