"""
RabbitMQ Consumer - Notification Delivery Confirmations

Consumes ``{orderId, status, message}`` confirmations emitted by the
notification service and hands them to the NotificationStatusReconciler.
Runs in its own process, decoupled from request handling.
"""

import json
import logging
import time
from typing import Dict

import pika
import pika.exceptions
from pydantic import ValidationError

from orders_service.reconciler import NotificationStatusReconciler
from orders_service.schemas import NotificationEvent

logger = logging.getLogger(__name__)


class NotificationsConsumer:
    """
    Reliable consumer with:
    - Manual acknowledgments (no message loss)
    - Dead letter exchange for malformed payloads
    - Reconnect loop on broker failure
    """

    def __init__(
        self,
        url: str,
        reconciler: NotificationStatusReconciler,
        exchange: str = 'notifications.exchange',
        queue_name: str = 'orders.notifications.queue',
        routing_key: str = 'notification.completed',
        dead_letter_exchange: str = 'notifications.dlx',
        prefetch_count: int = 10,
        reconnect_delay: float = 2.0,
    ):
        self.url = url
        self.reconciler = reconciler
        self.exchange = exchange
        self.queue_name = queue_name
        self.routing_key = routing_key
        self.dead_letter_exchange = dead_letter_exchange
        self.prefetch_count = prefetch_count
        self.reconnect_delay = reconnect_delay

        self.connection = None
        self.channel = None
        self.running = False

        self.metrics = {
            'received': 0,
            'processed': 0,
            'rejected': 0,
            'requeued': 0,
        }

    def _connect(self):
        params = pika.URLParameters(self.url)
        params.heartbeat = 30
        params.blocked_connection_timeout = 30
        self.connection = pika.BlockingConnection(params)
        self.channel = self.connection.channel()
        logger.info("Connected to RabbitMQ")

    def declare_resources(self, channel):
        """Declare exchanges, queue and dead letter queue"""
        channel.exchange_declare(exchange=self.exchange, exchange_type='topic', durable=True)
        channel.exchange_declare(exchange=self.dead_letter_exchange, exchange_type='fanout', durable=True)

        dlq = f'{self.queue_name}.dlq'
        channel.queue_declare(queue=dlq, durable=True)
        channel.queue_bind(exchange=self.dead_letter_exchange, queue=dlq)

        channel.queue_declare(
            queue=self.queue_name,
            durable=True,
            arguments={'x-dead-letter-exchange': self.dead_letter_exchange},
        )
        channel.queue_bind(exchange=self.exchange, queue=self.queue_name, routing_key=self.routing_key)
        channel.basic_qos(prefetch_count=self.prefetch_count)
        logger.info(f"Queue '{self.queue_name}' declared with DLQ '{dlq}'")

    def handle_message(self, ch, method, properties, body):
        """
        Apply one confirmation.

        Malformed payloads are rejected without requeue (dead-lettered);
        processing errors are requeued for another attempt.
        """
        delivery_tag = method.delivery_tag
        self.metrics['received'] += 1

        try:
            event = NotificationEvent.model_validate(json.loads(body))
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            logger.error(f"Invalid notification payload, dead-lettering: {e}")
            ch.basic_nack(delivery_tag=delivery_tag, requeue=False)
            self.metrics['rejected'] += 1
            return

        logger.info(f"Notification confirmation received: order={event.order_id} status={event.status}")
        try:
            self.reconciler.apply(event.order_id, event.status)
        except Exception as e:
            logger.error(f"Failed to apply confirmation for order {event.order_id}: {e}")
            ch.basic_nack(delivery_tag=delivery_tag, requeue=True)
            self.metrics['requeued'] += 1
            return

        ch.basic_ack(delivery_tag=delivery_tag)
        self.metrics['processed'] += 1

    def run(self):
        """Consume until stop() is called, reconnecting on broker failures."""
        self.running = True
        logger.info(f"Starting consumer on '{self.queue_name}' with prefetch={self.prefetch_count}")

        while self.running:
            try:
                self._connect()
                self.declare_resources(self.channel)
                self.channel.basic_consume(
                    queue=self.queue_name,
                    on_message_callback=self.handle_message,
                    auto_ack=False,
                )
                self.channel.start_consuming()
            except pika.exceptions.AMQPError as e:
                if not self.running:
                    break
                logger.warning(f"Consumer loop error (will reconnect) err={e}")
                self._close_quietly()
                time.sleep(self.reconnect_delay)

        self._close_quietly()

    def stop(self):
        self.running = False
        try:
            if self.channel and self.channel.is_open:
                self.channel.stop_consuming()
            logger.info("Consumer stopped")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")

    def _close_quietly(self):
        try:
            if self.connection and not self.connection.is_closed:
                self.connection.close()
        except Exception as e:
            logger.warning(f"Error closing connection: {e}")
        self.connection = None
        self.channel = None

    def get_metrics(self) -> Dict[str, int]:
        return self.metrics.copy()
