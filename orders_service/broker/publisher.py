"""
RabbitMQ Publisher - Publishes Order Lifecycle Events

Publishing is best-effort: by the time an event is emitted the order is
already durably stored, so a broker failure is logged and reported as
``False`` but never raised into the workflow.
"""

import json
import logging
import threading
import time
from typing import Any, Dict, Optional

import pika
import pika.exceptions

from orders_service.schemas import OrderEvent

logger = logging.getLogger(__name__)


class RabbitMQPublisher:
    """
    Topic-exchange publisher with:
    - Lazy connection (first publish), reconnect when the channel drops
    - Persistent messages
    - Metrics
    """

    def __init__(
        self,
        url: str,
        exchange: str = 'orders.exchange',
        connection_factory=None,
    ):
        self.url = url
        self.exchange = exchange
        self._connection_factory = connection_factory or self._default_connection
        # BlockingConnection is not thread-safe; request handlers share this publisher
        self._lock = threading.Lock()

        self.connection = None
        self.channel = None
        self.metrics = {
            'published': 0,
            'failed': 0,
        }

    def _default_connection(self):
        params = pika.URLParameters(self.url)
        params.heartbeat = 30
        params.blocked_connection_timeout = 30
        return pika.BlockingConnection(params)

    def connect(self) -> bool:
        """Establish connection and declare the exchange"""
        try:
            self.connection = self._connection_factory()
            self.channel = self.connection.channel()
            self.channel.exchange_declare(
                exchange=self.exchange,
                exchange_type='topic',
                durable=True,
            )
            logger.info(f"Connected to RabbitMQ, exchange '{self.exchange}' declared")
            return True
        except Exception as e:
            logger.error(f"RabbitMQ connection failed: {e}")
            self.connection = None
            self.channel = None
            return False

    def _ensure_channel(self) -> bool:
        if self.connection is None or self.connection.is_closed or self.channel is None or self.channel.is_closed:
            if self.connection is not None:
                logger.warning("Reconnecting to RabbitMQ...")
            return self.connect()
        return True

    def publish(self, message: Dict[str, Any], routing_key: str, correlation_id: Optional[str] = None) -> bool:
        """
        Publish message to the exchange

        Returns:
            True if successful, False otherwise
        """
        try:
            if not self._ensure_channel():
                self.metrics['failed'] += 1
                return False

            self.channel.basic_publish(
                exchange=self.exchange,
                routing_key=routing_key,
                body=json.dumps(message),
                properties=pika.BasicProperties(
                    content_type='application/json',
                    delivery_mode=2,  # persistent
                    timestamp=int(time.time()),
                    correlation_id=correlation_id,
                ),
            )
            self.metrics['published'] += 1
            logger.info(f"Event published - RoutingKey: {routing_key}, OrderID: {correlation_id}")
            return True

        except pika.exceptions.AMQPError as e:
            logger.error(f"Broker error publishing {routing_key} for order {correlation_id}: {e}")
            self.metrics['failed'] += 1
            self._drop_connection()
            return False

        except Exception as e:
            logger.error(f"Error publishing {routing_key} for order {correlation_id}: {e}")
            self.metrics['failed'] += 1
            return False

    def publish_event(self, event: OrderEvent) -> bool:
        with self._lock:
            return self.publish(event.to_wire(), event.routing_key, correlation_id=str(event.order_id))

    def _drop_connection(self):
        try:
            if self.connection and not self.connection.is_closed:
                self.connection.close()
        except Exception as e:
            logger.warning(f"Error closing broken connection: {e}")
        self.connection = None
        self.channel = None

    def get_metrics(self) -> Dict[str, int]:
        return self.metrics.copy()

    def close(self):
        try:
            if self.connection and not self.connection.is_closed:
                self.connection.close()
            logger.info("Publisher connection closed")
        except Exception as e:
            logger.error(f"Error closing connection: {e}")
