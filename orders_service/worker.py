"""
Background worker.

    python -m orders_service.worker consume   # apply notification confirmations
    python -m orders_service.worker init-db   # create tables and indexes
"""

import logging
import signal
import sys

from orders_service import config
from orders_service.broker.consumer import NotificationsConsumer
from orders_service.reconciler import NotificationStatusReconciler
from orders_service.store import PostgresOrderStore

logger = logging.getLogger(__name__)


def build_consumer(store: PostgresOrderStore) -> NotificationsConsumer:
    return NotificationsConsumer(
        url=config.RABBIT_URL,
        reconciler=NotificationStatusReconciler(store),
        exchange=config.NOTIFICATIONS_EXCHANGE,
        queue_name=config.NOTIFICATIONS_QUEUE,
        routing_key=config.NOTIFICATIONS_ROUTING_KEY,
        dead_letter_exchange=config.NOTIFICATIONS_DLX,
    )


def run_consumer():
    consumer = build_consumer(PostgresOrderStore(config.DATABASE_URL))

    def _signal_handler(sig, frame):
        logger.info("Shutdown signal received, stopping consumer...")
        consumer.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        consumer.run()
    finally:
        metrics = consumer.get_metrics()
        logger.info(
            f"Consumer metrics: received={metrics['received']} processed={metrics['processed']} "
            f"rejected={metrics['rejected']} requeued={metrics['requeued']}"
        )


def init_db():
    PostgresOrderStore(config.DATABASE_URL).init_schema()
    logger.info("Order schema initialised")


def main():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    mode = "consume"
    if len(sys.argv) >= 2:
        mode = sys.argv[1].strip().lower()

    if mode in ("consume", "worker"):
        run_consumer()
    elif mode in ("init-db", "initdb"):
        init_db()
    else:
        print("Usage:")
        print("  python -m orders_service.worker consume   # apply notification confirmations")
        print("  python -m orders_service.worker init-db   # create tables and indexes")
        sys.exit(2)


if __name__ == "__main__":
    main()
