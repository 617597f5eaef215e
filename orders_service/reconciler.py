import logging
from uuid import UUID

from orders_service.domain import NotificationStatus
from orders_service.store import OrderStore

logger = logging.getLogger(__name__)

_STATUS_MAP = {
    "SUCCESS": NotificationStatus.SENT,
    "FAILED": NotificationStatus.FAILED,
}


def map_notification_status(raw_status) -> NotificationStatus:
    """Case-insensitive; anything unknown falls back to PENDING."""
    status = _STATUS_MAP.get(str(raw_status or "").strip().upper())
    if status is None:
        logger.warning(f"Unknown notification status: {raw_status!r}")
        return NotificationStatus.PENDING
    return status


class NotificationStatusReconciler:
    """
    Applies delivery confirmations to ``notification_status``.

    Never touches the order state. Confirmations for orders that do not
    exist are logged and ignored.
    """

    def __init__(self, store: OrderStore):
        self.store = store

    def apply(self, order_id: UUID, raw_status: str) -> bool:
        """Returns True when the stored status changed."""
        logger.info(f"Updating notification status for order {order_id}: {raw_status}")

        order = self.store.get(order_id)
        if order is None:
            logger.warning(f"Order not found for notification event: {order_id}")
            return False

        status = map_notification_status(raw_status)
        if order.notification_status is status:
            logger.info(f"Notification status of order {order_id} already {status.value}")
            return False

        if not self.store.set_notification_status(order_id, status):
            logger.warning(f"Order {order_id} disappeared before its notification status was written")
            return False

        logger.info(f"Notification status updated for order {order_id}: {status.value}")
        return True
