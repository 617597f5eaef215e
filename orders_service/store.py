"""
Order/OrderItem persistence.

An order and its items are always written in one local transaction.
Every mutation bumps ``version``; state changes are conditional on the
version the caller read, so a stale writer fails instead of overwriting.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import closing
from typing import Callable, Dict, List, Optional
from uuid import UUID

import psycopg2
import psycopg2.extras

from orders_service import messages
from orders_service.domain import (
    AssigneeType,
    NotificationStatus,
    Order,
    OrderItem,
    OrderState,
    utcnow,
)
from orders_service.errors import ConcurrencyConflict, ErrorKind, OrderAlreadyExists, OrderError

logger = logging.getLogger(__name__)

psycopg2.extras.register_uuid()


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS rental_order (
        id UUID PRIMARY KEY,
        description VARCHAR(1000),
        state VARCHAR(50) NOT NULL,
        assignee_type VARCHAR(50) NOT NULL,
        assignee_id UUID NOT NULL,
        notification_status VARCHAR(20) NOT NULL DEFAULT 'PENDING',
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ,
        version BIGINT NOT NULL DEFAULT 0
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_order_state ON rental_order (state);",
    "CREATE INDEX IF NOT EXISTS idx_order_assignee_id ON rental_order (assignee_id);",
    """
    CREATE TABLE IF NOT EXISTS order_item (
        id UUID PRIMARY KEY,
        order_id UUID NOT NULL REFERENCES rental_order (id) ON DELETE CASCADE,
        device_id UUID NOT NULL,
        original_device_state VARCHAR(50) NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_order_item_order_id ON order_item (order_id);",
    "CREATE INDEX IF NOT EXISTS idx_order_item_device_id ON order_item (device_id);",
]

ORDER_COLUMNS = (
    "id, description, state, assignee_type, assignee_id, "
    "notification_status, created_at, updated_at, version"
)


class OrderStore(ABC):
    """Persistence boundary used by the lifecycle engine and the reconciler."""

    @abstractmethod
    def add(self, order: Order) -> Order:
        """Insert an order with all of its items atomically."""

    @abstractmethod
    def get(self, order_id: UUID) -> Optional[Order]:
        pass

    @abstractmethod
    def list(self, assignee_id: Optional[UUID] = None, device_id: Optional[UUID] = None) -> List[Order]:
        pass

    @abstractmethod
    def save_state(self, order: Order, expected_version: int) -> Order:
        """
        Persist ``order.state``/``updated_at`` if the stored version still
        equals ``expected_version``; raise ConcurrencyConflict otherwise.
        """

    @abstractmethod
    def set_notification_status(self, order_id: UUID, status: NotificationStatus) -> bool:
        """Write only the notification status; False if the order is gone."""


class PostgresOrderStore(OrderStore):

    def __init__(self, dsn: Optional[str] = None, connect: Optional[Callable] = None):
        if connect is None:
            if not dsn:
                raise RuntimeError("DATABASE_URL not set")
            connect = lambda: psycopg2.connect(dsn)
        self._connect = connect

    def init_schema(self):
        with closing(self._connect()) as conn:
            with conn.cursor() as cur:
                for statement in SCHEMA:
                    cur.execute(statement)
            conn.commit()
        logger.info("Order schema ready")

    def add(self, order: Order) -> Order:
        try:
            with closing(self._connect()) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"INSERT INTO rental_order ({ORDER_COLUMNS}) "
                        "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)",
                        (
                            order.id,
                            order.description,
                            order.state.value,
                            order.assignee_type.value,
                            order.assignee_id,
                            order.notification_status.value,
                            order.created_at,
                            order.updated_at,
                            order.version,
                        ),
                    )
                    psycopg2.extras.execute_values(
                        cur,
                        "INSERT INTO order_item (id, order_id, device_id, original_device_state) VALUES %s",
                        [(i.id, order.id, i.device_id, i.original_device_state) for i in order.items],
                    )
                conn.commit()
        except psycopg2.IntegrityError as e:
            logger.error(f"Order {order.id} already exists: {e}")
            raise OrderAlreadyExists(messages.ORDER_ALREADY_EXISTS % order.id) from e
        except psycopg2.Error as e:
            logger.error(f"Failed to persist order {order.id}: {e}")
            raise OrderError(messages.ORDER_PERSIST_FAILED % order.id, ErrorKind.INTERNAL_SERVER) from e
        return order

    def get(self, order_id: UUID) -> Optional[Order]:
        with closing(self._connect()) as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT {ORDER_COLUMNS} FROM rental_order WHERE id=%s", (order_id,))
                row = cur.fetchone()
                if not row:
                    return None
                items = self._load_items(cur, [row[0]])
        return _order_from_row(row, items.get(row[0], []))

    def list(self, assignee_id: Optional[UUID] = None, device_id: Optional[UUID] = None) -> List[Order]:
        q = f"SELECT {ORDER_COLUMNS} FROM rental_order o"
        clauses = []
        params = []
        if assignee_id:
            clauses.append("o.assignee_id=%s")
            params.append(assignee_id)
        if device_id:
            clauses.append("EXISTS (SELECT 1 FROM order_item i WHERE i.order_id=o.id AND i.device_id=%s)")
            params.append(device_id)
        if clauses:
            q += " WHERE " + " AND ".join(clauses)
        q += " ORDER BY o.created_at DESC"

        with closing(self._connect()) as conn:
            with conn.cursor() as cur:
                cur.execute(q, params)
                rows = cur.fetchall()
                items = self._load_items(cur, [r[0] for r in rows]) if rows else {}
        return [_order_from_row(r, items.get(r[0], [])) for r in rows]

    def save_state(self, order: Order, expected_version: int) -> Order:
        with closing(self._connect()) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE rental_order
                    SET state=%s,
                        updated_at=%s,
                        version=version + 1
                    WHERE id=%s AND version=%s
                    """,
                    (order.state.value, order.updated_at, order.id, expected_version),
                )
                updated = cur.rowcount
            conn.commit()

        if updated != 1:
            logger.warning(f"Stale write rejected for order {order.id} (expected version {expected_version})")
            raise ConcurrencyConflict(messages.ORDER_VERSION_CONFLICT % (order.id, expected_version))
        order.version = expected_version + 1
        return order

    def set_notification_status(self, order_id: UUID, status: NotificationStatus) -> bool:
        with closing(self._connect()) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE rental_order
                    SET notification_status=%s,
                        updated_at=%s,
                        version=version + 1
                    WHERE id=%s
                    """,
                    (status.value, utcnow(), order_id),
                )
                updated = cur.rowcount
            conn.commit()
        return updated == 1

    @staticmethod
    def _load_items(cur, order_ids: List[UUID]) -> Dict[UUID, List[OrderItem]]:
        cur.execute(
            "SELECT id, order_id, device_id, original_device_state FROM order_item WHERE order_id = ANY(%s)",
            (list(order_ids),),
        )
        items: Dict[UUID, List[OrderItem]] = {}
        for item_id, order_id, device_id, state in cur.fetchall():
            items.setdefault(order_id, []).append(
                OrderItem(id=item_id, device_id=device_id, original_device_state=state)
            )
        return items


def _order_from_row(row, items: List[OrderItem]) -> Order:
    return Order(
        id=row[0],
        description=row[1],
        state=OrderState(row[2]),
        assignee_type=AssigneeType(row[3]),
        assignee_id=row[4],
        notification_status=NotificationStatus(row[5]),
        created_at=row[6],
        updated_at=row[7],
        version=row[8],
        items=tuple(items),
    )
