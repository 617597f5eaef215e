"""In-memory stand-ins for the store and the remote services."""

import copy
from typing import Dict, List, Optional
from uuid import UUID

from orders_service import messages
from orders_service.domain import NotificationStatus, Order, utcnow
from orders_service.errors import (
    ConcurrencyConflict,
    DeviceUnavailable,
    FailureReason,
    OrderAlreadyExists,
)
from orders_service.store import OrderStore


class InMemoryOrderStore(OrderStore):
    """Hands out copies so callers cannot mutate stored rows in place."""

    def __init__(self):
        self.orders: Dict[UUID, Order] = {}
        self.fail_on_add: Optional[Exception] = None
        self.notification_writes = 0

    def add(self, order: Order) -> Order:
        if self.fail_on_add is not None:
            raise self.fail_on_add
        if order.id in self.orders:
            raise OrderAlreadyExists(messages.ORDER_ALREADY_EXISTS % order.id)
        self.orders[order.id] = copy.deepcopy(order)
        return order

    def get(self, order_id: UUID) -> Optional[Order]:
        order = self.orders.get(order_id)
        return copy.deepcopy(order) if order else None

    def list(self, assignee_id=None, device_id=None) -> List[Order]:
        result = []
        for order in self.orders.values():
            if assignee_id and order.assignee_id != assignee_id:
                continue
            if device_id and device_id not in order.device_ids:
                continue
            result.append(copy.deepcopy(order))
        return result

    def save_state(self, order: Order, expected_version: int) -> Order:
        stored = self.orders.get(order.id)
        if stored is None or stored.version != expected_version:
            raise ConcurrencyConflict(messages.ORDER_VERSION_CONFLICT % (order.id, expected_version))
        stored.state = order.state
        stored.updated_at = order.updated_at
        stored.version = expected_version + 1
        order.version = stored.version
        return order

    def set_notification_status(self, order_id: UUID, status: NotificationStatus) -> bool:
        stored = self.orders.get(order_id)
        if stored is None:
            return False
        stored.notification_status = status
        stored.updated_at = utcnow()
        stored.version += 1
        self.notification_writes += 1
        return True


class FakeDevicesClient:
    """Records every call; failures are injected per operation."""

    def __init__(self, states: Optional[Dict[UUID, str]] = None):
        self.states: Dict[UUID, str] = dict(states or {})
        self.calls: List[tuple] = []
        self.fetch_error: Optional[Exception] = None
        self.reserve_error: Optional[Exception] = None
        self.restore_error: Optional[Exception] = None

    def fetch_states(self, device_ids, ctx) -> Dict[UUID, str]:
        ids = list(device_ids)
        self.calls.append(("fetch", ids))
        if self.fetch_error is not None:
            raise self.fetch_error
        missing = [d for d in ids if d not in self.states]
        if missing:
            raise DeviceUnavailable(messages.DEVICE_NOT_FOUND_BY_IDS % ids, FailureReason.NOT_FOUND)
        return {d: self.states[d] for d in ids}

    def reserve(self, device_ids, order_id, ctx) -> None:
        self.calls.append(("reserve", list(device_ids), order_id))
        if self.reserve_error is not None:
            raise self.reserve_error
        for d in device_ids:
            self.states[d] = "OCCUPIED"

    def restore(self, items, ctx) -> None:
        self.calls.append(("restore", list(items)))
        if self.restore_error is not None:
            raise self.restore_error
        for device_id, state in items:
            self.states[device_id] = state

    def calls_named(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]


class FakeResolver:

    def __init__(self, recipients: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.recipients = recipients if recipients is not None else ["crew@example.com"]
        self.error = error
        self.calls = 0

    def resolve(self, assignee_type, assignee_id, ctx) -> List[str]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.recipients)


class RecordingPublisher:

    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.events = []
        self.result = result
        self.error = error

    def publish_event(self, event) -> bool:
        if self.error is not None:
            raise self.error
        self.events.append(event)
        return self.result

    @property
    def routing_keys(self) -> List[str]:
        return [e.routing_key for e in self.events]
