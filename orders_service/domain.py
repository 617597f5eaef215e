"""
Order aggregate and its state machine.

An Order owns its OrderItems exclusively: items are built together with
the order and are never created, mutated or removed on their own.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from orders_service import messages
from orders_service.errors import ErrorKind, OrderError


MAX_DESCRIPTION_LENGTH = 1000


class OrderState(str, Enum):
    CREATED = "CREATED"
    IN_PROCESS = "IN_PROCESS"
    DISPATCHED = "DISPATCHED"
    FINISHED = "FINISHED"


class AssigneeType(str, Enum):
    EMPLOYEE = "EMPLOYEE"
    GROUP = "GROUP"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class DeviceStatus(str, Enum):
    GOOD_CONDITION = "GOOD_CONDITION"
    FAIR = "FAIR"
    OCCUPIED = "OCCUPIED"
    NEEDS_REPAIR = "NEEDS_REPAIR"


# devices in these states cannot join a new order
UNAVAILABLE_DEVICE_STATES = frozenset({DeviceStatus.OCCUPIED, DeviceStatus.NEEDS_REPAIR})

# the only valid edges; anything else (same-state, skip, backward) is rejected
ALLOWED_TRANSITIONS: Dict[OrderState, OrderState] = {
    OrderState.CREATED: OrderState.IN_PROCESS,
    OrderState.IN_PROCESS: OrderState.DISPATCHED,
    OrderState.DISPATCHED: OrderState.FINISHED,
}

TERMINAL_STATES = frozenset({OrderState.FINISHED})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_transition(order_id: uuid.UUID, current: OrderState, new: OrderState) -> None:
    """Raise BAD_REQUEST unless ``current -> new`` is an edge of the table."""
    if ALLOWED_TRANSITIONS.get(current) is new:
        return
    raise OrderError(
        messages.ORDER_STATE_TRANSITION_INVALID % (order_id, f"{current.value} -> {new.value}"),
        ErrorKind.BAD_REQUEST,
    )


@dataclass(frozen=True)
class OrderItem:
    device_id: uuid.UUID
    original_device_state: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self):
        if not self.original_device_state or not str(self.original_device_state).strip():
            raise OrderError(
                messages.ORIGINAL_STATE_REQUIRED % self.device_id,
                ErrorKind.BAD_REQUEST,
            )


@dataclass
class Order:
    id: uuid.UUID
    assignee_type: AssigneeType
    assignee_id: uuid.UUID
    items: Tuple[OrderItem, ...]
    description: Optional[str] = None
    state: OrderState = OrderState.CREATED
    notification_status: NotificationStatus = NotificationStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    version: int = 0

    @classmethod
    def create(
        cls,
        order_id: uuid.UUID,
        description: Optional[str],
        assignee_type: AssigneeType,
        assignee_id: uuid.UUID,
        original_states: Mapping[uuid.UUID, str],
    ) -> "Order":
        """
        Build a new CREATED order with one item per device.

        ``original_states`` maps every device id to the state it had when
        it was fetched; that value is what gets restored on FINISHED.
        """
        if not original_states:
            raise OrderError(messages.INVALID_EQUIPMENT_LIST, ErrorKind.BAD_REQUEST)
        if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
            raise OrderError(messages.DESCRIPTION_TOO_LONG, ErrorKind.BAD_REQUEST)

        items = tuple(
            OrderItem(device_id=device_id, original_device_state=state)
            for device_id, state in original_states.items()
        )
        now = utcnow()
        return cls(
            id=order_id,
            description=description,
            assignee_type=assignee_type,
            assignee_id=assignee_id,
            items=items,
            created_at=now,
            updated_at=now,
        )

    @property
    def device_ids(self) -> List[uuid.UUID]:
        return [item.device_id for item in self.items]

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def restore_plan(self) -> List[Tuple[uuid.UUID, str]]:
        """(device_id, state captured at creation) for every item."""
        return [(item.device_id, item.original_device_state) for item in self.items]

    def advance_to(self, new_state: OrderState) -> None:
        if not self.items:
            raise OrderError(messages.INVALID_EQUIPMENT_LIST, ErrorKind.BAD_REQUEST)
        validate_transition(self.id, self.state, new_state)
        self.state = new_state
        self.updated_at = utcnow()


def unavailable_devices(states: Mapping[uuid.UUID, str]) -> List[uuid.UUID]:
    """Device ids whose fetched state rules them out of a new order."""
    blocked = {s.value for s in UNAVAILABLE_DEVICE_STATES}
    return [device_id for device_id, state in states.items() if str(state).upper() in blocked]


def dedupe(device_ids: Iterable[uuid.UUID]) -> List[uuid.UUID]:
    seen = set()
    result = []
    for device_id in device_ids:
        if device_id not in seen:
            seen.add(device_id)
            result.append(device_id)
    return result
