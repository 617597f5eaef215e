"""
Order lifecycle engine.

Creation:   fetch device states -> reserve -> persist -> resolve recipients -> publish
Transition: load -> validate edge -> persist (version-checked) -> resolve + publish
            -> restore devices when the order reaches FINISHED

Remote calls are not part of the local transaction. Failures before the
order is persisted abort creation (a reservation is compensated by
restoring the fetched states). Failures after persistence are surfaced
or logged, but the stored order is never rolled back.
"""

import logging
import uuid
from typing import List, Optional, Sequence

from orders_service import messages
from orders_service.assignees import AssigneeResolver
from orders_service.clients.devices import DevicesClient
from orders_service.context import RequestContext
from orders_service.domain import (
    MAX_DESCRIPTION_LENGTH,
    AssigneeType,
    Order,
    OrderState,
    dedupe,
    unavailable_devices,
)
from orders_service.errors import (
    DeviceUnavailable,
    ErrorKind,
    FailureReason,
    OrderAlreadyExists,
    OrderError,
    OrderServiceError,
)
from orders_service.saga import SagaExecution, SagaStep, run_saga
from orders_service.schemas import OrderEvent
from orders_service.store import OrderStore

logger = logging.getLogger(__name__)

FETCH_STEP = "Device Verification"
RESERVE_STEP = "Device Reservation"
PERSIST_STEP = "Order Persistence"


class OrderLifecycleEngine:

    def __init__(
        self,
        store: OrderStore,
        devices: DevicesClient,
        resolver: AssigneeResolver,
        publisher,
        idempotency_namespace: Optional[uuid.UUID] = None,
    ):
        self.store = store
        self.devices = devices
        self.resolver = resolver
        self.publisher = publisher
        self.idempotency_namespace = idempotency_namespace or uuid.NAMESPACE_URL

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    def get_order(self, order_id: uuid.UUID) -> Order:
        order = self.store.get(order_id)
        if order is None:
            raise OrderError(messages.ORDER_NOT_FOUND % order_id, ErrorKind.NOT_FOUND)
        return order

    def list_orders(
        self,
        assignee_id: Optional[uuid.UUID] = None,
        device_id: Optional[uuid.UUID] = None,
    ) -> List[Order]:
        return self.store.list(assignee_id=assignee_id, device_id=device_id)

    # ------------------------------------------------------------------
    # creation
    # ------------------------------------------------------------------
    def order_id_for(self, idempotency_key: Optional[str]) -> uuid.UUID:
        """Pre-allocated order id; deterministic when the client sends a key."""
        if idempotency_key:
            return uuid.uuid5(self.idempotency_namespace, idempotency_key)
        return uuid.uuid4()

    def create_order(
        self,
        device_ids: Sequence[uuid.UUID],
        assignee_type: AssigneeType,
        assignee_id: uuid.UUID,
        ctx: RequestContext,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Order:
        ids = dedupe(device_ids or [])
        if not ids:
            raise OrderError(messages.INVALID_EQUIPMENT_LIST, ErrorKind.BAD_REQUEST)
        if assignee_type is None or assignee_id is None:
            raise OrderError(messages.ASSIGNEE_REQUIRED, ErrorKind.BAD_REQUEST)
        if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
            raise OrderError(messages.DESCRIPTION_TOO_LONG, ErrorKind.BAD_REQUEST)

        order_id = self.order_id_for(idempotency_key)
        if idempotency_key:
            existing = self.store.get(order_id)
            if existing is not None:
                logger.info(f"Replayed creation for idempotency key {idempotency_key!r}; returning order {order_id}")
                return existing

        execution = SagaExecution("create-order", order_id)
        execution.add_step(SagaStep(
            name=FETCH_STEP,
            action=lambda: self._verify_devices(ids, ctx),
        ))
        execution.add_step(SagaStep(
            name=RESERVE_STEP,
            action=lambda: self.devices.reserve(ids, order_id, ctx),
            compensation=lambda: self.devices.restore(
                [(d, execution.result_of(FETCH_STEP)[d]) for d in ids], ctx
            ),
        ))
        execution.add_step(SagaStep(
            name=PERSIST_STEP,
            action=lambda: self.store.add(Order.create(
                order_id=order_id,
                description=description,
                assignee_type=assignee_type,
                assignee_id=assignee_id,
                original_states={d: execution.result_of(FETCH_STEP)[d] for d in ids},
            )),
            # a duplicate id means the reservation already belongs to the persisted order
            keep_on=(OrderAlreadyExists,),
        ))
        try:
            run_saga(execution)
        except OrderAlreadyExists:
            existing = self.store.get(order_id) if idempotency_key else None
            if existing is None:
                raise
            logger.info(f"Concurrent creation for idempotency key {idempotency_key!r}; returning order {order_id}")
            return existing

        order = execution.result_of(PERSIST_STEP)
        logger.info(f"Order {order.id} created with {len(order.items)} devices for {assignee_type.value} {assignee_id}")

        # the order is durable from here on; nothing below may undo it
        recipients = self._resolve_recipients(order, ctx)
        if recipients:
            self._publish(order, recipients)
        return order

    def _verify_devices(self, ids: List[uuid.UUID], ctx: RequestContext):
        states = self.devices.fetch_states(ids, ctx)
        stateless = [d for d, s in states.items() if not s or not s.strip()]
        if stateless:
            logger.error(f"Device service returned no state for devices {stateless}")
            raise DeviceUnavailable(messages.DEVICE_ERROR_COMMUNICATION, FailureReason.INTERNAL)
        blocked = unavailable_devices(states)
        if blocked:
            logger.warning(f"Devices unavailable for a new order: {blocked}")
            raise DeviceUnavailable(messages.EQUIPMENT_NOT_AVAILABLE % blocked, FailureReason.CONFLICT)
        return states

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------
    def change_state(self, order_id: uuid.UUID, new_state: OrderState, ctx: RequestContext) -> Order:
        order = self.get_order(order_id)
        if not order.items:
            raise OrderError(messages.INVALID_EQUIPMENT_LIST, ErrorKind.BAD_REQUEST)

        read_version = order.version
        previous = order.state
        order.advance_to(new_state)
        self.store.save_state(order, read_version)
        logger.info(f"Order {order_id} moved {previous.value} -> {new_state.value} (version {order.version})")

        recipients = self._resolve_recipients(order, ctx)
        if recipients:
            self._publish(order, recipients)

        if new_state is OrderState.FINISHED:
            self._restore_devices(order, ctx)
        return order

    def _restore_devices(self, order: Order, ctx: RequestContext):
        plan = order.restore_plan()
        try:
            self.devices.restore(plan, ctx)
        except DeviceUnavailable as e:
            logger.critical(
                f"RECONCILIATION REQUIRED: order {order.id} is FINISHED but restoring devices "
                f"{[d for d, _ in plan]} failed: {e.message}"
            )
            raise OrderError(
                messages.EQUIPMENT_RESTORE_FAILED % order.id,
                ErrorKind.INTERNAL_SERVER,
                retryable=e.retryable,
            ) from e
        logger.info(f"Devices of order {order.id} restored to their original states")

    # ------------------------------------------------------------------
    # notification side effects
    # ------------------------------------------------------------------
    def _resolve_recipients(self, order: Order, ctx: RequestContext) -> Optional[List[str]]:
        try:
            return self.resolver.resolve(order.assignee_type, order.assignee_id, ctx)
        except OrderServiceError as e:
            logger.warning(
                f"No notification for order {order.id} ({order.state.value}): "
                f"recipients could not be resolved: {e.message}"
            )
            return None

    def _publish(self, order: Order, recipients: List[str]):
        try:
            event = OrderEvent.from_order(order, recipients)
            if not self.publisher.publish_event(event):
                logger.error(f"Event {event.routing_key} for order {order.id} was not published")
        except Exception as e:
            logger.error(f"Error publishing event for order {order.id}: {e}", exc_info=True)
