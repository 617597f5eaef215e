import uuid

import pytest

from orders_service.domain import (
    AssigneeType,
    Order,
    OrderItem,
    OrderState,
    dedupe,
    unavailable_devices,
    validate_transition,
)
from orders_service.errors import ErrorKind, OrderError


def make_order(**overrides):
    d1, d2 = uuid.uuid4(), uuid.uuid4()
    params = dict(
        order_id=uuid.uuid4(),
        description="Scaffolding for site 4",
        assignee_type=AssigneeType.EMPLOYEE,
        assignee_id=uuid.uuid4(),
        original_states={d1: "GOOD_CONDITION", d2: "FAIR"},
    )
    params.update(overrides)
    return Order.create(**params)


class TestOrderCreate:

    def test_new_order_starts_created_and_pending(self):
        order = make_order()
        assert order.state == OrderState.CREATED
        assert order.notification_status.value == "PENDING"
        assert order.version == 0
        assert len(order.items) == 2
        assert order.created_at == order.updated_at

    def test_items_capture_original_states(self):
        d1 = uuid.uuid4()
        order = make_order(original_states={d1: "NEEDS_CHECK"})
        assert order.items[0].device_id == d1
        assert order.items[0].original_device_state == "NEEDS_CHECK"
        assert order.restore_plan() == [(d1, "NEEDS_CHECK")]

    def test_empty_device_map_rejected(self):
        with pytest.raises(OrderError) as exc:
            make_order(original_states={})
        assert exc.value.kind == ErrorKind.BAD_REQUEST

    def test_description_too_long_rejected(self):
        with pytest.raises(OrderError) as exc:
            make_order(description="x" * 1001)
        assert exc.value.kind == ErrorKind.BAD_REQUEST

    def test_blank_original_state_rejected(self):
        with pytest.raises(OrderError) as exc:
            OrderItem(device_id=uuid.uuid4(), original_device_state="  ")
        assert exc.value.kind == ErrorKind.BAD_REQUEST


class TestTransitions:

    @pytest.mark.parametrize("current,new", [
        (OrderState.CREATED, OrderState.IN_PROCESS),
        (OrderState.IN_PROCESS, OrderState.DISPATCHED),
        (OrderState.DISPATCHED, OrderState.FINISHED),
    ])
    def test_allowed_edges(self, current, new):
        validate_transition(uuid.uuid4(), current, new)

    @pytest.mark.parametrize("current,new", [
        (OrderState.CREATED, OrderState.CREATED),
        (OrderState.CREATED, OrderState.DISPATCHED),
        (OrderState.CREATED, OrderState.FINISHED),
        (OrderState.DISPATCHED, OrderState.IN_PROCESS),
        (OrderState.FINISHED, OrderState.CREATED),
        (OrderState.FINISHED, OrderState.FINISHED),
    ])
    def test_rejected_edges(self, current, new):
        with pytest.raises(OrderError) as exc:
            validate_transition(uuid.uuid4(), current, new)
        assert exc.value.kind == ErrorKind.BAD_REQUEST
        assert f"{current.value} -> {new.value}" in exc.value.message

    def test_advance_updates_state_and_timestamp(self):
        order = make_order()
        before = order.updated_at
        order.advance_to(OrderState.IN_PROCESS)
        assert order.state == OrderState.IN_PROCESS
        assert order.updated_at >= before
        assert not order.is_terminal

    def test_finished_is_terminal(self):
        order = make_order()
        for state in (OrderState.IN_PROCESS, OrderState.DISPATCHED, OrderState.FINISHED):
            order.advance_to(state)
        assert order.is_terminal

    def test_advance_without_items_rejected(self):
        order = make_order()
        order.items = ()
        with pytest.raises(OrderError) as exc:
            order.advance_to(OrderState.IN_PROCESS)
        assert exc.value.kind == ErrorKind.BAD_REQUEST


def test_unavailable_devices_flags_occupied_and_repair():
    ok, busy, broken = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    states = {ok: "GOOD_CONDITION", busy: "occupied", broken: "NEEDS_REPAIR"}
    assert sorted(unavailable_devices(states), key=str) == sorted([busy, broken], key=str)


def test_dedupe_keeps_first_occurrence_order():
    a, b = uuid.uuid4(), uuid.uuid4()
    assert dedupe([a, b, a, b]) == [a, b]
