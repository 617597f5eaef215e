from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, status

from orders_service.context import RequestContext
from orders_service.deps import get_engine, get_request_context
from orders_service.engine import OrderLifecycleEngine
from orders_service.schemas import OrderRq, OrderRs, StateChangeRq

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderRs, status_code=status.HTTP_201_CREATED, response_model_by_alias=True)
def create_order(
    body: OrderRq,
    idempotency_key: Optional[str] = Header(None),
    ctx: RequestContext = Depends(get_request_context),
    engine: OrderLifecycleEngine = Depends(get_engine),
):
    order = engine.create_order(
        device_ids=body.devices_ids,
        assignee_type=body.assignee_type,
        assignee_id=body.assignee_id,
        ctx=ctx,
        description=body.description,
        idempotency_key=idempotency_key,
    )
    return OrderRs.from_order(order)


@router.get("", response_model=List[OrderRs], response_model_by_alias=True)
def list_orders(
    assignee_id: Optional[UUID] = Query(None, alias="assigneeId"),
    device_id: Optional[UUID] = Query(None, alias="deviceId"),
    ctx: RequestContext = Depends(get_request_context),
    engine: OrderLifecycleEngine = Depends(get_engine),
):
    return [OrderRs.from_order(o) for o in engine.list_orders(assignee_id=assignee_id, device_id=device_id)]


@router.get("/{order_id}", response_model=OrderRs, response_model_by_alias=True)
def get_order(
    order_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    engine: OrderLifecycleEngine = Depends(get_engine),
):
    return OrderRs.from_order(engine.get_order(order_id))


@router.patch("/{order_id}/state", response_model=OrderRs, response_model_by_alias=True)
def change_state(
    order_id: UUID,
    body: StateChangeRq,
    ctx: RequestContext = Depends(get_request_context),
    engine: OrderLifecycleEngine = Depends(get_engine),
):
    return OrderRs.from_order(engine.change_state(order_id, body.state, ctx))
