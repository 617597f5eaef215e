from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from orders_service.domain import (
    MAX_DESCRIPTION_LENGTH,
    AssigneeType,
    NotificationStatus,
    Order,
    OrderState,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------- HTTP requests / responses ----------------
class OrderRq(CamelModel):
    description: Optional[str] = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    devices_ids: List[UUID] = Field(min_length=1)
    assignee_type: AssigneeType
    assignee_id: UUID


class StateChangeRq(CamelModel):
    state: OrderState


class OrderItemDto(CamelModel):
    device_id: UUID
    original_device_state: str


class OrderRs(CamelModel):
    id: UUID
    description: Optional[str] = None
    state: OrderState
    assignee_type: AssigneeType
    assignee_id: UUID
    notification_status: NotificationStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
    version: int
    items: List[OrderItemDto]

    @classmethod
    def from_order(cls, order: Order) -> "OrderRs":
        return cls(
            id=order.id,
            description=order.description,
            state=order.state,
            assignee_type=order.assignee_type,
            assignee_id=order.assignee_id,
            notification_status=order.notification_status,
            created_at=order.created_at,
            updated_at=order.updated_at,
            version=order.version,
            items=[
                OrderItemDto(device_id=i.device_id, original_device_state=i.original_device_state)
                for i in order.items
            ],
        )


# ---------------- device service ----------------
class DeviceRs(CamelModel):
    id: UUID
    status: str


class DevicesBatchRq(CamelModel):
    ids: List[UUID]


class ReserveDevicesRq(CamelModel):
    device_ids: List[UUID]
    state: str = "OCCUPIED"
    order_id: UUID


class RestoreItem(CamelModel):
    device_id: UUID
    state: str


class RestoreDevicesRq(CamelModel):
    items: List[RestoreItem]


class ApiResponse(CamelModel):
    success: bool
    message: Optional[str] = None


# ---------------- identity service ----------------
class GroupRs(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: UUID
    name: Optional[str] = None


class EmployeeRs(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: UUID
    status: Optional[str] = None
    email: Optional[str] = None


# ---------------- broker payloads ----------------
class OrderEvent(CamelModel):
    order_id: UUID
    state: OrderState
    description: Optional[str] = None
    assignee_type: Optional[AssigneeType] = None
    assignee_id: Optional[UUID] = None
    device_ids: List[UUID] = Field(default_factory=list)
    recipient_emails: List[str] = Field(default_factory=list)

    @classmethod
    def from_order(cls, order: Order, recipients: List[str]) -> "OrderEvent":
        return cls(
            order_id=order.id,
            state=order.state,
            description=order.description,
            assignee_type=order.assignee_type,
            assignee_id=order.assignee_id,
            device_ids=order.device_ids,
            recipient_emails=recipients,
        )

    @property
    def routing_key(self) -> str:
        if self.state is OrderState.CREATED:
            return "order.created"
        return f"order.state.{self.state.value.lower()}"


class NotificationEvent(CamelModel):
    order_id: UUID
    status: str
    message: Optional[str] = None
