"""
Device inventory adapter.

Wraps the three device-service calls the order workflows need and turns
every failure into a DeviceUnavailable carrying a FailureReason.
"""

import logging
from typing import Dict, Iterable, List, Sequence, Tuple
from uuid import UUID

from pydantic import TypeAdapter, ValidationError

from orders_service import messages
from orders_service.clients.base import HttpServiceClient, RemoteCallFailed
from orders_service.context import RequestContext
from orders_service.errors import DeviceUnavailable, FailureReason
from orders_service.schemas import (
    ApiResponse,
    DeviceRs,
    DevicesBatchRq,
    ReserveDevicesRq,
    RestoreDevicesRq,
    RestoreItem,
)

logger = logging.getLogger(__name__)

_DEVICE_LIST = TypeAdapter(List[DeviceRs])


def _classify(err: RemoteCallFailed) -> FailureReason:
    # transport failures and any 5xx are retryable upstream
    if err.is_transport or err.status_code >= 500:
        return FailureReason.SERVICE_UNAVAILABLE
    if err.status_code == 400:
        return FailureReason.BAD_REQUEST
    return FailureReason.INTERNAL


def _message_for(reason: FailureReason, err: RemoteCallFailed) -> str:
    if reason is FailureReason.SERVICE_UNAVAILABLE:
        return messages.SERVICE_UNAVAILABLE
    if reason is FailureReason.BAD_REQUEST:
        return messages.INVALID_REQUEST
    return err.detail or messages.DEVICE_ERROR_COMMUNICATION


class DevicesClient(HttpServiceClient):
    service_name = "infra-devices-service"

    BATCH_PATH = "/api/devices/batch"
    RESERVE_PATH = "/api/devices/reserve"
    RESTORE_PATH = "/api/devices/restore"

    def fetch_states(self, device_ids: Iterable[UUID], ctx: RequestContext) -> Dict[UUID, str]:
        """
        Current status of every requested device.

        A response that covers fewer devices than requested is treated as
        a total failure (NOT_FOUND): a partial match is ambiguous.
        """
        ids = list(dict.fromkeys(device_ids))
        body = DevicesBatchRq(ids=ids).to_wire()
        try:
            r = self._request("POST", self.BATCH_PATH, ctx, json=body)
            devices = _DEVICE_LIST.validate_python(self._json(r))
        except RemoteCallFailed as e:
            reason = _classify(e)
            logger.error(f"Device batch fetch failed for {ids}: {e} ({reason.value})")
            raise DeviceUnavailable(_message_for(reason, e), reason) from e
        except ValidationError as e:
            logger.error(f"Malformed device batch response for {ids}: {e}")
            raise DeviceUnavailable(messages.DEVICE_ERROR_COMMUNICATION, FailureReason.INTERNAL) from e

        states = {d.id: d.status for d in devices}
        missing = [i for i in ids if i not in states]
        if missing or len(devices) != len(ids):
            logger.error(f"Device service returned {len(devices)}/{len(ids)} devices; missing={missing}")
            raise DeviceUnavailable(messages.DEVICE_NOT_FOUND_BY_IDS % ids, FailureReason.NOT_FOUND)
        return states

    def reserve(self, device_ids: Sequence[UUID], order_id: UUID, ctx: RequestContext) -> None:
        """Mark devices OCCUPIED for ``order_id`` (one atomic call server-side)."""
        body = ReserveDevicesRq(device_ids=list(device_ids), order_id=order_id).to_wire()
        try:
            r = self._request("PUT", self.RESERVE_PATH, ctx, json=body)
            result = ApiResponse.model_validate(self._json(r))
        except RemoteCallFailed as e:
            reason = _classify(e)
            logger.error(f"Reserve failed for order {order_id} devices {list(device_ids)}: {e}")
            raise DeviceUnavailable(_message_for(reason, e), reason) from e
        except ValidationError as e:
            logger.error(f"Malformed reserve response for order {order_id}: {e}")
            raise DeviceUnavailable(messages.DEVICE_ERROR_COMMUNICATION, FailureReason.INTERNAL) from e

        if not result.success:
            logger.warning(f"Device service refused reservation for order {order_id}: {result.message}")
            raise DeviceUnavailable(
                messages.EQUIPMENT_RESERVE_FAILED % (result.message or list(device_ids)),
                FailureReason.CONFLICT,
            )
        logger.info(f"Reserved {len(device_ids)} devices for order {order_id}")

    def restore(self, items: Sequence[Tuple[UUID, str]], ctx: RequestContext) -> None:
        """Put each device back into the state it had before the order."""
        if not items:
            raise DeviceUnavailable(messages.INVALID_EQUIPMENT_LIST, FailureReason.BAD_REQUEST)

        body = RestoreDevicesRq(
            items=[RestoreItem(device_id=device_id, state=state) for device_id, state in items]
        ).to_wire()
        device_ids = [device_id for device_id, _ in items]
        try:
            r = self._request("POST", self.RESTORE_PATH, ctx, json=body)
            result = ApiResponse.model_validate(self._json(r))
        except RemoteCallFailed as e:
            reason = _classify(e)
            logger.error(f"Restore failed for devices {device_ids}: {e}")
            raise DeviceUnavailable(_message_for(reason, e), reason) from e
        except ValidationError as e:
            logger.error(f"Malformed restore response for devices {device_ids}: {e}")
            raise DeviceUnavailable(messages.DEVICE_ERROR_COMMUNICATION, FailureReason.INTERNAL) from e

        if not result.success:
            raise DeviceUnavailable(
                result.message or messages.DEVICE_ERROR_COMMUNICATION,
                FailureReason.INTERNAL,
            )
        logger.info(f"Restored original states for devices {device_ids}")
