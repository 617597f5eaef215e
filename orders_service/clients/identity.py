import logging
from typing import List, Optional
from uuid import UUID

from pydantic import TypeAdapter, ValidationError

from orders_service import messages
from orders_service.clients.base import HttpServiceClient, RemoteCallFailed
from orders_service.context import RequestContext
from orders_service.errors import (
    EmployeeUnavailable,
    FailureReason,
    GroupUnavailable,
    IdentityUnavailable,
)
from orders_service.schemas import EmployeeRs, GroupRs

logger = logging.getLogger(__name__)

_EMAIL_LIST = TypeAdapter(List[Optional[str]])


def _unavailable(err: RemoteCallFailed, error_cls) -> IdentityUnavailable:
    # only transport failures and 503 are worth retrying
    if err.is_transport or err.status_code == 503:
        return error_cls(messages.SERVICE_UNAVAILABLE, FailureReason.SERVICE_UNAVAILABLE)
    return error_cls(messages.DEPENDENCY_ERROR, FailureReason.INTERNAL)


class IdentityClient(HttpServiceClient):
    """Read-only access to groups and employees; this service never mutates them."""

    service_name = "infra-groups-service"

    def get_group(self, group_id: UUID, ctx: RequestContext) -> Optional[GroupRs]:
        try:
            r = self._request("GET", f"/groups/{group_id}", ctx)
            body = self._json(r)
            return GroupRs.model_validate(body) if body else None
        except RemoteCallFailed as e:
            if e.status_code == 404:
                return None
            logger.error(f"Error fetching group {group_id}: {e}")
            raise _unavailable(e, GroupUnavailable) from e
        except ValidationError as e:
            logger.error(f"Malformed group response for {group_id}: {e}")
            raise GroupUnavailable(messages.DEPENDENCY_ERROR, FailureReason.INTERNAL) from e

    def get_group_member_emails(self, group_id: UUID, ctx: RequestContext) -> List[str]:
        try:
            r = self._request("GET", f"/groups/{group_id}/members/emails", ctx)
            emails = _EMAIL_LIST.validate_python(self._json(r))
        except RemoteCallFailed as e:
            logger.error(f"Error fetching member emails of group {group_id}: {e}")
            raise _unavailable(e, GroupUnavailable) from e
        except ValidationError as e:
            logger.error(f"Malformed member email list for group {group_id}: {e}")
            raise GroupUnavailable(messages.DEPENDENCY_ERROR, FailureReason.INTERNAL) from e
        return [email for email in emails if email]

    def get_employee(self, employee_id: UUID, ctx: RequestContext) -> Optional[EmployeeRs]:
        try:
            r = self._request("GET", f"/api/employees/{employee_id}", ctx)
            body = self._json(r)
            return EmployeeRs.model_validate(body) if body else None
        except RemoteCallFailed as e:
            if e.status_code == 404:
                return None
            logger.error(f"Error fetching employee {employee_id}: {e}")
            raise _unavailable(e, EmployeeUnavailable) from e
        except ValidationError as e:
            logger.error(f"Malformed employee response for {employee_id}: {e}")
            raise EmployeeUnavailable(messages.DEPENDENCY_ERROR, FailureReason.INTERNAL) from e
