"""
Assignee resolution.

Checks that the employee or group an order is assigned to exists and is
eligible, and returns the addresses lifecycle notifications go to.
"""

import logging
from typing import List, Optional
from uuid import UUID

from pydantic import EmailStr, TypeAdapter, ValidationError

from orders_service import messages
from orders_service.clients.identity import IdentityClient
from orders_service.context import RequestContext
from orders_service.domain import AssigneeType
from orders_service.errors import ErrorKind, IdentityUnavailable, OrderError

logger = logging.getLogger(__name__)

_EMAIL = TypeAdapter(EmailStr)

ACTIVE_STATUS = "ACTIVE"


def is_valid_email(value: Optional[str]) -> bool:
    if not value or not value.strip():
        return False
    try:
        _EMAIL.validate_python(value.strip())
    except ValidationError:
        return False
    return True


class AssigneeResolver:

    def __init__(self, identity: IdentityClient):
        self.identity = identity

    def resolve(
        self,
        assignee_type: Optional[AssigneeType],
        assignee_id: Optional[UUID],
        ctx: RequestContext,
    ) -> List[str]:
        """
        Recipient emails for an assignee.

        Identity-service failures surface as OrderError(INTERNAL_SERVER);
        ``retryable`` is set when the cause was transport or 503.
        Never returns an empty list.
        """
        if assignee_type is None or assignee_id is None:
            raise OrderError(messages.ASSIGNEE_REQUIRED, ErrorKind.BAD_REQUEST)

        try:
            if assignee_type is AssigneeType.GROUP:
                recipients = self._group_recipients(assignee_id, ctx)
            else:
                recipients = self._employee_recipients(assignee_id, ctx)
        except IdentityUnavailable as e:
            logger.error(f"Identity service failure resolving {assignee_type.value} {assignee_id}: {e.message}")
            raise OrderError(e.message, ErrorKind.INTERNAL_SERVER, retryable=e.retryable) from e

        if not recipients:
            raise OrderError(
                messages.ASSIGNEE_NOT_FOUND % (assignee_id, assignee_type.value),
                ErrorKind.NOT_FOUND,
            )
        return recipients

    def _group_recipients(self, group_id: UUID, ctx: RequestContext) -> List[str]:
        group = self.identity.get_group(group_id, ctx)
        if group is None:
            raise OrderError(messages.GROUP_NOT_FOUND % group_id, ErrorKind.NOT_FOUND)

        emails = [e.strip() for e in self.identity.get_group_member_emails(group_id, ctx) if is_valid_email(e)]
        if not emails:
            raise OrderError(messages.GROUP_NO_MEMBERS % group_id, ErrorKind.CONFLICT)
        return emails

    def _employee_recipients(self, employee_id: UUID, ctx: RequestContext) -> List[str]:
        employee = self.identity.get_employee(employee_id, ctx)
        if employee is None:
            raise OrderError(messages.EMPLOYEE_NOT_FOUND % employee_id, ErrorKind.NOT_FOUND)

        if (employee.status or "").upper() != ACTIVE_STATUS:
            raise OrderError(messages.EMPLOYEE_INACTIVE % employee_id, ErrorKind.CONFLICT)

        if not employee.email or not employee.email.strip():
            raise OrderError(messages.EMPLOYEE_NO_EMAIL % employee_id, ErrorKind.CONFLICT)
        return [employee.email.strip()]
