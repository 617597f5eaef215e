import logging
import uuid
from functools import lru_cache

from fastapi import Header, HTTPException

from orders_service import config
from orders_service.assignees import AssigneeResolver
from orders_service.broker.publisher import RabbitMQPublisher
from orders_service.clients.devices import DevicesClient
from orders_service.clients.identity import IdentityClient
from orders_service.context import RequestContext
from orders_service.engine import OrderLifecycleEngine
from orders_service.security import decode_token
from orders_service.store import PostgresOrderStore

logger = logging.getLogger(__name__)


def get_request_context(
    authorization: str = Header(None),
    x_correlation_id: str = Header(None),
) -> RequestContext:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")

    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = decode_token(token)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    return RequestContext(
        token=token,
        subject=str(subject),
        correlation_id=x_correlation_id or str(uuid.uuid4()),
    )


@lru_cache(maxsize=1)
def get_store() -> PostgresOrderStore:
    return PostgresOrderStore(config.DATABASE_URL)


@lru_cache(maxsize=1)
def get_publisher() -> RabbitMQPublisher:
    return RabbitMQPublisher(config.RABBIT_URL, exchange=config.ORDERS_EXCHANGE)


@lru_cache(maxsize=1)
def get_engine() -> OrderLifecycleEngine:
    return OrderLifecycleEngine(
        store=get_store(),
        devices=DevicesClient(config.DEVICES_SERVICE_URL, timeout=config.HTTP_TIMEOUT_SECONDS),
        resolver=AssigneeResolver(
            IdentityClient(config.GROUPS_SERVICE_URL, timeout=config.HTTP_TIMEOUT_SECONDS)
        ),
        publisher=get_publisher(),
        idempotency_namespace=config.IDEMPOTENCY_NAMESPACE,
    )
