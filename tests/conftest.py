"""
Shared fixtures: an engine wired to in-memory fakes, and a JWT for the HTTP tests.
"""

import uuid

import pytest
from jose import jwt

from orders_service import config
from orders_service.context import RequestContext
from orders_service.engine import OrderLifecycleEngine
from tests.fakes import FakeDevicesClient, FakeResolver, InMemoryOrderStore, RecordingPublisher

DEVICE_A = uuid.UUID("00000000-0000-0000-0000-00000000000a")
DEVICE_B = uuid.UUID("00000000-0000-0000-0000-00000000000b")
EMPLOYEE_ID = uuid.UUID("00000000-0000-0000-0000-0000000000e1")


@pytest.fixture
def ctx():
    return RequestContext(token="test-token", subject="tester", correlation_id="corr-1")


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def devices():
    return FakeDevicesClient({DEVICE_A: "GOOD_CONDITION", DEVICE_B: "FAIR"})


@pytest.fixture
def resolver():
    return FakeResolver(["alice@example.com"])


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def engine(store, devices, resolver, publisher):
    return OrderLifecycleEngine(
        store=store,
        devices=devices,
        resolver=resolver,
        publisher=publisher,
        idempotency_namespace=config.IDEMPOTENCY_NAMESPACE,
    )


@pytest.fixture
def auth_headers():
    token = jwt.encode({"sub": "tester"}, config.SECRET_KEY, algorithm=config.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}
