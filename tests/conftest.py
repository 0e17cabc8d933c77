import os

os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "100000")
os.environ.setdefault("EVENT_GATEWAY", "memory")

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, List
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.container import build_container
from app.core.database import build_engine
from app.core.security import create_access_token
from app.events.gateway import InMemoryEventGateway
from app.main import create_app
from app.schemas.auth import CurrentUser
from app.schemas.marketplace import ShiftMetadata
from app.services.push_notification_service import PushNotificationService

SHIFT_START = datetime(2030, 3, 4, 8, 0, tzinfo=timezone.utc)
SHIFT_END = SHIFT_START + timedelta(hours=8)


class SerializedSessionFactory:
    """Hands out one session at a time over the single shared in-memory SQLite connection"""

    def __init__(self, factory):
        self._factory = factory
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def __call__(self):
        async with self._lock:
            async with self._factory() as session:
                yield session


class FakeScheduler:
    """Answers conflict checks the way the scheduling service would"""

    def __init__(self, gateway: InMemoryEventGateway):
        self.gateway = gateway
        self.has_conflict = False
        self.swap_possible = True
        self.respond = True
        self.checks: List[dict] = []
        gateway.subscribe(settings.TOPIC_SCHEDULE_CONFLICT_CHECK_REQUEST, self.on_conflict_check)
        gateway.subscribe(settings.TOPIC_SWAP_CONFLICT_CHECK_REQUEST, self.on_swap_check)

    async def on_conflict_check(self, topic, payload):
        self.checks.append(payload)
        if not self.respond:
            return
        await self.gateway.send(
            settings.TOPIC_SCHEDULE_CONFLICT_CHECK_RESPONSE,
            payload["correlationId"],
            {"correlationId": payload["correlationId"], "userId": payload["userId"], "hasConflict": self.has_conflict},
        )

    async def on_swap_check(self, topic, payload):
        self.checks.append(payload)
        if not self.respond:
            return
        await self.gateway.send(
            settings.TOPIC_SWAP_CONFLICT_CHECK_RESPONSE,
            payload["correlationId"],
            {"correlationId": payload["correlationId"], "isSwapPossible": self.swap_possible},
        )

    def approval_events(self) -> List[dict]:
        return self.gateway.messages(settings.TOPIC_SHIFT_EXCHANGE_APPROVAL)


class FakeDirectory:
    """Answers users-by-business-unit lookups"""

    def __init__(self, gateway: InMemoryEventGateway):
        self.gateway = gateway
        self.users: Dict[str, List[dict]] = {}
        gateway.subscribe(settings.TOPIC_USERS_BY_BUSINESS_UNIT_REQUEST, self.on_users_request)

    def add_user(self, business_unit_id, user_id, role="employee", token=None, first_name="Test", last_name="User"):
        self.users.setdefault(business_unit_id, []).append({
            "id": user_id,
            "fcmToken": token if token is not None else f"token-{user_id}",
            "firstName": first_name,
            "lastName": last_name,
            "role": role,
        })

    async def on_users_request(self, topic, payload):
        business_unit_id = payload["businessUnitId"]
        await self.gateway.send(
            settings.TOPIC_USERS_BY_BUSINESS_UNIT_RESPONSE,
            business_unit_id,
            {
                "businessUnitId": business_unit_id,
                "correlationId": payload["correlationId"],
                "users": self.users.get(business_unit_id, []),
            },
        )


def make_user(user_id, roles=("employee",), business_unit_id="BU1", first_name=None, last_name="Tester"):
    return CurrentUser(
        id=user_id,
        first_name=first_name or user_id.capitalize(),
        last_name=last_name,
        roles=list(roles),
        business_unit_id=business_unit_id,
    )


def shift_metadata(position="Cashier"):
    return ShiftMetadata(shift_position=position, shift_start_time=SHIFT_START, shift_end_time=SHIFT_END)


def auth_headers(user_id, roles=("employee",), business_unit_id="BU1", given_name=None, family_name="Tester"):
    token = create_access_token(
        user_id,
        roles=list(roles),
        business_unit_id=business_unit_id,
        given_name=given_name or user_id.capitalize(),
        family_name=family_name,
    )
    return {"Authorization": f"Bearer {token}"}


async def settle(container, rounds=5):
    """Let background side effects (domain events, gateway deliveries) run to completion."""
    for _ in range(rounds):
        await container.event_bus.drain()
        await container.gateway.drain()


@pytest.fixture
def gateway():
    return InMemoryEventGateway(max_deliveries=3)


@pytest.fixture
def scheduler(gateway):
    return FakeScheduler(gateway)


@pytest.fixture
def directory(gateway):
    return FakeDirectory(gateway)


@pytest.fixture
def push_service():
    push = AsyncMock(spec=PushNotificationService)
    push.send.return_value = "projects/test/messages/1"
    return push


@pytest_asyncio.fixture
async def container(gateway, scheduler, directory, push_service):
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    container = build_container(
        engine=engine,
        gateway=gateway,
        push_service=push_service,
        conflict_timeout_seconds=2,
        notification_timeout_seconds=2,
        notifications_enabled=True,
    )
    serialized = SerializedSessionFactory(container.session_factory)
    container.marketplace_service.session_factory = serialized
    container.post_service.session_factory = serialized

    await container.start()
    yield container
    await settle(container)
    await container.stop()


@pytest.fixture
def marketplace(container):
    return container.marketplace_service


@pytest_asyncio.fixture
async def client(container):
    app = create_app(container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
