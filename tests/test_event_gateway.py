import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from app.core.config import settings
from app.core.exceptions import MessagingError
from app.events.gateway import InMemoryEventGateway, RedisStreamEventGateway
from app.events.listeners import MarketplaceListeners
from app.schemas.events import DirectoryUser
from app.services.conflict_check_service import ConflictCheckService
from app.services.marketplace_service import MarketplaceService
from app.services.notification_dispatcher import NotificationDispatcher


class TestInMemoryGateway:

    async def test_sent_messages_reach_subscribers(self):
        gateway = InMemoryEventGateway()
        received = []

        async def handler(topic, payload):
            received.append((topic, payload))

        gateway.subscribe("orders", handler)
        await gateway.send("orders", "k1", {"id": 1})
        await gateway.drain()

        assert received == [("orders", {"id": 1})]
        assert gateway.messages("orders") == [{"id": 1}]

    async def test_failing_handler_is_retried_then_dead_lettered(self):
        gateway = InMemoryEventGateway(max_deliveries=3)
        handler = AsyncMock(side_effect=RuntimeError("boom"))

        gateway.subscribe("orders", handler)
        await gateway.send("orders", "k1", {"id": 1})
        await gateway.drain()

        assert handler.await_count == 3
        assert [message.payload for message in gateway.dead_letters] == [{"id": 1}]

    async def test_handler_recovering_before_limit(self):
        gateway = InMemoryEventGateway(max_deliveries=3)
        handler = AsyncMock(side_effect=[RuntimeError("boom"), None])

        gateway.subscribe("orders", handler)
        await gateway.send("orders", "k1", {"id": 1})
        await gateway.drain()

        assert handler.await_count == 2
        assert gateway.dead_letters == []

    async def test_unserializable_payload_is_refused(self):
        gateway = InMemoryEventGateway()

        with pytest.raises(MessagingError):
            await gateway.send("orders", "k1", {"when": datetime.now(timezone.utc)})
        assert gateway.sent == []


def redis_gateway(redis, max_deliveries=3):
    return RedisStreamEventGateway(redis, group="marketplace", consumer="c1", max_deliveries=max_deliveries)


async def idle_read(*args, **kwargs):
    await asyncio.sleep(0.01)
    return []


class TestRedisStreamGateway:

    async def test_send_appends_to_stream(self):
        redis = AsyncMock()
        gateway = redis_gateway(redis)

        await gateway.send("orders", "k1", {"id": 1})

        args, kwargs = redis.xadd.await_args
        assert args[0] == "orders"
        assert args[1] == {"key": "k1", "payload": json.dumps({"id": 1})}
        assert kwargs["approximate"] is True

    async def test_send_failure_raises_messaging_error(self):
        redis = AsyncMock()
        redis.xadd.side_effect = RedisConnectionError("down")

        with pytest.raises(MessagingError):
            await redis_gateway(redis).send("orders", "k1", {"id": 1})

    async def test_start_tolerates_existing_group(self):
        redis = AsyncMock()
        redis.xgroup_create.side_effect = ResponseError("BUSYGROUP Consumer Group name already exists")
        redis.xautoclaim.return_value = ["0-0", [], []]
        redis.xreadgroup.side_effect = idle_read
        gateway = redis_gateway(redis)
        gateway.subscribe("orders", AsyncMock())

        await gateway.start()
        await gateway.stop()

        redis.xgroup_create.assert_awaited_once_with("orders", "marketplace", id="$", mkstream=True)
        redis.aclose.assert_awaited_once()

    async def test_message_is_acked_after_handlers_succeed(self):
        redis = AsyncMock()
        handler = AsyncMock()
        gateway = redis_gateway(redis)
        gateway.subscribe("orders", handler)

        await gateway._process("orders", "1-0", {"key": "k1", "payload": json.dumps({"id": 1})})

        handler.assert_awaited_once_with("orders", {"id": 1})
        redis.xack.assert_awaited_once_with("orders", "marketplace", "1-0")

    async def test_failed_message_stays_pending(self):
        redis = AsyncMock()
        redis.xpending_range.return_value = [{"message_id": "1-0", "times_delivered": 1}]
        gateway = redis_gateway(redis)
        gateway.subscribe("orders", AsyncMock(side_effect=RuntimeError("boom")))

        await gateway._process("orders", "1-0", {"payload": json.dumps({"id": 1})})

        redis.xack.assert_not_awaited()

    async def test_exhausted_message_is_dropped(self):
        redis = AsyncMock()
        redis.xpending_range.return_value = [{"message_id": "1-0", "times_delivered": 3}]
        gateway = redis_gateway(redis, max_deliveries=3)
        gateway.subscribe("orders", AsyncMock(side_effect=RuntimeError("boom")))

        await gateway._process("orders", "1-0", {"payload": json.dumps({"id": 1})})

        redis.xack.assert_awaited_once_with("orders", "marketplace", "1-0")

    async def test_malformed_message_is_acked(self):
        redis = AsyncMock()
        handler = AsyncMock()
        gateway = redis_gateway(redis)
        gateway.subscribe("orders", handler)

        await gateway._process("orders", "1-0", {"payload": "{not json"})

        handler.assert_not_awaited()
        redis.xack.assert_awaited_once()


class TestListeners:

    @pytest.fixture
    def conflict_checker(self):
        return MagicMock(spec=ConflictCheckService)

    @pytest.fixture
    def dispatcher(self):
        return AsyncMock(spec=NotificationDispatcher)

    @pytest.fixture
    def marketplace_service(self):
        return AsyncMock(spec=MarketplaceService)

    @pytest.fixture
    def listeners(self, conflict_checker, dispatcher, marketplace_service):
        return MarketplaceListeners(conflict_checker, dispatcher, marketplace_service)

    async def test_conflict_response_resolves_check(self, listeners, conflict_checker):
        await listeners.on_schedule_conflict_response("t", {"correlationId": "c1", "hasConflict": True})

        conflict_checker.resolve_schedule_conflict_check.assert_called_once_with("c1", True)

    async def test_malformed_conflict_response_is_swallowed(self, listeners, conflict_checker):
        await listeners.on_swap_conflict_response("t", {"correlationId": "c1"})

        conflict_checker.resolve_swap_conflict_check.assert_not_called()

    async def test_users_response_feeds_dispatcher(self, listeners, dispatcher):
        await listeners.on_users_response(
            "t",
            {"businessUnitId": "BU1", "correlationId": "c1", "users": [{"id": "bob", "fcmToken": "t-bob"}]},
        )

        correlation_id, users = dispatcher.handle_users_response.await_args.args
        assert correlation_id == "c1"
        assert users == [DirectoryUser(id="bob", fcm_token="t-bob")]

    async def test_malformed_confirmation_is_dropped(self, listeners, marketplace_service):
        await listeners.on_confirmation("t", {"status": "SUCCESS"})

        marketplace_service.handle_external_confirmation.assert_not_awaited()

    async def test_confirmation_errors_propagate_for_redelivery(self, listeners, marketplace_service):
        marketplace_service.handle_external_confirmation.side_effect = RuntimeError("database is locked")

        with pytest.raises(RuntimeError):
            await listeners.on_confirmation("t", {"requestId": "r1", "status": "SUCCESS"})

    async def test_confirmation_is_redelivered_until_it_succeeds(self, listeners, marketplace_service):
        gateway = InMemoryEventGateway(max_deliveries=3)
        listeners.register(gateway)
        marketplace_service.handle_external_confirmation.side_effect = [RuntimeError("database is locked"), None]

        await gateway.deliver(settings.TOPIC_SHIFT_EXCHANGE_CONFIRMATIONS, {"requestId": "r1", "status": "SUCCESS"})

        assert marketplace_service.handle_external_confirmation.await_count == 2
        assert gateway.dead_letters == []
