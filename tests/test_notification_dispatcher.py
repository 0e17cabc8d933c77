import asyncio
from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import MessagingError
from app.events.producer import EventProducer
from app.models.exchange_shift import ExchangeShiftStatus
from app.models.post import TargetAudience
from app.models.shift_request import ShiftRequestStatus, ShiftRequestType
from app.schemas.events import DirectoryUser
from app.schemas.marketplace import ExchangeShiftResponse, ShiftRequestResponse
from app.schemas.post import PostResponse
from app.services.notification_dispatcher import (
    DualApprovalNotification,
    ManagerApprovalNotification,
    NewExchangeShiftNotification,
    NewPostNotification,
    NotificationDispatcher,
    ShiftRequestToPosterNotification,
    UserInfo,
)
from app.services.push_notification_service import PushDeliveryError, PushNotificationService

from conftest import SHIFT_END, SHIFT_START

NOW = SHIFT_START


def exchange_shift(**overrides):
    values = dict(
        id="x1",
        planning_service_shift_id="S1",
        poster_user_id="alice",
        business_unit_id="BU1",
        status=ExchangeShiftStatus.OPEN,
        shift_position="Cashier",
        shift_start_time=SHIFT_START,
        shift_end_time=SHIFT_END,
        user_first_name="Alice",
        user_last_name="Tester",
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return ExchangeShiftResponse(**values)


def shift_request(**overrides):
    values = dict(
        id="r1",
        exchange_shift_id="x1",
        requester_user_id="bob",
        request_type=ShiftRequestType.TAKE_SHIFT,
        requester_first_name="Bob",
        requester_last_name="Tester",
        status=ShiftRequestStatus.PENDING,
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return ShiftRequestResponse(**values)


def post(**overrides):
    values = dict(
        id="p1",
        title="Inventory day",
        body="Everyone in at 7",
        author_user_id="mona",
        business_unit_id="BU1",
        target_audience=TargetAudience.ALL_EMPLOYEES,
        creator_first_name="Mona",
        creator_last_name="Manager",
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return PostResponse(**values)


def directory_users():
    return [
        DirectoryUser(id="alice", fcm_token="t-alice", role="employee"),
        DirectoryUser(id="bob", fcm_token="t-bob", role="employee"),
        DirectoryUser(id="carol", fcm_token=None, role="employee"),
        DirectoryUser(id="mona", fcm_token="t-mona", role="MANAGER"),
        DirectoryUser(id="root", fcm_token="t-root", role="admin"),
    ]


def user_ids(users):
    return [user.id for user in users]


@pytest.fixture
def producer():
    return AsyncMock(spec=EventProducer)


@pytest.fixture
def push():
    push = AsyncMock(spec=PushNotificationService)
    push.send.return_value = "projects/test/messages/1"
    return push


@pytest.fixture
def dispatcher(producer, push):
    return NotificationDispatcher(producer, push, timeout_seconds=1, enabled=True)


class TestRecipientSelection:

    users = [UserInfo.from_directory(user) for user in directory_users()]

    def test_new_exchange_shift_goes_to_everyone_but_poster(self):
        payload = NewExchangeShiftNotification(exchange_shift())

        assert user_ids(payload.select_recipients(self.users)) == ["bob", "carol", "mona", "root"]
        message = payload.build_message(self.users[1])
        assert message.title == "New Shift Available"
        assert message.data["type"] == "new_exchange_shift"
        assert "Alice Tester" in message.body

    def test_shift_request_goes_to_poster_only(self):
        payload = ShiftRequestToPosterNotification(
            exchange_shift(), shift_request(request_type=ShiftRequestType.SWAP_SHIFT, swap_shift_id="S9")
        )

        assert user_ids(payload.select_recipients(self.users)) == ["alice"]
        message = payload.build_message(self.users[0])
        assert message.title == "New Shift Request"
        assert "swap with" in message.body
        assert message.data["requestType"] == "SWAP_SHIFT"

    def test_manager_approval_goes_to_managers_and_admins(self):
        payload = ManagerApprovalNotification(exchange_shift(), shift_request())

        assert user_ids(payload.select_recipients(self.users)) == ["mona", "root"]
        assert payload.build_message(self.users[3]).title == "Shift Exchange Awaiting Approval"

    def test_dual_approval_goes_to_both_parties_with_own_body(self):
        payload = DualApprovalNotification(exchange_shift(), shift_request())

        recipients = payload.select_recipients(self.users)
        assert user_ids(recipients) == ["alice", "bob"]
        poster_message = payload.build_message(recipients[0])
        requester_message = payload.build_message(recipients[1])
        assert poster_message.title == requester_message.title == "Shift Exchange Approved"
        assert poster_message.body != requester_message.body

    def test_post_for_all_employees(self):
        payload = NewPostNotification(post())

        assert len(payload.select_recipients(self.users)) == 5
        message = payload.build_message(self.users[0])
        assert message.title == "New Post: Inventory day"
        assert message.body == "Posted by Mona Manager"
        assert message.data["type"] == "new_post"
        assert message.data["postId"] == "p1"

    def test_post_for_managers_only(self):
        payload = NewPostNotification(post(target_audience=TargetAudience.MANAGERS_ONLY))

        assert user_ids(payload.select_recipients(self.users)) == ["mona", "root"]

    def test_post_without_author_name(self):
        payload = NewPostNotification(post(creator_first_name=None, creator_last_name=None))

        assert payload.build_message(self.users[0]).body == "New post available"


class TestDispatch:

    async def test_dispatch_requests_directory_lookup(self, dispatcher, producer):
        correlation_id = await dispatcher.dispatch(NewExchangeShiftNotification(exchange_shift()))

        producer.request_users_by_business_unit.assert_awaited_once_with("BU1", correlation_id)
        assert dispatcher.pending_count == 1
        dispatcher.cancel_all()

    async def test_response_fans_out_and_skips_users_without_token(self, dispatcher, push):
        correlation_id = await dispatcher.dispatch(NewExchangeShiftNotification(exchange_shift()))

        sent, failed = await dispatcher.handle_users_response(correlation_id, directory_users())

        assert (sent, failed) == (3, 0)
        tokens = [call.args[0] for call in push.send.await_args_list]
        assert tokens == ["t-bob", "t-mona", "t-root"]
        assert dispatcher.pending_count == 0

    async def test_one_failed_push_does_not_stop_the_others(self, dispatcher, push):
        push.send.side_effect = [PushDeliveryError("token expired"), "projects/test/messages/2"]
        correlation_id = await dispatcher.dispatch(DualApprovalNotification(exchange_shift(), shift_request()))

        assert await dispatcher.handle_users_response(correlation_id, directory_users()) == (1, 1)

    async def test_unknown_correlation_id(self, dispatcher, push):
        assert await dispatcher.handle_users_response("nobody-asked", directory_users()) == (0, 0)
        push.send.assert_not_awaited()

    async def test_second_response_is_ignored(self, dispatcher, push):
        correlation_id = await dispatcher.dispatch(ManagerApprovalNotification(exchange_shift(), shift_request()))

        assert await dispatcher.handle_users_response(correlation_id, directory_users()) == (2, 0)
        assert await dispatcher.handle_users_response(correlation_id, directory_users()) == (0, 0)
        assert push.send.await_count == 2

    async def test_unanswered_lookup_expires(self, producer, push):
        dispatcher = NotificationDispatcher(producer, push, timeout_seconds=0.05, enabled=True)
        correlation_id = await dispatcher.dispatch(NewExchangeShiftNotification(exchange_shift()))
        assert dispatcher.pending_count == 1

        await asyncio.sleep(0.1)

        assert dispatcher.pending_count == 0
        assert await dispatcher.handle_users_response(correlation_id, directory_users()) == (0, 0)
        push.send.assert_not_awaited()

    async def test_disabled_dispatcher_sends_nothing(self, producer, push):
        dispatcher = NotificationDispatcher(producer, push, enabled=False)

        assert await dispatcher.dispatch(NewExchangeShiftNotification(exchange_shift())) is None
        producer.request_users_by_business_unit.assert_not_awaited()
        assert dispatcher.pending_count == 0

    async def test_lookup_send_failure_drops_entry(self, dispatcher, producer):
        producer.request_users_by_business_unit.side_effect = MessagingError("broker down")

        assert await dispatcher.dispatch(NewExchangeShiftNotification(exchange_shift())) is None
        assert dispatcher.pending_count == 0
