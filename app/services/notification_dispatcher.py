"""
Notification Dispatch Coordinator.

Push notifications need the recipients' device tokens, which only the user
directory knows. ``dispatch`` parks the payload under a fresh correlation id and
asks the directory for the business unit's users; ``handle_users_response``
picks the payload back up, filters the users and sends one push per recipient.
Entries that never get an answer are dropped after ``timeout_seconds``.
"""
import asyncio
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.core.config import settings
from app.events.producer import EventProducer
from app.models.post import TargetAudience
from app.models.shift_request import ShiftRequestType
from app.schemas.events import DirectoryUser
from app.schemas.marketplace import ExchangeShiftResponse, ShiftRequestResponse
from app.schemas.post import PostResponse
from app.services.push_notification_service import PushMessage, PushNotificationService

logger = logging.getLogger(__name__)

MANAGER_ROLES = {"manager", "admin"}


@dataclass
class UserInfo:
    id: str
    fcm_token: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None

    @classmethod
    def from_directory(cls, user: DirectoryUser) -> "UserInfo":
        return cls(
            id=user.id,
            fcm_token=user.fcm_token,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
        )

    @property
    def is_manager(self) -> bool:
        return (self.role or "").lower() in MANAGER_ROLES


def _shift_label(exchange_shift: ExchangeShiftResponse) -> str:
    label = exchange_shift.shift_position or "shift"
    if exchange_shift.shift_start_time:
        label = f"{label} on {exchange_shift.shift_start_time.strftime('%a, %b %d %H:%M')}"
    return label


class NotificationPayload(ABC):

    @property
    @abstractmethod
    def business_unit_id(self) -> str:
        ...

    @abstractmethod
    def select_recipients(self, users: List[UserInfo]) -> List[UserInfo]:
        ...

    @abstractmethod
    def build_message(self, recipient: UserInfo) -> PushMessage:
        ...


@dataclass
class NewPostNotification(NotificationPayload):
    post: PostResponse

    @property
    def business_unit_id(self) -> str:
        return self.post.business_unit_id

    def select_recipients(self, users: List[UserInfo]) -> List[UserInfo]:
        if self.post.target_audience == TargetAudience.MANAGERS_ONLY:
            return [user for user in users if user.is_manager]
        return list(users)

    def build_message(self, recipient: UserInfo) -> PushMessage:
        author = self.post.author_name
        return PushMessage(
            title=f"New Post: {self.post.title}",
            body=f"Posted by {author}" if author else "New post available",
            data={
                "type": "new_post",
                "postId": self.post.id,
                "businessUnitId": self.post.business_unit_id,
                "authorName": author,
                "createdAt": self.post.created_at.isoformat(),
            },
        )


@dataclass
class NewExchangeShiftNotification(NotificationPayload):
    exchange_shift: ExchangeShiftResponse

    @property
    def business_unit_id(self) -> str:
        return self.exchange_shift.business_unit_id

    def select_recipients(self, users: List[UserInfo]) -> List[UserInfo]:
        return [user for user in users if user.id != self.exchange_shift.poster_user_id]

    def build_message(self, recipient: UserInfo) -> PushMessage:
        poster = self.exchange_shift.poster_name or "A colleague"
        return PushMessage(
            title="New Shift Available",
            body=f"{poster} posted a {_shift_label(self.exchange_shift)} to the marketplace",
            data={
                "type": "new_exchange_shift",
                "exchangeShiftId": self.exchange_shift.id,
                "businessUnitId": self.exchange_shift.business_unit_id,
            },
        )


@dataclass
class ShiftRequestToPosterNotification(NotificationPayload):
    exchange_shift: ExchangeShiftResponse
    shift_request: ShiftRequestResponse

    @property
    def business_unit_id(self) -> str:
        return self.exchange_shift.business_unit_id

    def select_recipients(self, users: List[UserInfo]) -> List[UserInfo]:
        return [user for user in users if user.id == self.exchange_shift.poster_user_id]

    def build_message(self, recipient: UserInfo) -> PushMessage:
        requester = self.shift_request.requester_name or "A colleague"
        action = "swap with" if self.shift_request.request_type == ShiftRequestType.SWAP_SHIFT else "take"
        return PushMessage(
            title="New Shift Request",
            body=f"{requester} wants to {action} your {_shift_label(self.exchange_shift)}",
            data={
                "type": "shift_request",
                "exchangeShiftId": self.exchange_shift.id,
                "requestId": self.shift_request.id,
                "requestType": self.shift_request.request_type.value,
            },
        )


@dataclass
class ManagerApprovalNotification(NotificationPayload):
    exchange_shift: ExchangeShiftResponse
    shift_request: ShiftRequestResponse

    @property
    def business_unit_id(self) -> str:
        return self.exchange_shift.business_unit_id

    def select_recipients(self, users: List[UserInfo]) -> List[UserInfo]:
        return [user for user in users if user.is_manager]

    def build_message(self, recipient: UserInfo) -> PushMessage:
        poster = self.exchange_shift.poster_name or "An employee"
        requester = self.shift_request.requester_name or "a colleague"
        return PushMessage(
            title="Shift Exchange Awaiting Approval",
            body=f"{poster} accepted {requester}'s request for the {_shift_label(self.exchange_shift)}",
            data={
                "type": "manager_approval",
                "exchangeShiftId": self.exchange_shift.id,
                "requestId": self.shift_request.id,
            },
        )


@dataclass
class DualApprovalNotification(NotificationPayload):
    exchange_shift: ExchangeShiftResponse
    shift_request: ShiftRequestResponse

    @property
    def business_unit_id(self) -> str:
        return self.exchange_shift.business_unit_id

    def select_recipients(self, users: List[UserInfo]) -> List[UserInfo]:
        wanted = {self.exchange_shift.poster_user_id, self.shift_request.requester_user_id}
        return [user for user in users if user.id in wanted]

    def build_message(self, recipient: UserInfo) -> PushMessage:
        if recipient.id == self.exchange_shift.poster_user_id:
            body = f"Your {_shift_label(self.exchange_shift)} exchange was approved by a manager"
        else:
            body = f"Your request for the {_shift_label(self.exchange_shift)} was approved by a manager"
        return PushMessage(
            title="Shift Exchange Approved",
            body=body,
            data={
                "type": "exchange_approved",
                "exchangeShiftId": self.exchange_shift.id,
                "requestId": self.shift_request.id,
            },
        )


@dataclass
class PendingNotification:
    payload: NotificationPayload
    timer: Optional[asyncio.TimerHandle] = None


class NotificationDispatcher:

    def __init__(
        self,
        producer: EventProducer,
        push_service: PushNotificationService,
        timeout_seconds: Optional[float] = None,
        enabled: Optional[bool] = None,
    ):
        self.producer = producer
        self.push_service = push_service
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.NOTIFICATION_TIMEOUT_SECONDS
        self.enabled = settings.NOTIFICATIONS_ENABLED if enabled is None else enabled
        self._pending: Dict[str, PendingNotification] = {}
        self._lock = threading.Lock()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    async def dispatch(self, payload: NotificationPayload) -> Optional[str]:
        """Register ``payload`` and ask the directory for recipients. Never raises."""
        if not self.enabled:
            logger.warning(f"Push notifications disabled, skipping {type(payload).__name__}")
            return None

        correlation_id = str(uuid.uuid4())
        loop = asyncio.get_running_loop()
        pending = PendingNotification(payload=payload)
        with self._lock:
            self._pending[correlation_id] = pending
        pending.timer = loop.call_later(self.timeout_seconds, self._expire, correlation_id)

        try:
            await self.producer.request_users_by_business_unit(payload.business_unit_id, correlation_id)
        except Exception as e:
            self._take(correlation_id)
            logger.error(f"Failed to request users for {type(payload).__name__} ({correlation_id}): {str(e)}")
            return None

        logger.info(f"Queued {type(payload).__name__} for business unit {payload.business_unit_id} ({correlation_id})")
        return correlation_id

    async def handle_users_response(self, correlation_id: str, users: List[DirectoryUser]) -> Tuple[int, int]:
        """Fan out the pending notification to the returned users. Returns (sent, failed)."""
        pending = self._take(correlation_id)
        if pending is None:
            logger.warning(f"No pending notification for correlation id {correlation_id}")
            return 0, 0

        payload = pending.payload
        recipients = payload.select_recipients([UserInfo.from_directory(user) for user in users])
        sent = failed = 0
        for recipient in recipients:
            if not recipient.fcm_token:
                logger.debug(f"User {recipient.id} has no push token, skipping")
                continue
            try:
                await self.push_service.send(recipient.fcm_token, payload.build_message(recipient))
                sent += 1
            except Exception as e:
                failed += 1
                logger.error(f"Failed to push {type(payload).__name__} to user {recipient.id}: {str(e)}")

        logger.info(
            f"{type(payload).__name__} ({correlation_id}): {sent} sent, {failed} failed, {len(recipients)} recipients"
        )
        return sent, failed

    def _take(self, correlation_id: str) -> Optional[PendingNotification]:
        with self._lock:
            pending = self._pending.pop(correlation_id, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()
        return pending

    def _expire(self, correlation_id: str) -> None:
        with self._lock:
            pending = self._pending.pop(correlation_id, None)
        if pending is not None:
            logger.warning(
                f"No user directory response for {type(pending.payload).__name__} ({correlation_id}) "
                f"after {self.timeout_seconds}s, dropping notification"
            )

    def cancel_all(self) -> None:
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for entry in pending:
            if entry.timer is not None:
                entry.timer.cancel()
