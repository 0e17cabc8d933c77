import logging
from app.core.config import settings
from app.events.gateway import EventGateway
from app.schemas.events import (
    ScheduleConflictCheckRequest,
    SwapConflictCheckRequest,
    UsersByBusinessUnitRequest,
    ShiftExchangeEvent,
)

logger = logging.getLogger(__name__)


class EventProducer:
    """Typed outbound messages. Keys follow the partitioning the consumers expect."""

    def __init__(self, gateway: EventGateway):
        self.gateway = gateway

    async def send_schedule_conflict_check(self, request: ScheduleConflictCheckRequest) -> None:
        await self.gateway.send(
            settings.TOPIC_SCHEDULE_CONFLICT_CHECK_REQUEST,
            request.correlation_id,
            request.to_message(),
        )
        logger.debug(f"Sent schedule conflict check {request.correlation_id} for user {request.user_id}")

    async def send_swap_conflict_check(self, request: SwapConflictCheckRequest) -> None:
        await self.gateway.send(
            settings.TOPIC_SWAP_CONFLICT_CHECK_REQUEST,
            request.correlation_id,
            request.to_message(),
        )
        logger.debug(f"Sent swap conflict check {request.correlation_id}")

    async def request_users_by_business_unit(self, business_unit_id: str, correlation_id: str) -> None:
        request = UsersByBusinessUnitRequest(business_unit_id=business_unit_id, correlation_id=correlation_id)
        await self.gateway.send(
            settings.TOPIC_USERS_BY_BUSINESS_UNIT_REQUEST,
            business_unit_id,
            request.to_message(),
        )
        logger.debug(f"Requested users for business unit {business_unit_id} ({correlation_id})")

    async def send_shift_exchange_event(self, event: ShiftExchangeEvent) -> None:
        await self.gateway.send(
            settings.TOPIC_SHIFT_EXCHANGE_APPROVAL,
            event.request_id,
            event.to_message(),
        )
        logger.info(f"Sent {event.status} event for request {event.request_id} to scheduling")
