"""
Inbound message handlers.

Conflict-check and directory responses only complete in-memory correlations,
so their errors are logged and the message is acknowledged. Confirmation
errors propagate so the gateway redelivers the message.
"""
import logging
from typing import Any, Dict

from pydantic import ValidationError

from app.core.config import settings
from app.events.gateway import EventGateway
from app.schemas.events import (
    ScheduleConflictCheckResponse,
    ShiftExchangeConfirmation,
    SwapConflictCheckResponse,
    UsersByBusinessUnitResponse,
)
from app.services.conflict_check_service import ConflictCheckService
from app.services.marketplace_service import MarketplaceService
from app.services.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


class MarketplaceListeners:

    def __init__(
        self,
        conflict_checker: ConflictCheckService,
        dispatcher: NotificationDispatcher,
        marketplace_service: MarketplaceService,
    ):
        self.conflict_checker = conflict_checker
        self.dispatcher = dispatcher
        self.marketplace_service = marketplace_service

    def register(self, gateway: EventGateway) -> None:
        gateway.subscribe(settings.TOPIC_SCHEDULE_CONFLICT_CHECK_RESPONSE, self.on_schedule_conflict_response)
        gateway.subscribe(settings.TOPIC_SWAP_CONFLICT_CHECK_RESPONSE, self.on_swap_conflict_response)
        gateway.subscribe(settings.TOPIC_USERS_BY_BUSINESS_UNIT_RESPONSE, self.on_users_response)
        gateway.subscribe(settings.TOPIC_SHIFT_EXCHANGE_CONFIRMATIONS, self.on_confirmation)

    async def on_schedule_conflict_response(self, topic: str, payload: Dict[str, Any]) -> None:
        try:
            response = ScheduleConflictCheckResponse.model_validate(payload)
            self.conflict_checker.resolve_schedule_conflict_check(response.correlation_id, response.has_conflict)
        except Exception as e:
            logger.error(f"Error processing schedule conflict response from {topic}: {str(e)}")

    async def on_swap_conflict_response(self, topic: str, payload: Dict[str, Any]) -> None:
        try:
            response = SwapConflictCheckResponse.model_validate(payload)
            self.conflict_checker.resolve_swap_conflict_check(response.correlation_id, response.is_swap_possible)
        except Exception as e:
            logger.error(f"Error processing swap conflict response from {topic}: {str(e)}")

    async def on_users_response(self, topic: str, payload: Dict[str, Any]) -> None:
        try:
            response = UsersByBusinessUnitResponse.model_validate(payload)
            logger.info(
                f"Received {len(response.users)} users for business unit {response.business_unit_id} "
                f"({response.correlation_id})"
            )
            await self.dispatcher.handle_users_response(response.correlation_id, response.users)
        except Exception as e:
            logger.error(f"Error processing users response from {topic}: {str(e)}")

    async def on_confirmation(self, topic: str, payload: Dict[str, Any]) -> None:
        try:
            confirmation = ShiftExchangeConfirmation.model_validate(payload)
        except ValidationError as e:
            # Redelivering a malformed message cannot help
            logger.error(f"Dropping malformed confirmation from {topic}: {str(e)}")
            return
        logger.info(f"Received {confirmation.status} confirmation for request {confirmation.request_id}")
        await self.marketplace_service.handle_external_confirmation(confirmation)
