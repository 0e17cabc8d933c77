"""
Marketplace Workflow Engine.

Drives an exchange shift and its requests through the marketplace:

    OPEN -> AWAITING_MANAGER_APPROVAL -> APPROVED -> COMPLETED
                                      -> REJECTED (back to OPEN)
    OPEN -> CANCELLED

Every status change is a conditional update inside one transaction, so two
callers racing on the same shift cannot both win. Side effects (scheduler
events, push notifications) run only after the transaction has committed and
never fail the operation that triggered them.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.exceptions import (
    BusinessUnitAccessError,
    CannotRequestOwnShiftError,
    ForbiddenError,
    InvalidStateError,
    RequestAlreadyExistsError,
    RequestInvalidStateError,
    RequestNotFoundError,
    ShiftCannotBeModifiedError,
    ShiftNotAcceptingRequestsError,
    ShiftNotFoundError,
    ShiftNotOwnedError,
    ValidationFailedError,
)
from app.events.domain import (
    DomainEventBus,
    ExchangeApproved,
    ExchangeRejected,
    ExchangeShiftPosted,
    RequestAcceptedByPoster,
    ShiftRequestSubmitted,
)
from app.events.producer import EventProducer
from app.models.exchange_shift import ExchangeShift, ExchangeShiftStatus, new_id
from app.models.shift_request import RequestKind, ShiftRequest, ShiftRequestStatus, SwapShift
from app.repositories.exchange_shift_repository import ExchangeShiftRepository
from app.repositories.shift_request_repository import ShiftRequestRepository
from app.schemas.auth import CurrentUser
from app.schemas.events import ShiftExchangeConfirmation, ShiftExchangeEvent
from app.schemas.marketplace import ExchangeShiftResponse, ShiftMetadata, ShiftRequestResponse
from app.services.conflict_check_service import ConflictCheckService

logger = logging.getLogger(__name__)

APPROVED = "APPROVED"
REJECTED = "REJECTED"
CONFIRMATION_SUCCESS = {"SUCCESS"}
CONFIRMATION_FAILURE = {"FAILED", "FAILURE"}
CONFIRMABLE_SHIFT_STATUSES = (ExchangeShiftStatus.APPROVED, ExchangeShiftStatus.AWAITING_MANAGER_APPROVAL)
CONFIRMABLE_REQUEST_STATUSES = (ShiftRequestStatus.APPROVED_BY_MANAGER, ShiftRequestStatus.ACCEPTED_BY_POSTER)

Decision = Tuple[ExchangeShiftResponse, ShiftRequestResponse]


class MarketplaceService:

    def __init__(
        self,
        session_factory: async_sessionmaker,
        conflict_checker: ConflictCheckService,
        producer: EventProducer,
        event_bus: DomainEventBus,
    ):
        self.session_factory = session_factory
        self.conflict_checker = conflict_checker
        self.producer = producer
        self.event_bus = event_bus

    # Posting

    async def post_shift_to_marketplace(
        self,
        planning_service_shift_id: str,
        business_unit_id: str,
        poster: CurrentUser,
        metadata: Optional[ShiftMetadata] = None,
    ) -> ExchangeShiftResponse:
        """Put a scheduled shift up for exchange. Posting the same shift twice returns the first listing."""
        metadata = metadata or ShiftMetadata()
        try:
            async with self.session_factory() as session, session.begin():
                shifts = ExchangeShiftRepository(session)
                existing = await shifts.find_by_shift_and_poster(planning_service_shift_id, poster.id)
                if existing:
                    logger.warning(
                        f"Shift {planning_service_shift_id} already posted by user {poster.id} as {existing.id}"
                    )
                    return ExchangeShiftResponse.model_validate(existing)

                exchange_shift = await shifts.add(ExchangeShift(
                    id=new_id(),
                    planning_service_shift_id=planning_service_shift_id,
                    poster_user_id=poster.id,
                    business_unit_id=business_unit_id,
                    status=ExchangeShiftStatus.OPEN,
                    shift_position=metadata.shift_position,
                    shift_start_time=metadata.shift_start_time,
                    shift_end_time=metadata.shift_end_time,
                    user_first_name=poster.first_name,
                    user_last_name=poster.last_name,
                ))
                result = ExchangeShiftResponse.model_validate(exchange_shift)
        except IntegrityError:
            # Lost an insert race against the same poster
            async with self.session_factory() as session:
                existing = await ExchangeShiftRepository(session).find_by_shift_and_poster(
                    planning_service_shift_id, poster.id
                )
            if existing is None:
                raise
            logger.warning(f"Shift {planning_service_shift_id} was posted concurrently by user {poster.id}")
            return ExchangeShiftResponse.model_validate(existing)

        logger.info(f"Shift {planning_service_shift_id} posted to marketplace as {result.id} by user {poster.id}")
        self.event_bus.publish(ExchangeShiftPosted(exchange_shift=result))
        return result

    async def cancel_exchange_shift(self, exchange_shift_id: str, poster_id: str) -> ExchangeShiftResponse:
        async with self.session_factory() as session, session.begin():
            shifts = ExchangeShiftRepository(session)
            exchange_shift = await shifts.get(exchange_shift_id)
            if exchange_shift is None:
                raise ShiftNotFoundError(exchange_shift_id)
            if exchange_shift.poster_user_id != poster_id:
                raise ShiftNotOwnedError(exchange_shift_id)
            if not exchange_shift.can_be_modified_by_poster:
                raise ShiftCannotBeModifiedError(exchange_shift_id, exchange_shift.status.value)

            cancelled = await shifts.transition(
                exchange_shift_id,
                (ExchangeShiftStatus.OPEN, ExchangeShiftStatus.PENDING_SELECTION),
                ExchangeShiftStatus.CANCELLED,
            )
            if not cancelled:
                raise ShiftCannotBeModifiedError(exchange_shift_id, "changed concurrently")
            result = ExchangeShiftResponse.model_validate(await shifts.get(exchange_shift_id, refresh=True))

        logger.info(f"Exchange shift {exchange_shift_id} cancelled by poster {poster_id}")
        return result

    # Requests

    async def submit_shift_request(
        self,
        exchange_shift_id: str,
        requester: CurrentUser,
        kind: RequestKind,
    ) -> ShiftRequestResponse:
        """
        Bid on an open exchange shift.

        The conflict check is awaited before returning, so the response always
        carries ``is_execution_possible``. A check that fails or times out
        records ``False``.
        """
        async with self.session_factory() as session, session.begin():
            shifts = ExchangeShiftRepository(session)
            requests = ShiftRequestRepository(session)

            exchange_shift = await shifts.get(exchange_shift_id)
            if exchange_shift is None:
                raise ShiftNotFoundError(exchange_shift_id)
            if not exchange_shift.can_accept_requests:
                raise ShiftNotAcceptingRequestsError(exchange_shift_id)
            if exchange_shift.poster_user_id == requester.id:
                raise CannotRequestOwnShiftError()
            if await requests.exists_for_requester(exchange_shift_id, requester.id):
                raise RequestAlreadyExistsError(exchange_shift_id)

            shift_request = ShiftRequest.from_kind(
                kind,
                exchange_shift_id=exchange_shift_id,
                requester_user_id=requester.id,
                requester_first_name=requester.first_name,
                requester_last_name=requester.last_name,
            )
            try:
                await requests.add(shift_request)
            except IntegrityError:
                raise RequestAlreadyExistsError(exchange_shift_id)
            shift_snapshot = ExchangeShiftResponse.model_validate(exchange_shift)

        logger.info(
            f"Shift request {shift_request.id} ({shift_request.request_type.value}) submitted "
            f"by user {requester.id} for exchange shift {exchange_shift_id}"
        )

        execution_possible = await self._check_conflicts(shift_snapshot, requester.id, kind)
        result = await self._store_execution_possible(shift_request.id, execution_possible)

        self.event_bus.publish(ShiftRequestSubmitted(exchange_shift=shift_snapshot, shift_request=result))
        return result

    async def recheck_conflicts(self, request_id: str, caller: Optional[CurrentUser] = None) -> ShiftRequestResponse:
        """Run the conflict check again, e.g. after the schedule changed."""
        async with self.session_factory() as session:
            shift_request = await ShiftRequestRepository(session).get(request_id)
            if shift_request is None:
                raise RequestNotFoundError(request_id)
            exchange_shift = await ExchangeShiftRepository(session).get(shift_request.exchange_shift_id)
            if exchange_shift is None:
                raise ShiftNotFoundError(shift_request.exchange_shift_id)

            if caller is not None and not self._may_view_request(caller, exchange_shift, shift_request):
                raise ForbiddenError(f"Not allowed to recheck shift request {request_id}")
            if shift_request.status not in (ShiftRequestStatus.PENDING, ShiftRequestStatus.ACCEPTED_BY_POSTER):
                raise RequestInvalidStateError(request_id, shift_request.status.value, "PENDING or ACCEPTED_BY_POSTER")

            shift_snapshot = ExchangeShiftResponse.model_validate(exchange_shift)
            requester_id = shift_request.requester_user_id
            kind = shift_request.kind

        execution_possible = await self._check_conflicts(shift_snapshot, requester_id, kind)
        result = await self._store_execution_possible(request_id, execution_possible)
        logger.info(f"Rechecked conflicts for shift request {request_id}: execution_possible={execution_possible}")
        return result

    async def accept_request(self, exchange_shift_id: str, request_id: str, poster_id: str) -> Decision:
        """
        Poster picks the winning request.

        The shift moves OPEN -> AWAITING_MANAGER_APPROVAL only if it is still OPEN,
        so of two concurrent accepts exactly one commits; the other gets
        ShiftNotAcceptingRequestsError. All other pending requests are declined
        in the same transaction.
        """
        async with self.session_factory() as session, session.begin():
            shifts = ExchangeShiftRepository(session)
            requests = ShiftRequestRepository(session)

            exchange_shift = await shifts.get(exchange_shift_id)
            if exchange_shift is None:
                raise ShiftNotFoundError(exchange_shift_id)
            if exchange_shift.poster_user_id != poster_id:
                raise ShiftNotOwnedError(exchange_shift_id)
            if not exchange_shift.can_accept_requests:
                raise ShiftNotAcceptingRequestsError(exchange_shift_id)

            shift_request = await requests.get(request_id)
            if shift_request is None or shift_request.exchange_shift_id != exchange_shift_id:
                raise RequestNotFoundError(request_id)
            if not shift_request.is_pending:
                raise RequestInvalidStateError(request_id, shift_request.status.value, ShiftRequestStatus.PENDING.value)

            claimed = await shifts.transition(
                exchange_shift_id,
                (ExchangeShiftStatus.OPEN,),
                ExchangeShiftStatus.AWAITING_MANAGER_APPROVAL,
                accepted_request_id=request_id,
            )
            if not claimed:
                raise ShiftNotAcceptingRequestsError(exchange_shift_id)

            accepted = await requests.transition(
                request_id,
                (ShiftRequestStatus.PENDING,),
                ShiftRequestStatus.ACCEPTED_BY_POSTER,
                exchange_shift_id=exchange_shift_id,
            )
            if not accepted:
                raise RequestInvalidStateError(request_id, "changed concurrently", ShiftRequestStatus.PENDING.value)

            declined = await requests.decline_pending_siblings(exchange_shift_id, request_id)
            decision = await self._snapshot(shifts, requests, exchange_shift_id, request_id)

        logger.info(
            f"Poster {poster_id} accepted request {request_id} for exchange shift {exchange_shift_id}, "
            f"declined {declined} other requests"
        )
        self.event_bus.publish(RequestAcceptedByPoster(exchange_shift=decision[0], shift_request=decision[1]))
        return decision

    # Manager decisions

    async def update_exchange_shift_status(self, exchange_shift_id: str, status: str, business_unit_id: str) -> Decision:
        decision = (status or "").strip().upper()
        if decision not in (APPROVED, REJECTED):
            raise ValidationFailedError(f"Invalid status '{status}', expected APPROVED or REJECTED")

        async with self.session_factory() as session, session.begin():
            shifts = ExchangeShiftRepository(session)
            requests = ShiftRequestRepository(session)

            exchange_shift = await shifts.find_by_id_and_business_unit(exchange_shift_id, business_unit_id)
            if exchange_shift is None:
                raise ShiftNotFoundError(exchange_shift_id)
            if not exchange_shift.is_pending_manager_approval:
                raise InvalidStateError(
                    f"Exchange shift {exchange_shift_id} is {exchange_shift.status.value}, "
                    f"expected {ExchangeShiftStatus.AWAITING_MANAGER_APPROVAL.value}"
                )
            if not exchange_shift.accepted_request_id:
                raise InvalidStateError(f"Exchange shift {exchange_shift_id} has no accepted request")
            shift_request = await requests.get(exchange_shift.accepted_request_id)
            if shift_request is None:
                raise RequestNotFoundError(exchange_shift.accepted_request_id)

            result = await self._apply_decision(shifts, requests, exchange_shift, shift_request, decision)

        await self._after_decision(result, decision)
        return result

    async def approve_request(self, request_id: str, business_unit_id: Optional[str] = None) -> Decision:
        return await self._decide_request(request_id, APPROVED, business_unit_id)

    async def reject_request(self, request_id: str, business_unit_id: Optional[str] = None) -> Decision:
        return await self._decide_request(request_id, REJECTED, business_unit_id)

    async def _decide_request(self, request_id: str, decision: str, business_unit_id: Optional[str]) -> Decision:
        async with self.session_factory() as session, session.begin():
            shifts = ExchangeShiftRepository(session)
            requests = ShiftRequestRepository(session)

            shift_request = await requests.get(request_id)
            if shift_request is None:
                raise RequestNotFoundError(request_id)
            if shift_request.status != ShiftRequestStatus.ACCEPTED_BY_POSTER:
                raise RequestInvalidStateError(
                    request_id, shift_request.status.value, ShiftRequestStatus.ACCEPTED_BY_POSTER.value
                )
            exchange_shift = await shifts.get(shift_request.exchange_shift_id)
            if exchange_shift is None:
                raise ShiftNotFoundError(shift_request.exchange_shift_id)
            if business_unit_id and exchange_shift.business_unit_id != business_unit_id:
                raise BusinessUnitAccessError(exchange_shift.business_unit_id)

            result = await self._apply_decision(shifts, requests, exchange_shift, shift_request, decision)

        await self._after_decision(result, decision)
        return result

    async def _apply_decision(
        self,
        shifts: ExchangeShiftRepository,
        requests: ShiftRequestRepository,
        exchange_shift: ExchangeShift,
        shift_request: ShiftRequest,
        decision: str,
    ) -> Decision:
        if decision == APPROVED:
            shift_moved = await shifts.transition(
                exchange_shift.id,
                (ExchangeShiftStatus.AWAITING_MANAGER_APPROVAL,),
                ExchangeShiftStatus.APPROVED,
                expected_accepted_request_id=shift_request.id,
            )
            request_status = ShiftRequestStatus.APPROVED_BY_MANAGER
        else:
            shift_moved = await shifts.transition(
                exchange_shift.id,
                (ExchangeShiftStatus.AWAITING_MANAGER_APPROVAL,),
                ExchangeShiftStatus.OPEN,
                accepted_request_id=None,
                expected_accepted_request_id=shift_request.id,
            )
            request_status = ShiftRequestStatus.REJECTED_BY_MANAGER

        if not shift_moved:
            raise InvalidStateError(
                f"Exchange shift {exchange_shift.id} is no longer awaiting approval for request {shift_request.id}"
            )
        if not await requests.transition(shift_request.id, (ShiftRequestStatus.ACCEPTED_BY_POSTER,), request_status):
            raise RequestInvalidStateError(
                shift_request.id, "changed concurrently", ShiftRequestStatus.ACCEPTED_BY_POSTER.value
            )
        return await self._snapshot(shifts, requests, exchange_shift.id, shift_request.id)

    async def _after_decision(self, decision: Decision, outcome: str) -> None:
        exchange_shift, shift_request = decision
        logger.info(f"Exchange shift {exchange_shift.id} {outcome.lower()} for request {shift_request.id}")
        await self._send_scheduler_event(exchange_shift, shift_request, outcome)
        if outcome == APPROVED:
            self.event_bus.publish(ExchangeApproved(exchange_shift=exchange_shift, shift_request=shift_request))
        else:
            self.event_bus.publish(ExchangeRejected(exchange_shift=exchange_shift, shift_request=shift_request))

    async def _send_scheduler_event(
        self,
        exchange_shift: ExchangeShiftResponse,
        shift_request: ShiftRequestResponse,
        outcome: str,
    ) -> None:
        event = ShiftExchangeEvent(
            request_id=shift_request.id,
            exchange_shift_id=exchange_shift.id,
            original_shift_id=exchange_shift.planning_service_shift_id,
            poster_user_id=exchange_shift.poster_user_id,
            requester_user_id=shift_request.requester_user_id,
            request_type=shift_request.request_type.value,
            swap_shift_id=shift_request.swap_shift_id,
            business_unit_id=exchange_shift.business_unit_id,
            status=outcome,
        )
        try:
            await self.producer.send_shift_exchange_event(event)
        except Exception as e:
            # The committed status change stays authoritative
            logger.error(f"Failed to send {outcome} event for request {shift_request.id}: {str(e)}")

    # Scheduler confirmations

    async def handle_external_confirmation(self, confirmation: ShiftExchangeConfirmation) -> None:
        """
        Apply the scheduling system's verdict on an approved exchange.

        The shift and its request move together or not at all: a confirmation for
        a request the shift is no longer waiting on (stale, repeated or out of
        order) is logged and dropped. Database errors propagate so the message is
        redelivered; unknown statuses and unknown requests are dropped.
        """
        outcome = (confirmation.status or "").strip().upper()
        if outcome not in CONFIRMATION_SUCCESS and outcome not in CONFIRMATION_FAILURE:
            logger.warning(f"Ignoring confirmation for request {confirmation.request_id} with status {confirmation.status}")
            return

        try:
            async with self.session_factory() as session, session.begin():
                shifts = ExchangeShiftRepository(session)
                requests = ShiftRequestRepository(session)

                shift_request = await requests.get(confirmation.request_id)
                if shift_request is None:
                    logger.warning(f"Confirmation for unknown shift request {confirmation.request_id}, dropping")
                    return

                if outcome in CONFIRMATION_SUCCESS:
                    request_status = ShiftRequestStatus.COMPLETED
                    shift_moved = await shifts.transition(
                        shift_request.exchange_shift_id,
                        CONFIRMABLE_SHIFT_STATUSES,
                        ExchangeShiftStatus.COMPLETED,
                        expected_accepted_request_id=shift_request.id,
                    )
                else:
                    request_status = ShiftRequestStatus.PROCESSING_FAILED
                    shift_moved = await shifts.transition(
                        shift_request.exchange_shift_id,
                        CONFIRMABLE_SHIFT_STATUSES,
                        ExchangeShiftStatus.OPEN,
                        accepted_request_id=None,
                        expected_accepted_request_id=shift_request.id,
                    )
                if not shift_moved:
                    logger.warning(
                        f"Exchange shift {shift_request.exchange_shift_id} is not waiting on request "
                        f"{shift_request.id}, dropping {outcome} confirmation"
                    )
                    return

                if not await requests.transition(shift_request.id, CONFIRMABLE_REQUEST_STATUSES, request_status):
                    raise RequestInvalidStateError(
                        shift_request.id,
                        shift_request.status.value,
                        " or ".join(status.value for status in CONFIRMABLE_REQUEST_STATUSES),
                    )
        except RequestInvalidStateError as e:
            # Raised inside the transaction so the shift move is rolled back too
            logger.warning(f"Dropping {outcome} confirmation: {str(e)}")
            return

        if outcome in CONFIRMATION_SUCCESS:
            logger.info(f"Shift exchange for request {shift_request.id} completed by scheduling")
        else:
            logger.warning(
                f"Scheduling failed to apply request {shift_request.id}: {confirmation.message}. "
                f"Exchange shift {shift_request.exchange_shift_id} reopened"
            )

    # Queries

    async def get_available_shifts(self, business_unit_id: str, page: int, size: int) -> Tuple[List[ExchangeShiftResponse], int]:
        async with self.session_factory() as session:
            shifts = ExchangeShiftRepository(session)
            items = await shifts.list_by_business_unit_and_status(
                business_unit_id, ExchangeShiftStatus.OPEN, offset=page * size, limit=size
            )
            total = await shifts.count_by_business_unit_and_status(business_unit_id, ExchangeShiftStatus.OPEN)
        return [ExchangeShiftResponse.model_validate(item) for item in items], total

    async def get_user_posted_shifts(self, poster_id: str) -> List[ExchangeShiftResponse]:
        async with self.session_factory() as session:
            items = await ExchangeShiftRepository(session).list_by_poster(poster_id)
        return [ExchangeShiftResponse.model_validate(item) for item in items]

    async def get_user_requests(self, requester_id: str) -> List[ShiftRequestResponse]:
        async with self.session_factory() as session:
            items = await ShiftRequestRepository(session).list_by_requester(requester_id)
        return [ShiftRequestResponse.model_validate(item) for item in items]

    async def get_requests_for_exchange_shift(self, exchange_shift_id: str, poster_id: str) -> List[ShiftRequestResponse]:
        """Pending bids on the poster's shift, oldest first."""
        async with self.session_factory() as session:
            exchange_shift = await ExchangeShiftRepository(session).get(exchange_shift_id)
            if exchange_shift is None:
                raise ShiftNotFoundError(exchange_shift_id)
            if exchange_shift.poster_user_id != poster_id:
                raise ShiftNotOwnedError(exchange_shift_id)
            # Pending rows are stale once a request has been accepted
            if exchange_shift.accepted_request_id:
                return []
            items = await ShiftRequestRepository(session).list_by_exchange_shift_and_status(
                exchange_shift_id, ShiftRequestStatus.PENDING
            )
        return [ShiftRequestResponse.model_validate(item) for item in items]

    async def get_requests_for_poster_shifts(self, poster_id: str) -> List[Tuple[ShiftRequestResponse, ExchangeShiftResponse]]:
        async with self.session_factory() as session:
            rows = await ShiftRequestRepository(session).list_for_poster_shifts(poster_id)
        return [
            (ShiftRequestResponse.model_validate(request), ExchangeShiftResponse.model_validate(shift))
            for request, shift in rows
            if not (request.is_pending and shift.accepted_request_id and shift.accepted_request_id != request.id)
        ]

    async def get_pending_manager_approvals(self, business_unit_id: str) -> List[ShiftRequestResponse]:
        async with self.session_factory() as session:
            items = await ShiftRequestRepository(session).list_by_status_in_business_unit(
                business_unit_id, ShiftRequestStatus.ACCEPTED_BY_POSTER
            )
        return [ShiftRequestResponse.model_validate(item) for item in items]

    async def get_awaiting_manager_approval_exchanges(self, business_unit_id: str) -> List[Decision]:
        async with self.session_factory() as session:
            rows = await ExchangeShiftRepository(session).list_awaiting_approval_with_requests(business_unit_id)
        return [
            (ExchangeShiftResponse.model_validate(shift), ShiftRequestResponse.model_validate(request))
            for shift, request in rows
        ]

    # Helpers

    async def _check_conflicts(self, exchange_shift: ExchangeShiftResponse, requester_id: str, kind: RequestKind) -> bool:
        try:
            if isinstance(kind, SwapShift):
                return await self.conflict_checker.check_swap_shift_conflicts(
                    poster_user_id=exchange_shift.poster_user_id,
                    requester_user_id=requester_id,
                    original_shift_id=exchange_shift.planning_service_shift_id,
                    swap_shift_id=kind.swap_shift_id,
                )
            if exchange_shift.shift_start_time is None or exchange_shift.shift_end_time is None:
                logger.warning(f"Exchange shift {exchange_shift.id} has no shift times, cannot check conflicts")
                return False
            return await self.conflict_checker.check_take_shift_conflicts(
                requester_id, exchange_shift.shift_start_time, exchange_shift.shift_end_time
            )
        except Exception as e:
            logger.error(f"Conflict check for exchange shift {exchange_shift.id} failed: {str(e)}")
            return False

    async def _store_execution_possible(self, request_id: str, execution_possible: bool) -> ShiftRequestResponse:
        async with self.session_factory() as session, session.begin():
            requests = ShiftRequestRepository(session)
            await requests.set_execution_possible(request_id, execution_possible)
            shift_request = await requests.get(request_id, refresh=True)
            if shift_request is None:
                raise RequestNotFoundError(request_id)
            return ShiftRequestResponse.model_validate(shift_request)

    async def _snapshot(
        self,
        shifts: ExchangeShiftRepository,
        requests: ShiftRequestRepository,
        exchange_shift_id: str,
        request_id: str,
    ) -> Decision:
        exchange_shift = await shifts.get(exchange_shift_id, refresh=True)
        shift_request = await requests.get(request_id, refresh=True)
        return ExchangeShiftResponse.model_validate(exchange_shift), ShiftRequestResponse.model_validate(shift_request)

    @staticmethod
    def _may_view_request(caller: CurrentUser, exchange_shift: ExchangeShift, shift_request: ShiftRequest) -> bool:
        if caller.id in (shift_request.requester_user_id, exchange_shift.poster_user_id):
            return True
        return caller.is_manager and caller.business_unit_id in (None, exchange_shift.business_unit_id)
