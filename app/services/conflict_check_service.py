"""
Conflict Check Coordinator.

Asks the scheduling system whether a shift change would double-book someone and
waits for the answer that arrives later on a response topic. Each outbound
check gets a fresh correlation id and a future in ``_pending``; the future is
resolved by the response listener or, failing that, by the timeout. Whichever
happens first removes the entry.
"""
import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from app.core.config import settings
from app.events.producer import EventProducer
from app.schemas.events import ScheduleConflictCheckRequest, SwapConflictCheckRequest

logger = logging.getLogger(__name__)

TAKE_SHIFT_CHECK = "take_shift"
SWAP_SHIFT_CHECK = "swap_shift"


@dataclass
class PendingCheck:
    kind: str
    future: asyncio.Future


class ConflictCheckService:

    def __init__(self, producer: EventProducer, timeout_seconds: Optional[float] = None):
        self.producer = producer
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.CONFLICT_CHECK_TIMEOUT_SECONDS
        self._pending: Dict[str, PendingCheck] = {}
        self._lock = threading.Lock()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    async def check_take_shift_conflicts(self, user_id: str, start_time: datetime, end_time: datetime) -> bool:
        """Return True when ``user_id`` can work the given time range."""
        correlation_id = str(uuid.uuid4())
        request = ScheduleConflictCheckRequest(
            user_id=user_id,
            start_time=start_time,
            end_time=end_time,
            correlation_id=correlation_id,
        )
        return await self._await_answer(
            correlation_id,
            TAKE_SHIFT_CHECK,
            lambda: self.producer.send_schedule_conflict_check(request),
        )

    async def check_swap_shift_conflicts(
        self,
        poster_user_id: str,
        requester_user_id: str,
        original_shift_id: str,
        swap_shift_id: str,
    ) -> bool:
        """Return True when both users can work each other's shift."""
        correlation_id = str(uuid.uuid4())
        request = SwapConflictCheckRequest(
            poster_user_id=poster_user_id,
            requester_user_id=requester_user_id,
            original_shift_id=original_shift_id,
            swap_shift_id=swap_shift_id,
            correlation_id=correlation_id,
        )
        return await self._await_answer(
            correlation_id,
            SWAP_SHIFT_CHECK,
            lambda: self.producer.send_swap_conflict_check(request),
        )

    def resolve_schedule_conflict_check(self, correlation_id: str, has_conflict: bool) -> bool:
        return self._resolve(correlation_id, TAKE_SHIFT_CHECK, not has_conflict)

    def resolve_swap_conflict_check(self, correlation_id: str, is_swap_possible: bool) -> bool:
        return self._resolve(correlation_id, SWAP_SHIFT_CHECK, is_swap_possible)

    async def _await_answer(
        self,
        correlation_id: str,
        kind: str,
        send: Callable[[], Awaitable[None]],
    ) -> bool:
        future = asyncio.get_running_loop().create_future()
        with self._lock:
            self._pending[correlation_id] = PendingCheck(kind=kind, future=future)

        try:
            try:
                await send()
            except Exception as e:
                logger.error(f"Failed to send {kind} conflict check {correlation_id}: {str(e)}")
                return False

            try:
                return await asyncio.wait_for(future, timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning(
                    f"{kind} conflict check {correlation_id} timed out after {self.timeout_seconds}s, assuming not possible"
                )
                return False
        finally:
            self._discard(correlation_id)

    def _discard(self, correlation_id: str) -> Optional[PendingCheck]:
        with self._lock:
            return self._pending.pop(correlation_id, None)

    def _resolve(self, correlation_id: str, kind: str, execution_possible: bool) -> bool:
        with self._lock:
            pending = self._pending.get(correlation_id)
            if pending is not None and pending.kind == kind:
                del self._pending[correlation_id]
        if pending is None:
            logger.warning(f"No pending {kind} conflict check for correlation id {correlation_id}")
            return False
        if pending.kind != kind:
            # Left in place for the matching response or the timeout
            logger.warning(
                f"Correlation id {correlation_id} belongs to a {pending.kind} check, dropping {kind} response"
            )
            return False

        def _set_result():
            if not pending.future.done():
                pending.future.set_result(execution_possible)

        # Listeners may run on another thread than the waiter's loop
        pending.future.get_loop().call_soon_threadsafe(_set_result)
        logger.info(f"Resolved {kind} conflict check {correlation_id}: execution_possible={execution_possible}")
        return True
