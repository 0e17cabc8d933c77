"""
In-process domain events.

The workflow engine publishes an event once a state change is committed; the
notification and scheduler subscribers react to it in background tasks, so a
failing side effect never reaches the caller of the workflow operation.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Set, Type

from app.schemas.marketplace import ExchangeShiftResponse, ShiftRequestResponse
from app.schemas.post import PostResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc), kw_only=True)


@dataclass(frozen=True)
class ExchangeShiftPosted(DomainEvent):
    exchange_shift: ExchangeShiftResponse


@dataclass(frozen=True)
class ShiftRequestSubmitted(DomainEvent):
    exchange_shift: ExchangeShiftResponse
    shift_request: ShiftRequestResponse


@dataclass(frozen=True)
class RequestAcceptedByPoster(DomainEvent):
    exchange_shift: ExchangeShiftResponse
    shift_request: ShiftRequestResponse


@dataclass(frozen=True)
class ExchangeApproved(DomainEvent):
    exchange_shift: ExchangeShiftResponse
    shift_request: ShiftRequestResponse


@dataclass(frozen=True)
class ExchangeRejected(DomainEvent):
    exchange_shift: ExchangeShiftResponse
    shift_request: ShiftRequestResponse


@dataclass(frozen=True)
class PostCreated(DomainEvent):
    post: PostResponse


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class DomainEventBus:

    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def publish(self, event: DomainEvent) -> None:
        handlers = self._handlers.get(type(event), [])
        if not handlers:
            logger.debug(f"No handlers registered for event type: {type(event).__name__}")
            return
        for handler in handlers:
            task = asyncio.create_task(self._safe_handle(handler, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _safe_handle(self, handler: EventHandler, event: DomainEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.error(f"Error handling event {type(event).__name__} with {handler}: {str(e)}")

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
