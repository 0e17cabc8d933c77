"""
Event gateway between the marketplace and its external collaborators.

The workflow engine and the coordinators only see ``EventGateway``. A message is
acknowledged once every handler subscribed to its topic has returned; a handler
that raises leaves the message unacknowledged so it is delivered again.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError

from app.core.exceptions import MessagingError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, Dict[str, Any]], Awaitable[None]]


class EventGateway(ABC):

    @abstractmethod
    async def send(self, topic: str, key: str, payload: Dict[str, Any]) -> None:
        """Publish ``payload`` on ``topic``. Raises MessagingError if the transport refuses it."""

    @abstractmethod
    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        """Register ``handler`` for inbound messages on ``topic``."""

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


@dataclass
class SentMessage:
    topic: str
    key: str
    payload: Dict[str, Any]


class InMemoryEventGateway(EventGateway):
    """
    Loopback gateway for local runs and tests.

    Sent messages are recorded in ``sent`` and delivered to local subscribers as
    background tasks. A failing handler is retried up to ``max_deliveries`` times,
    after which the message is parked in ``dead_letters``.
    """

    def __init__(self, max_deliveries: int = 3):
        self._handlers: Dict[str, List[MessageHandler]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()
        self.max_deliveries = max_deliveries
        self.sent: List[SentMessage] = []
        self.dead_letters: List[SentMessage] = []

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        self._handlers[topic].append(handler)
        logger.info(f"Subscribed {getattr(handler, '__qualname__', handler)} to {topic}")

    async def send(self, topic: str, key: str, payload: Dict[str, Any]) -> None:
        try:
            # Same serialization boundary as a real transport
            message = json.loads(json.dumps(payload))
        except (TypeError, ValueError) as e:
            raise MessagingError(f"Payload for {topic} is not serializable: {e}") from e

        sent = SentMessage(topic=topic, key=key, payload=message)
        self.sent.append(sent)
        for handler in list(self._handlers.get(topic, [])):
            task = asyncio.create_task(self._deliver(sent, handler))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def deliver(self, topic: str, payload: Dict[str, Any], key: str = "") -> None:
        """Inject an inbound message as if it arrived from the transport."""
        message = SentMessage(topic=topic, key=key, payload=payload)
        for handler in list(self._handlers.get(topic, [])):
            await self._deliver(message, handler)

    async def _deliver(self, message: SentMessage, handler: MessageHandler) -> None:
        for attempt in range(1, self.max_deliveries + 1):
            try:
                await handler(message.topic, message.payload)
                return
            except Exception as e:
                logger.warning(
                    f"Handler for {message.topic} failed on delivery {attempt}/{self.max_deliveries}: {str(e)}"
                )
        logger.error(f"Giving up on message for {message.topic} with key {message.key}")
        self.dead_letters.append(message)

    def messages(self, topic: str) -> List[Dict[str, Any]]:
        return [sent.payload for sent in self.sent if sent.topic == topic]

    async def drain(self) -> None:
        """Wait until every in-flight delivery, including ones it triggers, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)


class RedisStreamEventGateway(EventGateway):
    """
    Gateway over Redis Streams, one stream per topic.

    Consumers join ``group``; entries are XACKed only after their handlers
    succeed. Entries left pending by a failed handler (or a crashed consumer)
    are reclaimed with XAUTOCLAIM once idle for ``claim_idle_ms`` and dropped
    after ``max_deliveries`` attempts.
    """

    def __init__(
        self,
        redis: Redis,
        group: str,
        consumer: str,
        block_ms: int = 5000,
        claim_idle_ms: int = 30000,
        maxlen: Optional[int] = 10000,
        max_deliveries: int = 5,
    ):
        self._redis = redis
        self._group = group
        self._consumer = consumer
        self._block_ms = block_ms
        self._claim_idle_ms = claim_idle_ms
        self._maxlen = maxlen
        self._max_deliveries = max_deliveries
        self._handlers: Dict[str, List[MessageHandler]] = defaultdict(list)
        self._consumer_task: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._running = False

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        self._handlers[topic].append(handler)

    async def send(self, topic: str, key: str, payload: Dict[str, Any]) -> None:
        try:
            await self._redis.xadd(
                topic,
                {"key": key or "", "payload": json.dumps(payload)},
                maxlen=self._maxlen,
                approximate=True,
            )
        except (RedisError, TypeError, ValueError) as e:
            raise MessagingError(f"Failed to publish to {topic}: {str(e)}") from e

    async def start(self) -> None:
        for topic in self._handlers:
            try:
                await self._redis.xgroup_create(topic, self._group, id="$", mkstream=True)
                logger.info(f"Created consumer group {self._group} on {topic}")
            except ResponseError as e:
                if "BUSYGROUP" not in str(e):
                    raise
        self._running = True
        self._consumer_task = asyncio.create_task(self._consume())
        logger.info(f"Redis stream consumer {self._consumer} started for {len(self._handlers)} topics")

    async def stop(self) -> None:
        self._running = False
        tasks = list(self._in_flight)
        if self._consumer_task:
            self._consumer_task.cancel()
            tasks.append(self._consumer_task)
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._redis.aclose()
        logger.info("Redis stream consumer stopped")

    async def _consume(self) -> None:
        streams = {topic: ">" for topic in self._handlers}
        while self._running:
            try:
                await self._reclaim_stale()
                response = await self._redis.xreadgroup(
                    self._group, self._consumer, streams, count=20, block=self._block_ms
                )
                for topic, entries in response or []:
                    for message_id, fields in entries:
                        self._dispatch(topic, message_id, fields)
            except asyncio.CancelledError:
                raise
            except RedisError as e:
                logger.error(f"Redis stream read failed: {str(e)}")
                await asyncio.sleep(1)

    async def _reclaim_stale(self) -> None:
        for topic in self._handlers:
            result = await self._redis.xautoclaim(
                topic,
                self._group,
                self._consumer,
                min_idle_time=self._claim_idle_ms,
                start_id="0-0",
                count=20,
            )
            for message_id, fields in result[1]:
                if fields:
                    self._dispatch(topic, message_id, fields)

    def _dispatch(self, topic: str, message_id: str, fields: Dict[str, str]) -> None:
        task = asyncio.create_task(self._process(topic, message_id, fields))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _process(self, topic: str, message_id: str, fields: Dict[str, str]) -> None:
        try:
            payload = json.loads(fields.get("payload", "{}"))
        except ValueError:
            logger.error(f"Dropping malformed message {message_id} on {topic}")
            await self._redis.xack(topic, self._group, message_id)
            return

        try:
            for handler in self._handlers.get(topic, []):
                await handler(topic, payload)
        except Exception as e:
            logger.warning(f"Handler failed for {topic} message {message_id}, leaving it pending: {str(e)}")
            await self._give_up_if_exhausted(topic, message_id)
            return

        await self._redis.xack(topic, self._group, message_id)

    async def _give_up_if_exhausted(self, topic: str, message_id: str) -> None:
        pending = await self._redis.xpending_range(
            topic, self._group, min=message_id, max=message_id, count=1
        )
        if pending and pending[0]["times_delivered"] >= self._max_deliveries:
            logger.error(
                f"Message {message_id} on {topic} failed {pending[0]['times_delivered']} times, acknowledging and dropping"
            )
            await self._redis.xack(topic, self._group, message_id)
