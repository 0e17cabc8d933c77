"""
Application wiring. One container per app instance, kept on ``app.state``.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from app.core.config import settings
from app.core.database import build_engine, build_session_factory, create_tables
from app.events.domain import DomainEventBus
from app.events.gateway import EventGateway, InMemoryEventGateway, RedisStreamEventGateway
from app.events.listeners import MarketplaceListeners
from app.events.producer import EventProducer
from app.events.subscribers import NotificationSubscriber
from app.services.conflict_check_service import ConflictCheckService
from app.services.marketplace_service import MarketplaceService
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.post_service import PostService
from app.services.push_notification_service import PushNotificationService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    engine: AsyncEngine
    session_factory: async_sessionmaker
    gateway: EventGateway
    event_bus: DomainEventBus
    producer: EventProducer
    conflict_checker: ConflictCheckService
    push_service: PushNotificationService
    dispatcher: NotificationDispatcher
    marketplace_service: MarketplaceService
    post_service: PostService

    async def start(self, create_schema: bool = True) -> None:
        if create_schema:
            await create_tables(self.engine)
            logger.info("Database tables created/verified")
        await self.gateway.start()

    async def stop(self) -> None:
        await self.gateway.stop()
        await self.event_bus.drain()
        self.dispatcher.cancel_all()
        await self.push_service.close()
        await self.engine.dispose()


def build_gateway() -> EventGateway:
    if settings.EVENT_GATEWAY == "memory":
        logger.warning("Using in-memory event gateway, messages stay inside this process")
        return InMemoryEventGateway(max_deliveries=settings.MAX_DELIVERY_ATTEMPTS)
    redis = Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        password=settings.REDIS_PASSWORD,
        decode_responses=True,
    )
    return RedisStreamEventGateway(
        redis,
        group=settings.CONSUMER_GROUP,
        consumer=settings.CONSUMER_NAME,
        block_ms=settings.REDIS_STREAM_BLOCK_MS,
        claim_idle_ms=settings.REDIS_STREAM_CLAIM_IDLE_MS,
        maxlen=settings.REDIS_STREAM_MAXLEN,
        max_deliveries=settings.MAX_DELIVERY_ATTEMPTS,
    )


def build_container(
    engine: Optional[AsyncEngine] = None,
    gateway: Optional[EventGateway] = None,
    push_service: Optional[PushNotificationService] = None,
    conflict_timeout_seconds: Optional[float] = None,
    notification_timeout_seconds: Optional[float] = None,
    notifications_enabled: Optional[bool] = None,
) -> ServiceContainer:
    engine = engine or build_engine()
    session_factory = build_session_factory(engine)
    gateway = gateway or build_gateway()
    event_bus = DomainEventBus()
    producer = EventProducer(gateway)
    push_service = push_service or PushNotificationService()

    conflict_checker = ConflictCheckService(producer, timeout_seconds=conflict_timeout_seconds)
    dispatcher = NotificationDispatcher(
        producer,
        push_service,
        timeout_seconds=notification_timeout_seconds,
        enabled=notifications_enabled,
    )
    marketplace_service = MarketplaceService(session_factory, conflict_checker, producer, event_bus)
    post_service = PostService(session_factory, event_bus)

    MarketplaceListeners(conflict_checker, dispatcher, marketplace_service).register(gateway)
    NotificationSubscriber(dispatcher).register(event_bus)

    return ServiceContainer(
        engine=engine,
        session_factory=session_factory,
        gateway=gateway,
        event_bus=event_bus,
        producer=producer,
        conflict_checker=conflict_checker,
        push_service=push_service,
        dispatcher=dispatcher,
        marketplace_service=marketplace_service,
        post_service=post_service,
    )
