from app.events.domain import (
    DomainEventBus,
    ExchangeApproved,
    ExchangeShiftPosted,
    PostCreated,
    RequestAcceptedByPoster,
    ShiftRequestSubmitted,
)
from app.services.notification_dispatcher import (
    DualApprovalNotification,
    ManagerApprovalNotification,
    NewExchangeShiftNotification,
    NewPostNotification,
    NotificationDispatcher,
    ShiftRequestToPosterNotification,
)


class NotificationSubscriber:
    """Turns committed workflow events into push notification fan-outs"""

    def __init__(self, dispatcher: NotificationDispatcher):
        self.dispatcher = dispatcher

    def register(self, bus: DomainEventBus) -> None:
        bus.subscribe(ExchangeShiftPosted, self.on_exchange_shift_posted)
        bus.subscribe(ShiftRequestSubmitted, self.on_shift_request_submitted)
        bus.subscribe(RequestAcceptedByPoster, self.on_request_accepted)
        bus.subscribe(ExchangeApproved, self.on_exchange_approved)
        bus.subscribe(PostCreated, self.on_post_created)

    async def on_exchange_shift_posted(self, event: ExchangeShiftPosted) -> None:
        await self.dispatcher.dispatch(NewExchangeShiftNotification(event.exchange_shift))

    async def on_shift_request_submitted(self, event: ShiftRequestSubmitted) -> None:
        await self.dispatcher.dispatch(ShiftRequestToPosterNotification(event.exchange_shift, event.shift_request))

    async def on_request_accepted(self, event: RequestAcceptedByPoster) -> None:
        await self.dispatcher.dispatch(ManagerApprovalNotification(event.exchange_shift, event.shift_request))

    async def on_exchange_approved(self, event: ExchangeApproved) -> None:
        await self.dispatcher.dispatch(DualApprovalNotification(event.exchange_shift, event.shift_request))

    async def on_post_created(self, event: PostCreated) -> None:
        await self.dispatcher.dispatch(NewPostNotification(event.post))
