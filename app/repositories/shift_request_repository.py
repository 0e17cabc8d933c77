from typing import List, Optional, Sequence, Tuple
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.models.exchange_shift import ExchangeShift
from app.models.shift_request import ShiftRequest, ShiftRequestStatus


class ShiftRequestRepository:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, request_id: str, refresh: bool = False) -> Optional[ShiftRequest]:
        return await self.session.get(ShiftRequest, request_id, populate_existing=refresh)

    async def exists_for_requester(self, exchange_shift_id: str, requester_user_id: str) -> bool:
        result = await self.session.execute(
            select(func.count(ShiftRequest.id)).where(
                ShiftRequest.exchange_shift_id == exchange_shift_id,
                ShiftRequest.requester_user_id == requester_user_id,
            )
        )
        return result.scalar_one() > 0

    async def list_by_exchange_shift_and_status(self, exchange_shift_id: str, status: ShiftRequestStatus) -> List[ShiftRequest]:
        result = await self.session.execute(
            select(ShiftRequest)
            .where(
                ShiftRequest.exchange_shift_id == exchange_shift_id,
                ShiftRequest.status == status,
            )
            .order_by(ShiftRequest.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_by_requester(self, requester_user_id: str) -> List[ShiftRequest]:
        result = await self.session.execute(
            select(ShiftRequest)
            .where(ShiftRequest.requester_user_id == requester_user_id)
            .order_by(ShiftRequest.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_for_poster_shifts(self, poster_user_id: str) -> List[Tuple[ShiftRequest, ExchangeShift]]:
        result = await self.session.execute(
            select(ShiftRequest, ExchangeShift)
            .join(ExchangeShift, ExchangeShift.id == ShiftRequest.exchange_shift_id)
            .where(ExchangeShift.poster_user_id == poster_user_id)
            .order_by(ShiftRequest.created_at.desc())
        )
        return [(request, shift) for request, shift in result.all()]

    async def list_by_status_in_business_unit(self, business_unit_id: str, status: ShiftRequestStatus) -> List[ShiftRequest]:
        result = await self.session.execute(
            select(ShiftRequest)
            .join(ExchangeShift, ExchangeShift.id == ShiftRequest.exchange_shift_id)
            .where(
                ExchangeShift.business_unit_id == business_unit_id,
                ShiftRequest.status == status,
            )
            .order_by(ShiftRequest.created_at.asc())
        )
        return list(result.scalars().all())

    async def add(self, shift_request: ShiftRequest) -> ShiftRequest:
        self.session.add(shift_request)
        await self.session.flush()
        return shift_request

    async def transition(
        self,
        request_id: str,
        from_statuses: Sequence[ShiftRequestStatus],
        to_status: ShiftRequestStatus,
        exchange_shift_id: Optional[str] = None,
    ) -> bool:
        statement = update(ShiftRequest).where(
            ShiftRequest.id == request_id,
            ShiftRequest.status.in_(list(from_statuses)),
        )
        if exchange_shift_id is not None:
            statement = statement.where(ShiftRequest.exchange_shift_id == exchange_shift_id)
        result = await self.session.execute(
            statement.values(status=to_status).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def decline_pending_siblings(self, exchange_shift_id: str, winning_request_id: str) -> int:
        """Idempotent: only rows still PENDING are touched."""
        result = await self.session.execute(
            update(ShiftRequest)
            .where(
                ShiftRequest.exchange_shift_id == exchange_shift_id,
                ShiftRequest.id != winning_request_id,
                ShiftRequest.status == ShiftRequestStatus.PENDING,
            )
            .values(status=ShiftRequestStatus.DECLINED_BY_POSTER)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def set_execution_possible(self, request_id: str, is_execution_possible: bool) -> None:
        await self.session.execute(
            update(ShiftRequest)
            .where(ShiftRequest.id == request_id)
            .values(is_execution_possible=is_execution_possible)
            .execution_options(synchronize_session=False)
        )
