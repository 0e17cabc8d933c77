"""
Persistence access for exchange shifts.

Every status change goes through ``transition``, a conditional UPDATE that only
matches rows still in one of the expected statuses. Callers treat a zero
rowcount as a lost race.
"""
from typing import List, Optional, Sequence, Tuple
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.models.exchange_shift import ExchangeShift, ExchangeShiftStatus
from app.models.shift_request import ShiftRequest

_UNCHANGED = object()


class ExchangeShiftRepository:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, exchange_shift_id: str, refresh: bool = False) -> Optional[ExchangeShift]:
        return await self.session.get(ExchangeShift, exchange_shift_id, populate_existing=refresh)

    async def find_by_shift_and_poster(self, planning_service_shift_id: str, poster_user_id: str) -> Optional[ExchangeShift]:
        result = await self.session.execute(
            select(ExchangeShift).where(
                ExchangeShift.planning_service_shift_id == planning_service_shift_id,
                ExchangeShift.poster_user_id == poster_user_id,
            )
        )
        return result.scalars().first()

    async def find_by_id_and_poster(self, exchange_shift_id: str, poster_user_id: str) -> Optional[ExchangeShift]:
        result = await self.session.execute(
            select(ExchangeShift).where(
                ExchangeShift.id == exchange_shift_id,
                ExchangeShift.poster_user_id == poster_user_id,
            )
        )
        return result.scalars().first()

    async def find_by_id_and_business_unit(self, exchange_shift_id: str, business_unit_id: str) -> Optional[ExchangeShift]:
        result = await self.session.execute(
            select(ExchangeShift).where(
                ExchangeShift.id == exchange_shift_id,
                ExchangeShift.business_unit_id == business_unit_id,
            )
        )
        return result.scalars().first()

    async def list_by_business_unit_and_status(
        self,
        business_unit_id: str,
        status: ExchangeShiftStatus,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[ExchangeShift]:
        query = select(ExchangeShift).where(
            ExchangeShift.business_unit_id == business_unit_id,
            ExchangeShift.status == status,
        ).order_by(ExchangeShift.created_at.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_by_business_unit_and_status(self, business_unit_id: str, status: ExchangeShiftStatus) -> int:
        result = await self.session.execute(
            select(func.count(ExchangeShift.id)).where(
                ExchangeShift.business_unit_id == business_unit_id,
                ExchangeShift.status == status,
            )
        )
        return result.scalar_one()

    async def list_by_poster(self, poster_user_id: str) -> List[ExchangeShift]:
        result = await self.session.execute(
            select(ExchangeShift)
            .where(ExchangeShift.poster_user_id == poster_user_id)
            .order_by(ExchangeShift.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_awaiting_approval_with_requests(self, business_unit_id: str) -> List[Tuple[ExchangeShift, ShiftRequest]]:
        result = await self.session.execute(
            select(ExchangeShift, ShiftRequest)
            .join(ShiftRequest, ShiftRequest.id == ExchangeShift.accepted_request_id)
            .where(
                ExchangeShift.business_unit_id == business_unit_id,
                ExchangeShift.status == ExchangeShiftStatus.AWAITING_MANAGER_APPROVAL,
            )
            .order_by(ExchangeShift.updated_at.asc())
        )
        return [(shift, request) for shift, request in result.all()]

    async def add(self, exchange_shift: ExchangeShift) -> ExchangeShift:
        self.session.add(exchange_shift)
        await self.session.flush()
        return exchange_shift

    async def transition(
        self,
        exchange_shift_id: str,
        from_statuses: Sequence[ExchangeShiftStatus],
        to_status: ExchangeShiftStatus,
        accepted_request_id=_UNCHANGED,
        expected_accepted_request_id: Optional[str] = None,
    ) -> bool:
        """Move a shift to ``to_status`` only if it is still in one of ``from_statuses``."""
        values = {"status": to_status}
        if accepted_request_id is not _UNCHANGED:
            values["accepted_request_id"] = accepted_request_id

        statement = update(ExchangeShift).where(
            ExchangeShift.id == exchange_shift_id,
            ExchangeShift.status.in_(list(from_statuses)),
        )
        if expected_accepted_request_id is not None:
            statement = statement.where(ExchangeShift.accepted_request_id == expected_accepted_request_id)

        result = await self.session.execute(
            statement.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
