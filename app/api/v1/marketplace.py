from fastapi import APIRouter, Body, Depends, Query, status
from typing import List, Optional
from app.core.config import settings
from app.core.dependencies import get_business_unit_id, get_employee_or_above, get_marketplace_service
from app.schemas.auth import CurrentUser
from app.schemas.common import PaginatedResponse, PaginationMeta
from app.schemas.marketplace import (
    ExchangeDecisionResponse,
    ExchangeShiftResponse,
    RequestWithShiftResponse,
    ShiftMetadata,
    ShiftRequestCreate,
    ShiftRequestResponse,
)
from app.services.marketplace_service import MarketplaceService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/shifts/{planning_shift_id}", response_model=ExchangeShiftResponse, status_code=status.HTTP_201_CREATED)
async def post_shift_to_marketplace(
    planning_shift_id: str,
    metadata: Optional[ShiftMetadata] = Body(None),
    business_unit_id: str = Depends(get_business_unit_id),
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    """Post one of my scheduled shifts to the marketplace"""
    return await service.post_shift_to_marketplace(planning_shift_id, business_unit_id, current_user, metadata)


@router.get("/shifts", response_model=PaginatedResponse[ExchangeShiftResponse])
async def get_available_shifts(
    page: int = Query(0, ge=0, description="Zero-based page number"),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    business_unit_id: str = Depends(get_business_unit_id),
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    """Open exchange shifts in the business unit, newest first"""
    items, total = await service.get_available_shifts(business_unit_id, page, size)
    return PaginatedResponse[ExchangeShiftResponse](
        data=items,
        pagination=PaginationMeta.build(total=total, page=page, page_size=size),
    )


@router.get("/my-shifts", response_model=List[ExchangeShiftResponse])
async def get_my_posted_shifts(
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    return await service.get_user_posted_shifts(current_user.id)


@router.get("/my-shifts/requests", response_model=List[RequestWithShiftResponse])
async def get_requests_for_my_shifts(
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    """All requests made on any of my posted shifts"""
    rows = await service.get_requests_for_poster_shifts(current_user.id)
    return [RequestWithShiftResponse(shift_request=request, exchange_shift=shift) for request, shift in rows]


@router.get("/my-shifts/{exchange_shift_id}/requests", response_model=List[ShiftRequestResponse])
async def get_requests_for_my_shift(
    exchange_shift_id: str,
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    return await service.get_requests_for_exchange_shift(exchange_shift_id, current_user.id)


@router.put("/my-shifts/{exchange_shift_id}/requests/{request_id}/accept", response_model=ExchangeDecisionResponse)
async def accept_request(
    exchange_shift_id: str,
    request_id: str,
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    """Pick the request that should get my shift. It then waits for a manager."""
    exchange_shift, shift_request = await service.accept_request(exchange_shift_id, request_id, current_user.id)
    return ExchangeDecisionResponse(exchange_shift=exchange_shift, shift_request=shift_request)


@router.delete("/my-shifts/{exchange_shift_id}", response_model=ExchangeShiftResponse)
async def cancel_exchange_shift(
    exchange_shift_id: str,
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    return await service.cancel_exchange_shift(exchange_shift_id, current_user.id)


@router.post("/shifts/{exchange_shift_id}/requests", response_model=ShiftRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_shift_request(
    exchange_shift_id: str,
    request_data: ShiftRequestCreate,
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    """Ask to take or swap an exchange shift"""
    return await service.submit_shift_request(exchange_shift_id, current_user, request_data.to_kind())


@router.get("/my-requests", response_model=List[ShiftRequestResponse])
async def get_my_requests(
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    return await service.get_user_requests(current_user.id)


@router.post("/requests/{request_id}/recheck-conflicts", response_model=ShiftRequestResponse)
async def recheck_conflicts(
    request_id: str,
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    return await service.recheck_conflicts(request_id, current_user)
