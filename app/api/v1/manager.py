from fastapi import APIRouter, Depends
from typing import List
from app.core.dependencies import (
    business_unit_scope,
    get_business_unit_id,
    get_manager_or_above,
    get_marketplace_service,
)
from app.schemas.auth import CurrentUser
from app.schemas.marketplace import (
    AwaitingApprovalResponse,
    ExchangeDecisionResponse,
    ExchangeStatusUpdate,
    ShiftRequestResponse,
)
from app.services.marketplace_service import MarketplaceService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/pending-approvals", response_model=List[ShiftRequestResponse])
async def get_pending_approvals(
    business_unit_id: str = Depends(get_business_unit_id),
    current_user: CurrentUser = Depends(get_manager_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    """Requests accepted by their poster and waiting for a manager"""
    return await service.get_pending_manager_approvals(business_unit_id)


@router.get("/awaiting-approval", response_model=List[AwaitingApprovalResponse])
async def get_awaiting_approval(
    business_unit_id: str = Depends(get_business_unit_id),
    current_user: CurrentUser = Depends(get_manager_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    rows = await service.get_awaiting_manager_approval_exchanges(business_unit_id)
    return [AwaitingApprovalResponse(exchange_shift=shift, accepted_request=request) for shift, request in rows]


@router.put("/requests/{request_id}/approve", response_model=ExchangeDecisionResponse)
async def approve_request(
    request_id: str,
    current_user: CurrentUser = Depends(get_manager_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    exchange_shift, shift_request = await service.approve_request(request_id, business_unit_scope(current_user))
    logger.info(f"Request {request_id} approved by manager {current_user.id}")
    return ExchangeDecisionResponse(exchange_shift=exchange_shift, shift_request=shift_request)


@router.put("/requests/{request_id}/reject", response_model=ExchangeDecisionResponse)
async def reject_request(
    request_id: str,
    current_user: CurrentUser = Depends(get_manager_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    exchange_shift, shift_request = await service.reject_request(request_id, business_unit_scope(current_user))
    logger.info(f"Request {request_id} rejected by manager {current_user.id}")
    return ExchangeDecisionResponse(exchange_shift=exchange_shift, shift_request=shift_request)


@router.put("/exchanges/{exchange_shift_id}", response_model=ExchangeDecisionResponse)
async def update_exchange_status(
    exchange_shift_id: str,
    update_data: ExchangeStatusUpdate,
    business_unit_id: str = Depends(get_business_unit_id),
    current_user: CurrentUser = Depends(get_manager_or_above),
    service: MarketplaceService = Depends(get_marketplace_service),
):
    """Approve or reject the exchange currently awaiting approval"""
    exchange_shift, shift_request = await service.update_exchange_shift_status(
        exchange_shift_id, update_data.status, business_unit_id
    )
    logger.info(f"Exchange shift {exchange_shift_id} set to {update_data.status} by manager {current_user.id}")
    return ExchangeDecisionResponse(exchange_shift=exchange_shift, shift_request=shift_request)
