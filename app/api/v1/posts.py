from fastapi import APIRouter, Depends, Query, Response, status
from typing import List
from app.core.config import settings
from app.core.dependencies import (
    get_business_unit_id,
    get_employee_or_above,
    get_manager_or_above,
    get_post_service,
    resolve_business_unit,
)
from app.schemas.auth import CurrentUser
from app.schemas.common import PaginatedResponse, PaginationMeta
from app.schemas.post import PostCreate, PostResponse
from app.services.post_service import PostService

router = APIRouter()


@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    post_data: PostCreate,
    current_user: CurrentUser = Depends(get_manager_or_above),
    service: PostService = Depends(get_post_service),
):
    business_unit_id = resolve_business_unit(post_data.business_unit_id, current_user)
    return await service.create_post(post_data, business_unit_id, current_user)


@router.get("", response_model=PaginatedResponse[PostResponse])
async def get_posts(
    page: int = Query(0, ge=0, description="Zero-based page number"),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    business_unit_id: str = Depends(get_business_unit_id),
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: PostService = Depends(get_post_service),
):
    items, total = await service.get_posts(business_unit_id, current_user, page, size)
    return PaginatedResponse[PostResponse](
        data=items,
        pagination=PaginationMeta.build(total=total, page=page, page_size=size),
    )


@router.get("/my-posts", response_model=List[PostResponse])
async def get_my_posts(
    current_user: CurrentUser = Depends(get_manager_or_above),
    service: PostService = Depends(get_post_service),
):
    return await service.get_my_posts(current_user)


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: str,
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: PostService = Depends(get_post_service),
):
    return await service.get_post(post_id, current_user)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: str,
    current_user: CurrentUser = Depends(get_employee_or_above),
    service: PostService = Depends(get_post_service),
):
    await service.delete_post(post_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
