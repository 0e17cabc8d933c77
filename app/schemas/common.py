from pydantic import BaseModel
from typing import Generic, TypeVar, List

# Generic type for paginated data
DataT = TypeVar('DataT')

class PaginationMeta(BaseModel):
    """Pagination metadata. ``page`` is zero-based."""
    total: int
    page: int
    page_size: int
    pages: int

    class Config:
        from_attributes = True

    @classmethod
    def build(cls, total: int, page: int, page_size: int) -> "PaginationMeta":
        pages = (total + page_size - 1) // page_size if page_size else 0
        return cls(total=total, page=page, page_size=page_size, pages=pages)

class PaginatedResponse(BaseModel, Generic[DataT]):
    """Standardized paginated response wrapper for all list endpoints"""
    data: List[DataT]
    pagination: PaginationMeta

    class Config:
        from_attributes = True

class ErrorResponse(BaseModel):
    error: str
    message: str
    status_code: int
    path: str
    timestamp: str
