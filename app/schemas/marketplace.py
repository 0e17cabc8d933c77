from pydantic import BaseModel, Field
from typing import Annotated, Optional, Literal, Union
from datetime import datetime
from app.models.exchange_shift import ExchangeShiftStatus
from app.models.shift_request import ShiftRequestType, ShiftRequestStatus, TakeShift, SwapShift, RequestKind


class ShiftMetadata(BaseModel):
    """Details of the scheduled shift, cached on the marketplace listing"""
    shift_position: Optional[str] = Field(None, max_length=255)
    shift_start_time: Optional[datetime] = None
    shift_end_time: Optional[datetime] = None


class ExchangeShiftResponse(BaseModel):
    id: str
    planning_service_shift_id: str
    poster_user_id: str
    business_unit_id: str
    status: ExchangeShiftStatus
    accepted_request_id: Optional[str] = None
    shift_position: Optional[str] = None
    shift_start_time: Optional[datetime] = None
    shift_end_time: Optional[datetime] = None
    user_first_name: Optional[str] = None
    user_last_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @property
    def poster_name(self) -> str:
        return " ".join(part for part in (self.user_first_name, self.user_last_name) if part)


class TakeShiftRequestCreate(BaseModel):
    request_type: Literal["TAKE_SHIFT"]

    class Config:
        extra = "forbid"

    def to_kind(self) -> RequestKind:
        return TakeShift()


class SwapShiftRequestCreate(BaseModel):
    request_type: Literal["SWAP_SHIFT"]
    swap_shift_id: str = Field(..., min_length=1, max_length=255)
    swap_shift_position: Optional[str] = Field(None, max_length=255)
    swap_shift_start_time: Optional[datetime] = None
    swap_shift_end_time: Optional[datetime] = None

    class Config:
        extra = "forbid"

    def to_kind(self) -> RequestKind:
        return SwapShift(
            swap_shift_id=self.swap_shift_id,
            position=self.swap_shift_position,
            start_time=self.swap_shift_start_time,
            end_time=self.swap_shift_end_time,
        )


# TAKE_SHIFT bodies cannot carry swap fields; SWAP_SHIFT bodies must name the swap shift
ShiftRequestCreate = Annotated[
    Union[TakeShiftRequestCreate, SwapShiftRequestCreate],
    Field(discriminator="request_type"),
]


class ShiftRequestResponse(BaseModel):
    id: str
    exchange_shift_id: str
    requester_user_id: str
    request_type: ShiftRequestType
    swap_shift_id: Optional[str] = None
    swap_shift_position: Optional[str] = None
    swap_shift_start_time: Optional[datetime] = None
    swap_shift_end_time: Optional[datetime] = None
    requester_first_name: Optional[str] = None
    requester_last_name: Optional[str] = None
    status: ShiftRequestStatus
    is_execution_possible: Optional[bool] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @property
    def requester_name(self) -> str:
        return " ".join(part for part in (self.requester_first_name, self.requester_last_name) if part)


class ExchangeDecisionResponse(BaseModel):
    """Exchange shift together with the request a decision was made on"""
    exchange_shift: ExchangeShiftResponse
    shift_request: ShiftRequestResponse


class AwaitingApprovalResponse(BaseModel):
    exchange_shift: ExchangeShiftResponse
    accepted_request: ShiftRequestResponse


class RequestWithShiftResponse(BaseModel):
    shift_request: ShiftRequestResponse
    exchange_shift: ExchangeShiftResponse


class ExchangeStatusUpdate(BaseModel):
    status: str = Field(..., description="APPROVED or REJECTED")
