"""
Message payloads exchanged with the scheduling service and the user directory.

Field names on the wire are camelCase; the Python attributes are snake_case.
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, timezone


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EventModel(BaseModel):

    class Config:
        populate_by_name = True
        extra = "ignore"

    def to_message(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# Conflict checks

class ScheduleConflictCheckRequest(EventModel):
    user_id: str = Field(..., alias="userId")
    start_time: datetime = Field(..., alias="startTime")
    end_time: datetime = Field(..., alias="endTime")
    correlation_id: str = Field(..., alias="correlationId")


class ScheduleConflictCheckResponse(EventModel):
    correlation_id: str = Field(..., alias="correlationId")
    user_id: Optional[str] = Field(None, alias="userId")
    has_conflict: bool = Field(..., alias="hasConflict")


class SwapConflictCheckRequest(EventModel):
    poster_user_id: str = Field(..., alias="posterUserId")
    requester_user_id: str = Field(..., alias="requesterUserId")
    original_shift_id: str = Field(..., alias="originalShiftId")
    swap_shift_id: str = Field(..., alias="swapShiftId")
    correlation_id: str = Field(..., alias="correlationId")


class SwapConflictCheckResponse(EventModel):
    correlation_id: str = Field(..., alias="correlationId")
    is_swap_possible: bool = Field(..., alias="isSwapPossible")
    reason: Optional[str] = None


# User directory

class UsersByBusinessUnitRequest(EventModel):
    business_unit_id: str = Field(..., alias="businessUnitId")
    correlation_id: str = Field(..., alias="correlationId")


class DirectoryUser(EventModel):
    id: str
    fcm_token: Optional[str] = Field(None, alias="fcmToken")
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    role: Optional[str] = None


class UsersByBusinessUnitResponse(EventModel):
    business_unit_id: str = Field(..., alias="businessUnitId")
    correlation_id: str = Field(..., alias="correlationId")
    users: List[DirectoryUser] = Field(default_factory=list)


# Scheduler hand-off

class ShiftExchangeEvent(EventModel):
    """Approval or rejection sent to the scheduling system once a manager decides"""
    request_id: str = Field(..., alias="requestId")
    exchange_shift_id: str = Field(..., alias="exchangeShiftId")
    original_shift_id: str = Field(..., alias="originalShiftId")
    poster_user_id: str = Field(..., alias="posterUserId")
    requester_user_id: str = Field(..., alias="requesterUserId")
    request_type: str = Field(..., alias="requestType")
    swap_shift_id: Optional[str] = Field(None, alias="swapShiftId")
    business_unit_id: str = Field(..., alias="businessUnitId")
    status: str
    timestamp: datetime = Field(default_factory=_now)


class ShiftExchangeConfirmation(EventModel):
    request_id: str = Field(..., alias="requestId")
    exchange_shift_id: Optional[str] = Field(None, alias="exchangeShiftId")
    original_shift_id: Optional[str] = Field(None, alias="originalShiftId")
    poster_user_id: Optional[str] = Field(None, alias="posterUserId")
    requester_user_id: Optional[str] = Field(None, alias="requesterUserId")
    request_type: Optional[str] = Field(None, alias="requestType")
    swap_shift_id: Optional[str] = Field(None, alias="swapShiftId")
    business_unit_id: Optional[str] = Field(None, alias="businessUnitId")
    status: str
    message: Optional[str] = None
    timestamp: Optional[datetime] = None
