from sqlalchemy import Column, String, Boolean, DateTime, Enum, ForeignKey, UniqueConstraint, CheckConstraint
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union
from app.core.database import Base
from app.models.exchange_shift import utcnow, new_id
import enum


class ShiftRequestType(enum.Enum):
    TAKE_SHIFT = "TAKE_SHIFT"
    SWAP_SHIFT = "SWAP_SHIFT"


class ShiftRequestStatus(enum.Enum):
    PENDING = "PENDING"
    ACCEPTED_BY_POSTER = "ACCEPTED_BY_POSTER"
    DECLINED_BY_POSTER = "DECLINED_BY_POSTER"
    APPROVED_BY_MANAGER = "APPROVED_BY_MANAGER"
    REJECTED_BY_MANAGER = "REJECTED_BY_MANAGER"
    COMPLETED = "COMPLETED"
    PROCESSING_FAILED = "PROCESSING_FAILED"


@dataclass(frozen=True)
class TakeShift:
    """Unconditional pickup of the posted shift"""


@dataclass(frozen=True)
class SwapShift:
    """Exchange of the posted shift against one of the requester's own shifts"""
    swap_shift_id: str
    position: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def __post_init__(self):
        if not self.swap_shift_id:
            raise ValueError("swap_shift_id is required for a swap request")


RequestKind = Union[TakeShift, SwapShift]


class ShiftRequest(Base):
    __tablename__ = "shift_requests"
    __table_args__ = (
        UniqueConstraint("exchange_shift_id", "requester_user_id", name="uq_shift_request_requester"),
        CheckConstraint(
            "(request_type = 'TAKE_SHIFT' AND swap_shift_id IS NULL) OR "
            "(request_type = 'SWAP_SHIFT' AND swap_shift_id IS NOT NULL)",
            name="ck_shift_request_swap_reference",
        ),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    exchange_shift_id = Column(String(36), ForeignKey("exchange_shifts.id", ondelete="CASCADE"), nullable=False, index=True)
    requester_user_id = Column(String(255), nullable=False, index=True)
    request_type = Column(Enum(ShiftRequestType), nullable=False)

    swap_shift_id = Column(String(255), nullable=True)
    swap_shift_position = Column(String(255), nullable=True)
    swap_shift_start_time = Column(DateTime(timezone=True), nullable=True)
    swap_shift_end_time = Column(DateTime(timezone=True), nullable=True)

    requester_first_name = Column(String(255), nullable=True)
    requester_last_name = Column(String(255), nullable=True)

    status = Column(Enum(ShiftRequestStatus), default=ShiftRequestStatus.PENDING, nullable=False)
    # None until the scheduling system has answered the conflict check
    is_execution_possible = Column(Boolean, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @classmethod
    def from_kind(
        cls,
        kind: RequestKind,
        exchange_shift_id: str,
        requester_user_id: str,
        requester_first_name: Optional[str] = None,
        requester_last_name: Optional[str] = None,
    ) -> "ShiftRequest":
        """Build a PENDING request. The swap columns are only ever filled from a SwapShift."""
        request = cls(
            id=new_id(),
            exchange_shift_id=exchange_shift_id,
            requester_user_id=requester_user_id,
            requester_first_name=requester_first_name,
            requester_last_name=requester_last_name,
            status=ShiftRequestStatus.PENDING,
        )
        if isinstance(kind, SwapShift):
            request.request_type = ShiftRequestType.SWAP_SHIFT
            request.swap_shift_id = kind.swap_shift_id
            request.swap_shift_position = kind.position
            request.swap_shift_start_time = kind.start_time
            request.swap_shift_end_time = kind.end_time
        elif isinstance(kind, TakeShift):
            request.request_type = ShiftRequestType.TAKE_SHIFT
        else:
            raise TypeError(f"Unsupported request kind: {kind!r}")
        return request

    @property
    def kind(self) -> RequestKind:
        if self.request_type == ShiftRequestType.SWAP_SHIFT:
            return SwapShift(
                swap_shift_id=self.swap_shift_id,
                position=self.swap_shift_position,
                start_time=self.swap_shift_start_time,
                end_time=self.swap_shift_end_time,
            )
        return TakeShift()

    @property
    def is_pending(self) -> bool:
        return self.status == ShiftRequestStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return self.status in (
            ShiftRequestStatus.APPROVED_BY_MANAGER,
            ShiftRequestStatus.REJECTED_BY_MANAGER,
            ShiftRequestStatus.DECLINED_BY_POSTER,
        )

    @property
    def requester_name(self) -> str:
        return " ".join(part for part in (self.requester_first_name, self.requester_last_name) if part)

    def __repr__(self):
        return f"<ShiftRequest {self.id} {self.request_type.value if self.request_type else None} {self.status.value if self.status else None}>"
