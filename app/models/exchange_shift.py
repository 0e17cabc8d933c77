from sqlalchemy import Column, String, DateTime, Enum, UniqueConstraint, Index
from app.core.database import Base
from datetime import datetime, timezone
import uuid
import enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class ExchangeShiftStatus(enum.Enum):
    OPEN = "OPEN"
    PENDING_SELECTION = "PENDING_SELECTION"
    AWAITING_MANAGER_APPROVAL = "AWAITING_MANAGER_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class ExchangeShift(Base):
    __tablename__ = "exchange_shifts"
    __table_args__ = (
        UniqueConstraint("planning_service_shift_id", "poster_user_id", name="uq_exchange_shift_poster"),
        Index("ix_exchange_shifts_bu_status", "business_unit_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    planning_service_shift_id = Column(String(255), nullable=False, index=True)
    poster_user_id = Column(String(255), nullable=False, index=True)
    business_unit_id = Column(String(255), nullable=False)
    status = Column(Enum(ExchangeShiftStatus), default=ExchangeShiftStatus.OPEN, nullable=False)
    accepted_request_id = Column(String(36), nullable=True)

    # Cached from the scheduling system at posting time
    shift_position = Column(String(255), nullable=True)
    shift_start_time = Column(DateTime(timezone=True), nullable=True)
    shift_end_time = Column(DateTime(timezone=True), nullable=True)
    user_first_name = Column(String(255), nullable=True)
    user_last_name = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def can_accept_requests(self) -> bool:
        return self.status == ExchangeShiftStatus.OPEN

    @property
    def can_be_modified_by_poster(self) -> bool:
        return self.status in (ExchangeShiftStatus.OPEN, ExchangeShiftStatus.PENDING_SELECTION)

    @property
    def is_pending_manager_approval(self) -> bool:
        return self.status == ExchangeShiftStatus.AWAITING_MANAGER_APPROVAL

    @property
    def is_completed(self) -> bool:
        return self.status in (
            ExchangeShiftStatus.APPROVED,
            ExchangeShiftStatus.REJECTED,
            ExchangeShiftStatus.CANCELLED,
        )

    @property
    def poster_name(self) -> str:
        return " ".join(part for part in (self.user_first_name, self.user_last_name) if part)

    def __repr__(self):
        return f"<ExchangeShift {self.id} {self.status.value if self.status else None}>"
