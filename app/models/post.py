from sqlalchemy import Column, String, Text, DateTime, Enum, Index
from app.core.database import Base
from app.models.exchange_shift import utcnow, new_id
import enum


class TargetAudience(enum.Enum):
    ALL_EMPLOYEES = "ALL_EMPLOYEES"
    MANAGERS_ONLY = "MANAGERS_ONLY"


class Post(Base):
    __tablename__ = "posts"
    __table_args__ = (
        Index("ix_posts_bu_created", "business_unit_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    author_user_id = Column(String(255), nullable=False, index=True)
    business_unit_id = Column(String(255), nullable=False)
    target_audience = Column(Enum(TargetAudience), default=TargetAudience.ALL_EMPLOYEES, nullable=False)
    creator_first_name = Column(String(255), nullable=True)
    creator_last_name = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def author_name(self) -> str:
        return " ".join(part for part in (self.creator_first_name, self.creator_last_name) if part)
