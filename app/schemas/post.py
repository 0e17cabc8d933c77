from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from app.models.post import TargetAudience


class PostCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=5000)
    business_unit_id: Optional[str] = Field(None, max_length=255, description="Defaults to the caller's business unit")
    target_audience: TargetAudience = TargetAudience.ALL_EMPLOYEES


class PostResponse(BaseModel):
    id: str
    title: str
    body: str
    author_user_id: str
    business_unit_id: str
    target_audience: TargetAudience
    creator_first_name: Optional[str] = None
    creator_last_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @property
    def author_name(self) -> str:
        return " ".join(part for part in (self.creator_first_name, self.creator_last_name) if part)
