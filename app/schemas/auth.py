from pydantic import BaseModel, Field
from typing import List, Optional


class CurrentUser(BaseModel):
    """Caller identity taken from the access token claims"""
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    business_unit_id: Optional[str] = None

    @property
    def normalized_roles(self) -> List[str]:
        return [role.lower().replace(" ", "_") for role in self.roles]

    @property
    def is_admin(self) -> bool:
        return "admin" in self.normalized_roles

    @property
    def is_manager(self) -> bool:
        return "manager" in self.normalized_roles or self.is_admin
