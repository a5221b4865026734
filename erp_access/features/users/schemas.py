"""
Pydantic schemas for user-related responses.
"""
from pydantic import BaseModel, EmailStr


class UserSummary(BaseModel):
    """A user as shown in role assignment listings."""
    id: str
    email: EmailStr
    first_name: str
    last_name: str
    portal_type: str
    organization_id: str | None = None
    role: str | None = None
    role_name: str | None = None
    role_id: str | None = None
    is_active: bool

    model_config = {"from_attributes": True}
