"""
Pydantic schemas for role assignment.
"""
from typing import Optional
from pydantic import BaseModel, Field


class AssignRoleRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    role_id: str = Field(..., min_length=1)
    organization_id: Optional[str] = Field(None, description="Defaults to the caller's organization")


class UpdateAssignedRole(BaseModel):
    role_id: str = Field(..., min_length=1)
    organization_id: Optional[str] = None
