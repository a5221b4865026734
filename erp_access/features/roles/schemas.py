"""
Pydantic schemas for the role catalog.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from erp_access.features.access.portals import PortalType


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Display name, unique per organization and portal")
    description: Optional[str] = Field(None, max_length=1000)
    portal_type: PortalType
    permissions: list[str] = Field(default_factory=list, description="Permission names, e.g. 'rfqView'")
    organization_id: Optional[str] = Field(None, description="Organization ID (null for system-wide role)")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Role name must not be blank")
        return v


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    permissions: Optional[list[str]] = None


class RoleResponse(BaseModel):
    id: str
    key: str
    name: str
    description: Optional[str] = None
    portal_type: str
    permissions: list[str]
    organization_id: Optional[str] = None
    is_system: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PermissionInfo(BaseModel):
    key: str
    label: str
    resource: str
    action: str
