"""
Access decision and permission catalog routes.
"""
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from erp_access.features.access.decision import RequestDescriptor, check_access
from erp_access.features.access.dependencies import get_enforcer
from erp_access.features.access.enforcer import Enforcer
from erp_access.features.access.permission_map import (
    PORTAL_PERMISSIONS,
    permission_label,
    resolve_permission,
)
from erp_access.features.access.portals import PortalType
from erp_access.features.roles.schemas import PermissionInfo
from erp_access.features.users.dependencies import get_current_identity
from erp_access.features.users.identity import Identity


router = APIRouter()


class AccessCheckRequest(BaseModel):
    portal_type: PortalType
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"]
    path: str = Field(..., min_length=1, description="Request path, e.g. /api/v1/customer/rfq")


class AccessCheckResponse(BaseModel):
    outcome: str
    allowed: bool
    reason: str
    permission: Optional[str] = None
    code: Optional[str] = None


@router.post("/access/check", response_model=AccessCheckResponse)
async def check(
    data: AccessCheckRequest,
    identity: Identity = Depends(get_current_identity),
    enforcer: Enforcer = Depends(get_enforcer),
):
    """Would the caller be allowed to make this request?"""
    descriptor = RequestDescriptor(data.portal_type.value, data.method, data.path)
    decision = await check_access(enforcer, identity, descriptor)
    return AccessCheckResponse(
        outcome=decision.outcome.value,
        allowed=decision.allowed,
        reason=decision.reason,
        permission=decision.permission,
        code=decision.error.code if decision.error else None,
    )


@router.get("/permissions", response_model=List[PermissionInfo])
async def list_permissions(
    portal_type: Optional[PortalType] = None,
    identity: Identity = Depends(get_current_identity),
):
    """Permissions that can be granted to roles, optionally for one portal."""
    portals = [portal_type] if portal_type else list(PortalType)
    seen = set()
    permissions = []
    for portal in portals:
        for key in PORTAL_PERMISSIONS[portal]:
            if key in seen:
                continue
            seen.add(key)
            resource, action = resolve_permission(key)
            permissions.append(PermissionInfo(key=key, label=permission_label(key), resource=resource, action=action))
    return permissions
