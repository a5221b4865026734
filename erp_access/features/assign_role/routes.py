"""
Role assignment API routes.

Mounted under ``/api/v1/tech/assign-role`` and ``/api/v1/admin/assign-role``.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from erp_access.core.database.engine import get_db
from erp_access.features.access.dependencies import organization_scope, require_access
from erp_access.features.access.errors import ScopeMismatch
from erp_access.features.access.portals import PortalType
from erp_access.features.assign_role.schemas import AssignRoleRequest, UpdateAssignedRole
from erp_access.features.assign_role.service import AssignRoleService
from erp_access.features.roles.schemas import RoleResponse
from erp_access.features.users.identity import Identity
from erp_access.features.users.schemas import UserSummary


router = APIRouter()


def get_assign_role_service(request: Request) -> AssignRoleService:
    return request.app.state.assign_role_service


def _target_organization(identity: Identity, requested: Optional[str]) -> str:
    org_id = organization_scope(identity, requested)
    if not org_id:
        raise ScopeMismatch("An organization is required")
    return org_id


@router.get("/users", response_model=List[UserSummary])
async def list_users(
    portal_type: Optional[PortalType] = None,
    organization_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_access),
    service: AssignRoleService = Depends(get_assign_role_service),
):
    """Users of the organization with their current role."""
    org_id = _target_organization(identity, organization_id)
    return await service.list_users(db, org_id, portal_type.value if portal_type else None)


@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    portal_type: Optional[PortalType] = None,
    organization_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_access),
    service: AssignRoleService = Depends(get_assign_role_service),
):
    """Roles that can be assigned in the organization."""
    org_id = _target_organization(identity, organization_id)
    return await service.list_roles(db, org_id, portal_type.value if portal_type else None)


@router.post("/assign", response_model=UserSummary)
async def assign_role(
    data: AssignRoleRequest,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_access),
    service: AssignRoleService = Depends(get_assign_role_service),
):
    """Give a user a role, replacing the role they held in the organization."""
    org_id = _target_organization(identity, data.organization_id)
    return await service.assign_role(db, data.user_id, data.role_id, org_id)


@router.put("/{user_id}", response_model=UserSummary)
async def update_assigned_role(
    user_id: str,
    data: UpdateAssignedRole,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_access),
    service: AssignRoleService = Depends(get_assign_role_service),
):
    org_id = _target_organization(identity, data.organization_id)
    return await service.assign_role(db, user_id, data.role_id, org_id)


@router.delete("/{user_id}", response_model=UserSummary)
async def remove_role(
    user_id: str,
    organization_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_access),
    service: AssignRoleService = Depends(get_assign_role_service),
):
    """Remove the user's role in the organization. Removing an absent role is not an error."""
    org_id = _target_organization(identity, organization_id)
    return await service.remove_role(db, user_id, org_id)
