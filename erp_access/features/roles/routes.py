"""
Role catalog API routes.

Mounted under both ``/api/v1/tech/roles`` and ``/api/v1/admin/roles``; the
portal prefix decides which route permissions apply.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from erp_access.core.database.engine import get_db
from erp_access.features.access.dependencies import organization_scope, require_access
from erp_access.features.access.portals import PortalType
from erp_access.features.roles.schemas import RoleCreate, RoleResponse, RoleUpdate
from erp_access.features.roles.service import RoleService
from erp_access.features.users.identity import Identity


router = APIRouter()


def get_role_service(request: Request) -> RoleService:
    return request.app.state.role_service


def _lookup_scope(identity: Identity) -> str | None:
    # Platform operators may address any role directly
    if identity.portal_type == PortalType.TECH.value:
        return None
    return identity.organization_id


@router.get("", response_model=List[RoleResponse])
async def list_roles(
    portal_type: Optional[PortalType] = None,
    organization_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_access),
    service: RoleService = Depends(get_role_service),
):
    """System roles plus the organization's own roles."""
    org_id = organization_scope(identity, organization_id)
    return await service.list_roles(db, org_id, portal_type.value if portal_type else None)


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    data: RoleCreate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_access),
    service: RoleService = Depends(get_role_service),
):
    """Create an organization role (or a system role, for platform operators)."""
    if identity.portal_type != PortalType.TECH.value:
        data = data.model_copy(update={"organization_id": organization_scope(identity, data.organization_id)})
    return await service.create_role(db, data)


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_access),
    service: RoleService = Depends(get_role_service),
):
    return await service.get_role(db, role_id, _lookup_scope(identity))


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    data: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_access),
    service: RoleService = Depends(get_role_service),
):
    """Rename a role or replace its permissions; the role's policies follow."""
    return await service.update_role(db, role_id, data, _lookup_scope(identity))


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_access),
    service: RoleService = Depends(get_role_service),
):
    """Delete a role that nobody holds any more."""
    await service.delete_role(db, role_id, _lookup_scope(identity))
