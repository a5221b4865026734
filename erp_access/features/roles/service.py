"""
Role catalog.

Role rows and their policy rows (``p`` per permission, the ``g2`` portal
binding) are written in the same database transaction. After the commit the
shared enforcer is invalidated and the organization's cached listings are
dropped.
"""
import asyncio
import re

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from erp_access.core import config
from erp_access.core.cache import Cache
from erp_access.features.access.enforcer import Enforcer
from erp_access.features.access.errors import (
    AccessError,
    InvalidRoleDefinition,
    RecordNotFound,
    RoleInUse,
    ScopeMismatch,
)
from erp_access.features.access.permission_map import PERMISSION_TO_ACTION, permissions_for_portal
from erp_access.features.access.portals import PortalType
from erp_access.features.access.store import PolicyStore
from erp_access.features.roles.models import Role
from erp_access.features.roles.schemas import RoleCreate, RoleResponse, RoleUpdate
from erp_access.features.users.models import User
from erp_access.utils import get_logger


log = get_logger(__name__)

_NON_KEY_CHARS = re.compile(r"[^a-z0-9]+")


def roles_cache_key(organization_id: str | None, portal_type: str | None = None) -> str:
    return f"roles:{organization_id or 'system'}:{portal_type or 'all'}"


def users_cache_key(organization_id: str | None, portal_type: str | None = None) -> str:
    return f"users:{organization_id or 'none'}:{portal_type or 'all'}"


def role_key_base(portal_type: str, name: str) -> str:
    """``("customer", "Fleet Manager")`` -> ``customer_fleet_manager``."""
    slug = _NON_KEY_CHARS.sub("_", name.lower()).strip("_") or "role"
    return f"{portal_type}_{slug}"


def validate_permissions(portal_type: PortalType, permissions: list[str]) -> list[str]:
    """Reject unknown permissions and permissions that belong to another portal."""
    allowed = set(permissions_for_portal(portal_type))
    unknown = [p for p in permissions if p not in PERMISSION_TO_ACTION]
    if unknown:
        raise InvalidRoleDefinition(f"Unknown permissions: {', '.join(unknown)}")
    foreign = [p for p in permissions if p not in allowed]
    if foreign:
        raise InvalidRoleDefinition(
            f"Permissions not available in the {portal_type.value} portal: {', '.join(foreign)}"
        )
    # Keep the caller's order, drop duplicates
    return list(dict.fromkeys(permissions))


def in_scope(role: Role, organization_id: str | None) -> bool:
    """System roles are visible everywhere; organization roles only in their organization."""
    return organization_id is None or role.organization_id is None or role.organization_id == organization_id


class RoleService:
    """
    Role catalog writes share ``write_lock`` with role assignment, so a role
    cannot be deleted while a user is being given it.
    """

    def __init__(
        self,
        enforcer: Enforcer,
        cache: Cache,
        store: PolicyStore | None = None,
        list_ttl: int = config.LIST_CACHE_TTL_SECONDS,
    ):
        self.enforcer = enforcer
        self.cache = cache
        self.store = store or PolicyStore()
        self.list_ttl = list_ttl
        self.write_lock = asyncio.Lock()

    async def _unique_key(self, db: AsyncSession, portal_type: str, name: str) -> str:
        base = role_key_base(portal_type, name)
        result = await self.store.call(
            db.execute(select(Role.key).where(or_(Role.key == base, Role.key.like(f"{base}_%"))))
        )
        taken = set(result.scalars().all())
        key, n = base, 2
        while key in taken:
            key = f"{base}_{n}"
            n += 1
        return key

    async def _ensure_name_free(
        self,
        db: AsyncSession,
        name: str,
        portal_type: str,
        organization_id: str | None,
        role_id: str | None = None,
    ) -> None:
        # System roles have no organization, so the unique constraint never fires for them
        stmt = select(Role.id).where(
            Role.name == name,
            Role.portal_type == portal_type,
            Role.organization_id.is_(None) if organization_id is None else Role.organization_id == organization_id,
        )
        if role_id is not None:
            stmt = stmt.where(Role.id != role_id)
        duplicate = await self.store.call(db.execute(stmt))
        if duplicate.first() is not None:
            raise InvalidRoleDefinition(f"Role '{name}' already exists in the {portal_type} portal")

    async def _sync_policies(self, db: AsyncSession, role: Role) -> None:
        await self.store.ensure_binding(db, role.key, PortalType(role.portal_type).group)
        await self.store.replace_policies(db, role.key, (PERMISSION_TO_ACTION[p] for p in role.permissions))

    async def _after_change(self, organization_id: str | None) -> None:
        self.enforcer.invalidate()
        if organization_id is None:
            await self.cache.delete_pattern("roles:*")
            await self.cache.delete_pattern("users:*")
        else:
            await self.cache.delete_pattern(f"roles:{organization_id}:*")
            await self.cache.delete_pattern(f"users:{organization_id}:*")

    async def get_role(self, db: AsyncSession, role_id: str, organization_id: str | None = None) -> Role:
        """Fetch a role visible from ``organization_id`` (``None``: any role)."""
        role = await self.store.call(db.get(Role, role_id))
        if role is None:
            raise RecordNotFound(f"Role {role_id} not found")
        if not in_scope(role, organization_id):
            raise ScopeMismatch("Role does not belong to this organization")
        return role

    async def list_roles(
        self,
        db: AsyncSession,
        organization_id: str | None,
        portal_type: str | None = None,
    ) -> list[RoleResponse]:
        """System roles plus the organization's own roles, cached per organization and portal."""
        cache_key = roles_cache_key(organization_id, portal_type)
        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            return [RoleResponse.model_validate(item) for item in cached]

        stmt = select(Role)
        if organization_id:
            stmt = stmt.where(or_(Role.organization_id.is_(None), Role.organization_id == organization_id))
        else:
            stmt = stmt.where(Role.organization_id.is_(None))
        if portal_type:
            stmt = stmt.where(Role.portal_type == portal_type)
        result = await self.store.call(db.execute(stmt.order_by(Role.portal_type, Role.name)))
        roles = [RoleResponse.model_validate(role) for role in result.scalars().all()]

        await self.cache.set_json(cache_key, [r.model_dump(mode="json") for r in roles], self.list_ttl)
        return roles

    async def create_role(self, db: AsyncSession, data: RoleCreate) -> Role:
        permissions = validate_permissions(data.portal_type, data.permissions)
        async with self.write_lock:
            try:
                await self._ensure_name_free(db, data.name, data.portal_type.value, data.organization_id)
                role = Role(
                    key=await self._unique_key(db, data.portal_type.value, data.name),
                    name=data.name,
                    description=data.description,
                    portal_type=data.portal_type.value,
                    permissions=permissions,
                    organization_id=data.organization_id,
                    is_system=False,
                )
                db.add(role)
                await self.store.call(db.flush())
                await self._sync_policies(db, role)
                await self.store.call(db.commit())
            except IntegrityError:
                await db.rollback()
                raise InvalidRoleDefinition(f"Role '{data.name}' already exists")
            except AccessError:
                await db.rollback()
                raise
        await self.store.call(db.refresh(role))

        log.info("Created role %s with %d permissions", role.key, len(permissions))
        await self._after_change(role.organization_id)
        return role

    async def update_role(
        self,
        db: AsyncSession,
        role_id: str,
        data: RoleUpdate,
        organization_id: str | None = None,
    ) -> Role:
        async with self.write_lock:
            try:
                role = await self.get_role(db, role_id, organization_id)
                if role.is_system and organization_id is not None:
                    raise InvalidRoleDefinition("System roles can only be changed by platform operators")

                if data.name is not None and data.name != role.name:
                    await self._ensure_name_free(db, data.name, role.portal_type, role.organization_id, role.id)
                    role.name = data.name
                    # Keep the denormalized copy on users in step
                    await self.store.call(
                        db.execute(update(User).where(User.role_id == role.id).values(role_name=data.name))
                    )
                if data.description is not None:
                    role.description = data.description
                if data.permissions is not None:
                    role.permissions = validate_permissions(PortalType(role.portal_type), data.permissions)

                await self.store.call(db.flush())
                await self._sync_policies(db, role)
                await self.store.call(db.commit())
            except IntegrityError:
                await db.rollback()
                raise InvalidRoleDefinition(f"Role '{data.name}' already exists")
            except AccessError:
                await db.rollback()
                raise
        await self.store.call(db.refresh(role))

        log.info("Updated role %s", role.key)
        await self._after_change(role.organization_id)
        return role

    async def delete_role(self, db: AsyncSession, role_id: str, organization_id: str | None = None) -> None:
        async with self.write_lock:
            try:
                role = await self.get_role(db, role_id, organization_id)
                if role.is_system:
                    raise RoleInUse("System roles cannot be deleted")
                members = await self.store.members_of(db, role.key)
                if members:
                    raise RoleInUse(f"Role {role.key} is still assigned to {len(members)} user(s)")

                removed = await self.store.remove_role(db, role.key)
                await self.store.call(db.delete(role))
                await self.store.call(db.commit())
            except AccessError:
                await db.rollback()
                raise

        log.info("Deleted role %s (%d policy rows)", role.key, removed)
        await self._after_change(role.organization_id)
