"""
Role assignment service.

The only writer of user -> role (``g``) rows. A user holds at most one role
per organization; reassignment writes the new row before deleting the old one
inside a single transaction that also holds a row lock on the user, so a
concurrent reader sees either the old or the new role and never none or two.

After every committed change the shared enforcer, the user's identity
snapshot and the organization's cached listings are invalidated.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from erp_access.core import config
from erp_access.core.cache import Cache
from erp_access.features.access.enforcer import Enforcer
from erp_access.features.access.errors import (
    AccessError,
    PortalMismatch,
    RecordNotFound,
    ScopeMismatch,
)
from erp_access.features.access.portals import PortalType
from erp_access.features.access.store import PolicyStore
from erp_access.features.roles.models import Role
from erp_access.features.roles.schemas import RoleResponse
from erp_access.features.roles.service import RoleService, users_cache_key
from erp_access.features.users.identity import IdentityResolver
from erp_access.features.users.models import User
from erp_access.features.users.schemas import UserSummary
from erp_access.utils import get_logger


log = get_logger(__name__)


class AssignRoleService:

    def __init__(
        self,
        enforcer: Enforcer,
        identity_resolver: IdentityResolver,
        role_service: RoleService,
        cache: Cache,
        store: PolicyStore | None = None,
        list_ttl: int = config.LIST_CACHE_TTL_SECONDS,
    ):
        self.enforcer = enforcer
        self.identity_resolver = identity_resolver
        self.role_service = role_service
        self.cache = cache
        self.store = store or PolicyStore()
        self.list_ttl = list_ttl
        # Shared with the role catalog: a role is never deleted mid-assignment
        self._lock = role_service.write_lock

    async def _locked_user(self, db: AsyncSession, user_id: str, organization_id: str) -> User:
        result = await self.store.call(db.execute(select(User).where(User.id == user_id).with_for_update()))
        user = result.scalar_one_or_none()
        if user is None:
            raise RecordNotFound(f"User {user_id} not found")
        if user.organization_id != organization_id:
            raise ScopeMismatch("User does not belong to this organization")
        return user

    async def _after_change(self, user_id: str, organization_id: str) -> None:
        self.enforcer.invalidate()
        await self.identity_resolver.invalidate(user_id)
        await self.cache.delete_pattern(f"users:{organization_id}:*")
        await self.cache.delete_pattern(f"roles:{organization_id}:*")

    async def assign_role(self, db: AsyncSession, user_id: str, role_id: str, organization_id: str) -> UserSummary:
        """
        Make ``role_id`` the user's only role in ``organization_id``.

        Raises ``RecordNotFound``, ``ScopeMismatch`` or ``PortalMismatch``
        without touching the store, and ``StoreUnavailable`` when the write
        fails (nothing is committed; the whole call can be retried).
        """
        async with self._lock:
            try:
                user = await self._locked_user(db, user_id, organization_id)
                role = await self.store.call(db.get(Role, role_id))
                if role is None:
                    raise RecordNotFound(f"Role {role_id} not found")
                if role.organization_id is not None and role.organization_id != organization_id:
                    raise ScopeMismatch("Role does not belong to this organization")
                if user.portal_type != role.portal_type:
                    raise PortalMismatch(user.portal_type, role.portal_type)

                replaced = await self.store.replace_grouping(db, user.id, role.key, organization_id)
                await self.store.ensure_binding(db, role.key, PortalType(role.portal_type).group)
                user.role = role.key
                user.role_name = role.name
                user.role_id = role.id
                await self.store.call(db.commit())
            except AccessError:
                await db.rollback()
                raise

        if replaced:
            log.info("User %s role in %s changed %s -> %s", user_id, organization_id, replaced, role.key)
        else:
            log.info("User %s assigned role %s in %s", user_id, role.key, organization_id)
        await self._after_change(user_id, organization_id)
        return UserSummary.model_validate(user)

    async def remove_role(self, db: AsyncSession, user_id: str, organization_id: str) -> UserSummary:
        """Remove whatever role the user holds in ``organization_id``. Idempotent."""
        async with self._lock:
            try:
                user = await self._locked_user(db, user_id, organization_id)
                removed = await self.store.remove_grouping(db, user.id, organization_id)
                user.role = None
                user.role_name = None
                user.role_id = None
                await self.store.call(db.commit())
            except AccessError:
                await db.rollback()
                raise

        log.info("User %s role removed in %s (%s)", user_id, organization_id, removed or "none held")
        await self._after_change(user_id, organization_id)
        return UserSummary.model_validate(user)

    async def list_users(
        self,
        db: AsyncSession,
        organization_id: str,
        portal_type: str | None = None,
    ) -> list[UserSummary]:
        """Users of the organization with their current role, cached per organization and portal."""
        cache_key = users_cache_key(organization_id, portal_type)
        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            return [UserSummary.model_validate(item) for item in cached]

        stmt = select(User).where(User.organization_id == organization_id)
        if portal_type:
            stmt = stmt.where(User.portal_type == portal_type)
        result = await self.store.call(db.execute(stmt.order_by(User.email)))
        users = [UserSummary.model_validate(user) for user in result.scalars().all()]

        await self.cache.set_json(cache_key, [u.model_dump(mode="json") for u in users], self.list_ttl)
        return users

    async def list_roles(
        self,
        db: AsyncSession,
        organization_id: str,
        portal_type: str | None = None,
    ) -> list[RoleResponse]:
        """Roles that may be assigned in the organization."""
        return await self.role_service.list_roles(db, organization_id, portal_type)
