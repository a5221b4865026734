"""
Identity resolver.

Turns an authenticated user id into the ``(user, organization, portal, role)``
snapshot that access decisions are made on. Snapshots are cached in Redis for
a few minutes; the users table is always the fallback, so a cache outage only
costs latency.
"""
import asyncio

from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from erp_access.core import config
from erp_access.core.cache import Cache
from erp_access.features.access.errors import IdentityNotFound, StoreUnavailable
from erp_access.features.access.portals import portal_group
from erp_access.features.users.models import User
from erp_access.utils import get_logger


log = get_logger(__name__)


class Identity(BaseModel):
    """Who is asking: never carries credentials or profile data."""
    user_id: str
    organization_id: str | None = None
    portal_type: str
    role: str | None = None

    model_config = {"frozen": True}

    @property
    def portal_group(self) -> str:
        return portal_group(self.portal_type)


def identity_cache_key(user_id: str) -> str:
    return f"identity:{user_id}"


def identity_version_key(user_id: str) -> str:
    return f"identity_version:{user_id}"


class IdentityResolver:
    """
    Snapshots are stamped with the user's version counter as read *before*
    the users table. ``invalidate`` bumps the counter, so a snapshot written
    late by a resolve that raced a role change carries an old version and is
    ignored on the next read.
    """

    def __init__(
        self,
        cache: Cache,
        ttl: int = config.IDENTITY_CACHE_TTL_SECONDS,
        timeout: float = config.STORE_TIMEOUT_SECONDS,
    ):
        self.cache = cache
        self.ttl = ttl
        self.timeout = timeout

    async def resolve(self, db: AsyncSession, user_id: str) -> Identity:
        """
        Return the identity snapshot for ``user_id``.

        Raises ``IdentityNotFound`` for unknown or inactive users and
        ``StoreUnavailable`` when the users table cannot be read.
        """
        cached, version = await self.cache.get_many_json(identity_cache_key(user_id), identity_version_key(user_id))
        version = version if isinstance(version, int) else 0
        if isinstance(cached, dict):
            if cached.pop("version", None) == version:
                try:
                    return Identity.model_validate(cached)
                except ValidationError:
                    log.info("Discarding malformed identity snapshot for %s", user_id)
            else:
                log.debug("Discarding outdated identity snapshot for %s", user_id)
        elif cached is not None:
            log.info("Discarding malformed identity snapshot for %s", user_id)

        stmt = (
            select(User.id, User.organization_id, User.portal_type, User.role)
            .where(User.id == user_id, User.is_active.is_(True))
        )
        try:
            result = await asyncio.wait_for(db.execute(stmt), self.timeout)
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            log.exception("Failed to load identity for %s", user_id)
            raise StoreUnavailable(f"User store unavailable: {e}") from e

        row = result.one_or_none()
        if row is None:
            log.info("Identity not found for user %s", user_id)
            raise IdentityNotFound(user_id)

        identity = Identity(
            user_id=row.id,
            organization_id=row.organization_id,
            portal_type=row.portal_type,
            role=row.role,
        )
        await self.cache.set_json(identity_cache_key(user_id), {**identity.model_dump(), "version": version}, self.ttl)
        return identity

    async def invalidate(self, user_id: str) -> None:
        # The counter outlives every snapshot stamped with an older value
        await self.cache.incr(identity_version_key(user_id), self.ttl * 2)
        await self.cache.delete(identity_cache_key(user_id))
