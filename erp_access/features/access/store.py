"""
Policy store: the ``casbin_rule`` table.

Two row kinds live here:

- ``p, <role key>, <resource>, <action>``
- ``g|g2, <member>, <group>, <scope>``: user -> role scoped to an organization
  (``g``) and role -> role scoped to a portal group (``g2``)

The casbin adapter reads and writes the whole table when an enforcer is built
or edited. ``PolicyStore`` adds the targeted queries and the single-transaction
replacements used by role assignment and the role catalog; it never commits,
the caller owns the transaction.
"""
import asyncio
from typing import Any, Awaitable, Iterable

from casbin_async_sqlalchemy_adapter import Adapter
from sqlalchemy import Integer, String, and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from erp_access.core import config
from erp_access.core.database.base import Base
from erp_access.features.access.errors import StoreUnavailable
from erp_access.utils import get_logger


log = get_logger(__name__)

POLICY = "p"
USER_ROLE = "g"
ROLE_GROUP = "g2"


class CasbinRule(Base):
    """One policy or grouping tuple."""
    __tablename__ = "casbin_rule"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ptype: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    v0: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    v1: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    v2: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    v3: Mapped[str | None] = mapped_column(String(255), nullable=True)
    v4: Mapped[str | None] = mapped_column(String(255), nullable=True)
    v5: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def values(self) -> list[str]:
        fields = [self.v0, self.v1, self.v2, self.v3, self.v4, self.v5]
        return [v for v in fields if v is not None]

    def __str__(self) -> str:
        # The adapter feeds this line to casbin's policy loader
        return ", ".join([self.ptype, *self.values])

    def __repr__(self) -> str:
        return f"<CasbinRule(id={self.id}, {self})>"


def create_adapter(engine: AsyncEngine) -> Adapter:
    """Casbin adapter persisting into ``casbin_rule`` on the application engine."""
    return Adapter(engine, db_class=CasbinRule)


class PolicyStore:
    """Targeted, transaction-scoped access to policy rows."""

    def __init__(self, timeout: float = config.STORE_TIMEOUT_SECONDS):
        self.timeout = timeout

    async def call(self, awaitable: Awaitable[Any]) -> Any:
        """
        Await a database call with the store timeout.

        Connection failures and timeouts become ``StoreUnavailable``;
        ``IntegrityError`` is passed through for the caller to interpret.
        """
        try:
            return await asyncio.wait_for(awaitable, self.timeout)
        except IntegrityError:
            raise
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            log.exception("Policy store call failed")
            raise StoreUnavailable(f"Policy store unavailable: {e}") from e

    async def find(self, db: AsyncSession, ptype: str, *values: str | None) -> list[CasbinRule]:
        """Rows of ``ptype`` whose leading fields equal ``values``; ``None`` matches anything."""
        columns = [CasbinRule.v0, CasbinRule.v1, CasbinRule.v2, CasbinRule.v3, CasbinRule.v4, CasbinRule.v5]
        stmt = select(CasbinRule).where(CasbinRule.ptype == ptype)
        for column, value in zip(columns, values):
            if value is not None:
                stmt = stmt.where(column == value)
        result = await self.call(db.execute(stmt.order_by(CasbinRule.id)))
        return list(result.scalars().all())

    async def groupings_for(self, db: AsyncSession, member: str, scope: str, ptype: str = USER_ROLE) -> list[CasbinRule]:
        return await self.find(db, ptype, member, None, scope)

    async def replace_grouping(
        self,
        db: AsyncSession,
        member: str,
        group: str,
        scope: str,
        ptype: str = USER_ROLE,
    ) -> list[str]:
        """
        Make ``(member, group, scope)`` the only ``ptype`` row for ``(member, scope)``.

        The new row is written before the old ones are deleted, inside the
        caller's transaction. Returns the groups that were replaced.
        """
        existing = await self.groupings_for(db, member, scope, ptype)
        keep = next((row for row in existing if row.v1 == group), None)
        if keep is None:
            db.add(CasbinRule(ptype=ptype, v0=member, v1=group, v2=scope))
            await self.call(db.flush())
        stale = [row for row in existing if row is not keep]
        if stale:
            await self.call(db.execute(delete(CasbinRule).where(CasbinRule.id.in_([row.id for row in stale]))))
        return [row.v1 for row in stale if row.v1 != group]

    async def remove_grouping(self, db: AsyncSession, member: str, scope: str, ptype: str = USER_ROLE) -> list[str]:
        """Delete every ``ptype`` row for ``(member, scope)``; returns the removed groups."""
        existing = await self.groupings_for(db, member, scope, ptype)
        if existing:
            await self.call(db.execute(delete(CasbinRule).where(CasbinRule.id.in_([row.id for row in existing]))))
        return [row.v1 for row in existing]

    async def ensure_binding(self, db: AsyncSession, role_key: str, portal_group: str) -> bool:
        """Create the ``(role, role, portal group)`` binding if missing. Returns True when created."""
        if await self.find(db, ROLE_GROUP, role_key, role_key, portal_group):
            return False
        db.add(CasbinRule(ptype=ROLE_GROUP, v0=role_key, v1=role_key, v2=portal_group))
        await self.call(db.flush())
        return True

    async def replace_policies(self, db: AsyncSession, role_key: str, rules: Iterable[tuple[str, str]]) -> None:
        """Make ``(resource, action)`` pairs in ``rules`` the role's complete ``p`` set."""
        wanted = set(rules)
        existing = {(row.v1, row.v2): row for row in await self.find(db, POLICY, role_key)}
        for resource, action in sorted(wanted - existing.keys()):
            db.add(CasbinRule(ptype=POLICY, v0=role_key, v1=resource, v2=action))
        await self.call(db.flush())
        stale = [row.id for pair, row in existing.items() if pair not in wanted]
        if stale:
            await self.call(db.execute(delete(CasbinRule).where(CasbinRule.id.in_(stale))))

    async def remove_role(self, db: AsyncSession, role_key: str) -> int:
        """Delete the role's policies, portal bindings and inheritance links. Returns the row count."""
        stmt = delete(CasbinRule).where(
            or_(
                and_(CasbinRule.ptype == POLICY, CasbinRule.v0 == role_key),
                and_(CasbinRule.ptype == ROLE_GROUP, or_(CasbinRule.v0 == role_key, CasbinRule.v1 == role_key)),
            )
        )
        result = await self.call(db.execute(stmt))
        return result.rowcount

    async def members_of(self, db: AsyncSession, role_key: str) -> list[CasbinRule]:
        """User -> role rows pointing at ``role_key`` in any organization."""
        return await self.find(db, USER_ROLE, None, role_key)

    async def is_empty(self, db: AsyncSession) -> bool:
        result = await self.call(db.execute(select(func.count()).select_from(CasbinRule)))
        return result.scalar_one() == 0
