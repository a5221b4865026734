"""
Casbin enforcer service.

One ``Enforcer`` is created at startup and shared by every request. It owns a
lazily built ``casbin.AsyncEnforcer`` that readers use as-is. Policy edits are
never applied to that shared instance: ``edit()`` loads a private instance,
applies the changes (each one persisted by the adapter), and then invalidates
the shared instance so the next reader rebuilds from the store.

Decision rule (see ``model.conf``):

1. ``g(user, role, organization)``: the role is the user's current role in
   that organization
2. the role has a ``g2`` binding in the portal group, and ``g2(role,
   policy role, portal group)`` holds (role inheritance)
3. ``p(policy role, resource, action)`` exists

Only allow rules exist; no match means deny.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Sequence

import casbin
from casbin.persist.adapters.asyncio import AsyncAdapter
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from erp_access.core import config
from erp_access.features.access.errors import StoreUnavailable
from erp_access.features.access.model import PolicyModelSource
from erp_access.features.access.store import ROLE_GROUP, USER_ROLE, create_adapter
from erp_access.utils import get_logger


log = get_logger(__name__)

_STORE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


class PolicyEditor:
    """Mutation operations on a private enforcer instance."""

    def __init__(self, enforcer: casbin.AsyncEnforcer):
        self._enforcer = enforcer

    async def add_policy(self, role_key: str, resource: str, action: str) -> bool:
        return await self._enforcer.add_policy(role_key, resource, action)

    async def remove_role_policies(self, role_key: str) -> bool:
        return await self._enforcer.remove_filtered_policy(0, role_key)

    async def add_grouping_policy(self, member: str, group: str, scope: str, ptype: str = USER_ROLE) -> bool:
        return await self._enforcer.add_named_grouping_policy(ptype, member, group, scope)

    async def remove_grouping_policies(self, rules: Iterable[Sequence[str]], ptype: str = USER_ROLE) -> bool:
        rules = [list(rule) for rule in rules]
        if not rules:
            return False
        return await self._enforcer.remove_named_grouping_policies(ptype, rules)

    async def remove_role_bindings(self, role_key: str) -> bool:
        """Drop the role's portal bindings and every inheritance link pointing at it."""
        own = await self._enforcer.remove_filtered_named_grouping_policy(ROLE_GROUP, 0, role_key)
        inherited = await self._enforcer.remove_filtered_named_grouping_policy(ROLE_GROUP, 1, role_key)
        return own or inherited

    async def save_policy(self) -> None:
        """Flush the full in-memory policy set to the store."""
        await self._enforcer.save_policy()

    def policies(self) -> list[list[str]]:
        return self._enforcer.get_model().get_policy("p", "p")

    def grouping_policies(self, ptype: str = USER_ROLE) -> list[list[str]]:
        return self._enforcer.get_model().get_policy("g", ptype)


class Enforcer:
    """Owned, rebuildable access decision service."""

    def __init__(
        self,
        model_source: PolicyModelSource,
        adapter: AsyncAdapter,
        timeout: float = config.STORE_TIMEOUT_SECONDS,
    ):
        self.model_source = model_source
        self.adapter = adapter
        self.timeout = timeout
        self._enforcer: casbin.AsyncEnforcer | None = None
        self._generation = 0
        self._build_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    @property
    def generation(self) -> int:
        """Incremented by every invalidation."""
        return self._generation

    @property
    def is_loaded(self) -> bool:
        return self._enforcer is not None

    async def _build(self) -> casbin.AsyncEnforcer:
        enforcer = casbin.AsyncEnforcer(self.model_source.load(), self.adapter)
        try:
            await asyncio.wait_for(enforcer.load_policy(), self.timeout)
        except _STORE_ERRORS as e:
            log.exception("Failed to load policies from the policy store")
            raise StoreUnavailable(f"Policy store unavailable: {e}") from e
        return enforcer

    async def current(self) -> casbin.AsyncEnforcer:
        """Return the shared enforcer, building it if it was invalidated."""
        while True:
            enforcer = self._enforcer
            if enforcer is not None:
                return enforcer
            async with self._build_lock:
                if self._enforcer is not None:
                    continue
                generation = self._generation
                enforcer = await self._build()
                if generation == self._generation:
                    self._enforcer = enforcer
                    log.info("Enforcer built (generation %s)", generation)
                    return enforcer
                log.debug("Policies changed while building the enforcer, loading again")

    def invalidate(self) -> None:
        """Discard the shared enforcer; the next reader rebuilds it."""
        self._enforcer = None
        self._generation += 1
        log.debug("Enforcer invalidated (generation %s)", self._generation)

    async def rebuild(self) -> casbin.AsyncEnforcer:
        self.invalidate()
        return await self.current()

    async def allowed(
        self,
        subject: str,
        resource: str,
        action: str,
        organization_id: str,
        portal_group: str,
        role: str,
    ) -> bool:
        """
        Decide whether ``subject`` acting as ``role`` in ``organization_id`` may
        perform ``action`` on ``resource`` within ``portal_group``.

        Raises ``StoreUnavailable`` when the enforcer cannot be built; callers
        must treat that as a denial.
        """
        if not (subject and role and organization_id):
            return False
        enforcer = await self.current()
        bindings = enforcer.get_model().get_filtered_policy("g", ROLE_GROUP, 0, role, "", portal_group)
        if not bindings:
            log.debug("Role %s has no binding in %s", role, portal_group)
            return False
        return enforcer.enforce(subject, resource, action, organization_id, portal_group, role)

    @asynccontextmanager
    async def edit(self) -> AsyncIterator[PolicyEditor]:
        """
        Apply policy changes, then invalidate the shared enforcer.

        Usage:
            async with enforcer.edit() as editor:
                await editor.add_policy("customer_admin", "rfq", "view")
        """
        async with self._write_lock:
            editor = PolicyEditor(await self._build())
            try:
                yield editor
            except _STORE_ERRORS as e:
                log.exception("Policy edit failed")
                raise StoreUnavailable(f"Policy store unavailable: {e}") from e
            finally:
                self.invalidate()

    async def add_policy(self, role_key: str, resource: str, action: str) -> bool:
        async with self.edit() as editor:
            return await editor.add_policy(role_key, resource, action)

    async def add_grouping_policy(self, member: str, group: str, scope: str, ptype: str = USER_ROLE) -> bool:
        async with self.edit() as editor:
            return await editor.add_grouping_policy(member, group, scope, ptype)

    async def remove_grouping_policies(self, rules: Iterable[Sequence[str]], ptype: str = USER_ROLE) -> bool:
        async with self.edit() as editor:
            return await editor.remove_grouping_policies(rules, ptype)

    async def save_policy(self) -> None:
        async with self.edit() as editor:
            await editor.save_policy()


def create_enforcer(engine: AsyncEngine, model_path: str | None = config.CASBIN_MODEL_PATH) -> Enforcer:
    """Build the process enforcer: model source chosen now, policies loaded on first use."""
    return Enforcer(PolicyModelSource.select(model_path), create_adapter(engine))
