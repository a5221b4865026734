"""Shared pytest fixtures for the access-control tests."""

from __future__ import annotations

import os

os.environ["JWT_SECRET"] = "test-secret-key-for-tests-please-change"
os.environ["SEED_DEFAULT_POLICIES"] = "0"

import fnmatch
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from erp_access.core.cache import Cache
from erp_access.core.database.engine import build_engine, build_sessionmaker, get_db, init_db
from erp_access.features.access.enforcer import Enforcer, create_enforcer
from erp_access.features.access.seed import seed_defaults
from erp_access.features.access.store import CasbinRule, PolicyStore
from erp_access.features.assign_role.service import AssignRoleService
from erp_access.features.organizations.models import Organization
from erp_access.features.roles.models import Role
from erp_access.features.roles.service import RoleService
from erp_access.features.users.auth import create_access_token
from erp_access.features.users.identity import IdentityResolver
from erp_access.features.users.models import User
from erp_access.main import app as main_app, init_access


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` (string values only)."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def mget(self, keys: list[str]) -> list[str | None]:
        return [self.data.get(key) for key in keys]

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def incr(self, key: str) -> int:
        value = int(self.data.get(key, "0")) + 1
        self.data[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        if key not in self.data:
            return False
        self.ttls[key] = seconds
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def scan_iter(self, match: str | None = None, count: int | None = None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self) -> None:
        pass


class BrokenRedis:
    """A Redis client whose server is gone."""

    def __init__(self) -> None:
        self.calls = 0

    async def _fail(self, *args: Any, **kwargs: Any) -> Any:
        self.calls += 1
        raise RedisConnectionError("Connection refused")

    get = mget = set = delete = incr = expire = _fail

    async def scan_iter(self, match: str | None = None, count: int | None = None):
        self.calls += 1
        raise RedisConnectionError("Connection refused")
        yield  # pragma: no cover

    async def aclose(self) -> None:
        pass


@dataclass(frozen=True)
class World:
    platform_org: str
    admin_org: str
    o1: str
    o2: str
    tech_user: str
    admin_user: str
    u1: str
    u2: str
    u3: str


@pytest_asyncio.fixture()
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    """A file-backed SQLite database with every table created."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'access.sqlite'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(engine)


@pytest_asyncio.fixture()
async def db(sessionmaker) -> AsyncIterator[AsyncSession]:
    async with sessionmaker() as session:
        yield session


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def cache(fake_redis: FakeRedis) -> Cache:
    return Cache(fake_redis)


@pytest.fixture()
def enforcer(engine: AsyncEngine) -> Enforcer:
    return create_enforcer(engine)


@pytest.fixture()
def store() -> PolicyStore:
    return PolicyStore()


@pytest.fixture()
def identity_resolver(cache: Cache) -> IdentityResolver:
    return IdentityResolver(cache)


@pytest.fixture()
def role_service(enforcer: Enforcer, cache: Cache, store: PolicyStore) -> RoleService:
    return RoleService(enforcer, cache, store)


@pytest.fixture()
def assign_service(
    enforcer: Enforcer,
    identity_resolver: IdentityResolver,
    role_service: RoleService,
    cache: Cache,
    store: PolicyStore,
) -> AssignRoleService:
    return AssignRoleService(enforcer, identity_resolver, role_service, cache, store)


async def role_id(db: AsyncSession, key: str) -> str:
    result = await db.execute(select(Role.id).where(Role.key == key))
    return result.scalar_one()


async def grouping_rows(db: AsyncSession, member: str, ptype: str = "g") -> list[tuple[str, str, str]]:
    result = await db.execute(
        select(CasbinRule).where(CasbinRule.ptype == ptype, CasbinRule.v0 == member).order_by(CasbinRule.id)
    )
    return [(row.v0, row.v1, row.v2) for row in result.scalars().all()]


def auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest_asyncio.fixture()
async def world(db: AsyncSession, enforcer: Enforcer, store: PolicyStore, assign_service: AssignRoleService) -> World:
    """System roles and policies, four organizations and five users.

    ``tech_user`` holds ``tech_admin`` and ``admin_user`` holds
    ``admin_superuser``; the customer and vendor users start without a role.
    """
    await seed_defaults(db, enforcer, store)

    platform = Organization(name="Platform", portal_type="tech")
    admin_org = Organization(name="Admin Staff", portal_type="admin")
    o1 = Organization(name="Acme Shipping", portal_type="customer")
    o2 = Organization(name="Blue Ocean", portal_type="customer")
    db.add_all([platform, admin_org, o1, o2])
    await db.flush()

    users = {
        "tech_user": User(email="ops@example.com", first_name="Olga", last_name="Ops",
                          portal_type="tech", organization_id=platform.id),
        "admin_user": User(email="staff@example.com", first_name="Sam", last_name="Staff",
                           portal_type="admin", organization_id=admin_org.id),
        "u1": User(email="buyer@example.com", first_name="Bea", last_name="Buyer",
                   portal_type="customer", organization_id=o1.id),
        "u2": User(email="seller@example.com", first_name="Val", last_name="Vendor",
                   portal_type="vendor", organization_id=o1.id),
        "u3": User(email="other@example.com", first_name="Otto", last_name="Other",
                   portal_type="customer", organization_id=o2.id),
    }
    db.add_all(users.values())
    await db.commit()

    await assign_service.assign_role(db, users["tech_user"].id, await role_id(db, "tech_admin"), platform.id)
    await assign_service.assign_role(db, users["admin_user"].id, await role_id(db, "admin_superuser"), admin_org.id)

    return World(
        platform_org=platform.id,
        admin_org=admin_org.id,
        o1=o1.id,
        o2=o2.id,
        **{name: user.id for name, user in users.items()},
    )


@pytest_asyncio.fixture()
async def app(
    sessionmaker,
    engine: AsyncEngine,
    cache: Cache,
) -> AsyncIterator[FastAPI]:
    """The application wired to the test database and the in-memory cache."""
    init_access(main_app, engine, cache)

    async def _get_db() -> AsyncIterator[AsyncSession]:
        async with sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    main_app.dependency_overrides[get_db] = _get_db
    yield main_app
    main_app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Provide an HTTPX async client bound to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
