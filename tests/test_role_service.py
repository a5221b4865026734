"""Role catalog and the policies it maintains."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from erp_access.core.cache import KEY_PREFIX
from erp_access.core.database.engine import build_engine, build_sessionmaker
from erp_access.features.access.enforcer import Enforcer
from erp_access.features.access.errors import (
    InvalidRoleDefinition,
    RecordNotFound,
    RoleInUse,
    ScopeMismatch,
    StoreUnavailable,
)
from erp_access.features.access.portals import PortalType
from erp_access.features.access.store import PolicyStore
from erp_access.features.assign_role.service import AssignRoleService
from erp_access.features.roles.models import Role
from erp_access.features.roles.schemas import RoleCreate, RoleUpdate
from erp_access.features.roles.service import RoleService, role_key_base
from erp_access.features.users.models import User
from tests.conftest import FakeRedis, World, role_id


def fleet_manager(organization_id: str | None, **overrides) -> RoleCreate:
    fields = dict(
        name="Fleet Manager",
        portal_type=PortalType.CUSTOMER,
        permissions=["vesselsView", "vesselsManage", "crewView"],
        organization_id=organization_id,
    )
    fields.update(overrides)
    return RoleCreate(**fields)


def test_role_key_base() -> None:
    assert role_key_base("customer", "Fleet Manager") == "customer_fleet_manager"
    assert role_key_base("vendor", "  QA / Review  ") == "vendor_qa_review"
    assert role_key_base("tech", "!!!") == "tech_role"


@pytest.mark.asyncio
async def test_create_role_writes_binding_and_policies(
    db: AsyncSession, world: World, role_service: RoleService, store: PolicyStore,
) -> None:
    role = await role_service.create_role(db, fleet_manager(world.o1))

    assert role.key == "customer_fleet_manager"
    assert not role.is_system
    assert [r.values for r in await store.find(db, "g2", role.key)] == [
        [role.key, role.key, "customer_portal"],
    ]
    assert sorted(tuple(r.values[1:]) for r in await store.find(db, "p", role.key)) == [
        ("crew", "view"), ("vessels", "manage"), ("vessels", "view"),
    ]


@pytest.mark.asyncio
async def test_created_role_is_enforced(
    db: AsyncSession,
    world: World,
    enforcer: Enforcer,
    role_service: RoleService,
    assign_service: AssignRoleService,
) -> None:
    role = await role_service.create_role(db, fleet_manager(world.o1))
    await assign_service.assign_role(db, world.u1, role.id, world.o1)

    assert await enforcer.allowed(world.u1, "vessels", "manage", world.o1, "customer_portal", role.key)
    assert not await enforcer.allowed(world.u1, "rfq", "view", world.o1, "customer_portal", role.key)


@pytest.mark.asyncio
async def test_same_name_in_another_organization_gets_a_new_key(
    db: AsyncSession, world: World, role_service: RoleService,
) -> None:
    first = await role_service.create_role(db, fleet_manager(world.o1))
    second = await role_service.create_role(db, fleet_manager(world.o2))

    assert (first.key, second.key) == ("customer_fleet_manager", "customer_fleet_manager_2")


@pytest.mark.asyncio
async def test_duplicate_name_in_organization(db: AsyncSession, world: World, role_service: RoleService) -> None:
    await role_service.create_role(db, fleet_manager(world.o1))

    with pytest.raises(InvalidRoleDefinition):
        await role_service.create_role(db, fleet_manager(world.o1, permissions=["crewView"]))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "permissions",
    [
        ["vesselsView", "vesselsDelete"],  # unknown
        ["vesselsView", "catalogueView"],  # vendor portal permission
    ],
)
async def test_invalid_permissions(
    db: AsyncSession, world: World, role_service: RoleService, permissions: list[str],
) -> None:
    with pytest.raises(InvalidRoleDefinition) as exc_info:
        await role_service.create_role(db, fleet_manager(world.o1, permissions=permissions))

    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_update_replaces_policies_and_renames_holders(
    db: AsyncSession,
    world: World,
    enforcer: Enforcer,
    store: PolicyStore,
    role_service: RoleService,
    assign_service: AssignRoleService,
) -> None:
    role = await role_service.create_role(db, fleet_manager(world.o1))
    await assign_service.assign_role(db, world.u1, role.id, world.o1)

    updated = await role_service.update_role(
        db, role.id, RoleUpdate(name="Fleet Lead", permissions=["rfqView"]), world.o1,
    )

    assert updated.key == role.key
    assert updated.permissions == ["rfqView"]
    assert [tuple(r.values[1:]) for r in await store.find(db, "p", role.key)] == [("rfq", "view")]
    user = await db.get(User, world.u1)
    await db.refresh(user)
    assert user.role_name == "Fleet Lead"
    assert await enforcer.allowed(world.u1, "rfq", "view", world.o1, "customer_portal", role.key)
    assert not await enforcer.allowed(world.u1, "vessels", "manage", world.o1, "customer_portal", role.key)


@pytest.mark.asyncio
async def test_system_roles_are_protected(db: AsyncSession, world: World, role_service: RoleService) -> None:
    system_role = await role_id(db, "customer_user")

    with pytest.raises(InvalidRoleDefinition):
        await role_service.update_role(db, system_role, RoleUpdate(permissions=["rfqView"]), world.o1)
    with pytest.raises(RoleInUse):
        await role_service.delete_role(db, system_role)


@pytest.mark.asyncio
async def test_delete_role_in_use(
    db: AsyncSession, world: World, role_service: RoleService, assign_service: AssignRoleService,
) -> None:
    role = await role_service.create_role(db, fleet_manager(world.o1))
    await assign_service.assign_role(db, world.u1, role.id, world.o1)

    with pytest.raises(RoleInUse) as exc_info:
        await role_service.delete_role(db, role.id, world.o1)

    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_delete_role_removes_its_rules(
    db: AsyncSession, world: World, role_service: RoleService, store: PolicyStore,
) -> None:
    role = await role_service.create_role(db, fleet_manager(world.o1))

    await role_service.delete_role(db, role.id, world.o1)

    assert await store.find(db, "p", role.key) == []
    assert await store.find(db, "g2", role.key) == []
    with pytest.raises(RecordNotFound):
        await role_service.get_role(db, role.id)


@pytest.mark.asyncio
async def test_roles_are_scoped_to_their_organization(
    db: AsyncSession, world: World, role_service: RoleService,
) -> None:
    role = await role_service.create_role(db, fleet_manager(world.o1))

    with pytest.raises(ScopeMismatch):
        await role_service.get_role(db, role.id, world.o2)
    assert (await role_service.get_role(db, role.id, world.o1)).id == role.id
    # No scope: platform operators see everything
    assert (await role_service.get_role(db, role.id)).id == role.id


@pytest.mark.asyncio
async def test_list_roles(
    db: AsyncSession, world: World, role_service: RoleService, fake_redis: FakeRedis,
) -> None:
    own = await role_service.create_role(db, fleet_manager(world.o1))
    other = await role_service.create_role(db, fleet_manager(world.o2))

    roles = await role_service.list_roles(db, world.o1, "customer")

    keys = {r.key for r in roles}
    assert {"customer_admin", "customer_user", own.key} <= keys
    assert other.key not in keys
    assert all(r.portal_type == "customer" for r in roles)
    assert f"{KEY_PREFIX}roles:{world.o1}:customer" in fake_redis.data

    # Served from the cache until a role edit invalidates it
    assert await role_service.list_roles(db, world.o1, "customer") == roles
    await role_service.update_role(db, own.id, RoleUpdate(description="Vessels and crew"), world.o1)
    assert f"{KEY_PREFIX}roles:{world.o1}:customer" not in fake_redis.data


@pytest.mark.asyncio
async def test_rename_cannot_duplicate_a_name(db: AsyncSession, world: World, role_service: RoleService) -> None:
    with pytest.raises(InvalidRoleDefinition):
        await role_service.update_role(db, await role_id(db, "customer_user"), RoleUpdate(name="Customer Admin"))

    own = await role_service.create_role(db, fleet_manager(world.o1))
    own_id, own_key = own.id, own.key
    await role_service.create_role(db, fleet_manager(world.o1, name="Crew Lead", permissions=["crewView"]))
    with pytest.raises(InvalidRoleDefinition):
        await role_service.update_role(db, own_id, RoleUpdate(name="Crew Lead"), world.o1)

    names = await db.execute(select(Role.key).where(Role.name == "Customer Admin"))
    assert names.scalars().all() == ["customer_admin"]
    # Keeping the current name is not a duplicate
    assert (await role_service.update_role(db, own_id, RoleUpdate(name="Fleet Manager"), world.o1)).key == own_key


@pytest.mark.asyncio
async def test_unreachable_database_is_store_unavailable(
    tmp_path, role_service: RoleService, assign_service: AssignRoleService,
) -> None:
    broken = build_sessionmaker(build_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'access.sqlite'}"))

    async with broken() as db:
        with pytest.raises(StoreUnavailable) as exc_info:
            await role_service.list_roles(db, None, "customer")
        with pytest.raises(StoreUnavailable):
            await role_service.create_role(db, fleet_manager(None))
        with pytest.raises(StoreUnavailable):
            await assign_service.assign_role(
                db, "0000000000000000000000c3", "0000000000000000000000d4", "0000000000000000000000a1",
            )

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_delete_and_assign_never_leave_dangling_rules(
    sessionmaker, world: World, role_service: RoleService, assign_service: AssignRoleService, store: PolicyStore,
) -> None:
    async with sessionmaker() as db:
        role = await role_service.create_role(db, fleet_manager(world.o1))

    async def delete() -> None:
        async with sessionmaker() as db:
            await role_service.delete_role(db, role.id, world.o1)

    async def assign() -> None:
        async with sessionmaker() as db:
            await assign_service.assign_role(db, world.u1, role.id, world.o1)

    deleted, assigned = await asyncio.gather(delete(), assign(), return_exceptions=True)

    async with sessionmaker() as db:
        members = await store.members_of(db, role.key)
        bindings = await store.find(db, "g2", role.key)
        exists = await db.get(Role, role.id) is not None
    if exists:
        # The assignment won; deletion saw a holder
        assert isinstance(deleted, RoleInUse) and assigned is None
        assert [m.v0 for m in members] == [world.u1]
        assert bindings
    else:
        assert deleted is None and isinstance(assigned, RecordNotFound)
        assert members == [] and bindings == []
