"""The request-time access decision."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from erp_access.features.access import route_map
from erp_access.features.access.decision import Outcome, RequestDescriptor, check_access
from erp_access.features.access.enforcer import Enforcer
from erp_access.features.access.errors import AccessDenied, PermissionUndefined, PermissionUnmapped
from erp_access.features.users.identity import Identity, IdentityResolver
from tests.conftest import World


@pytest.mark.asyncio
async def test_allow(db: AsyncSession, world: World, enforcer: Enforcer, identity_resolver: IdentityResolver) -> None:
    identity = await identity_resolver.resolve(db, world.tech_user)

    decision = await check_access(enforcer, identity, RequestDescriptor("tech", "GET", "/api/v1/tech/organizations"))

    assert decision.outcome is Outcome.ALLOW
    assert decision.allowed
    assert decision.permission == "organizationsView"
    assert decision.error is None


@pytest.mark.asyncio
async def test_deny_names_the_permission(
    db: AsyncSession, world: World, enforcer: Enforcer, identity_resolver: IdentityResolver,
) -> None:
    identity = await identity_resolver.resolve(db, world.admin_user)

    decision = await check_access(enforcer, identity, RequestDescriptor("admin", "PUT", "/api/v1/admin/users/65f1c0ffee0000000000abcd"))

    assert decision.outcome is Outcome.DENY
    assert decision.permission == "adminUsersUpdate"
    assert isinstance(decision.error, AccessDenied)
    assert decision.error.code == "access_denied"


@pytest.mark.asyncio
async def test_other_portal_routes_are_denied(
    db: AsyncSession, world: World, enforcer: Enforcer, identity_resolver: IdentityResolver,
) -> None:
    identity = await identity_resolver.resolve(db, world.admin_user)

    decision = await check_access(enforcer, identity, RequestDescriptor("tech", "GET", "/api/v1/tech/organizations"))

    assert decision.outcome is Outcome.DENY


@pytest.mark.asyncio
async def test_undefined_route_is_a_config_error(
    db: AsyncSession, world: World, enforcer: Enforcer, identity_resolver: IdentityResolver,
) -> None:
    identity = await identity_resolver.resolve(db, world.tech_user)

    decision = await check_access(enforcer, identity, RequestDescriptor("tech", "GET", "/api/v1/tech/payments"))

    assert decision.outcome is Outcome.CONFIG_ERROR
    assert not decision.allowed
    assert isinstance(decision.error, PermissionUndefined)
    assert decision.error.code == "permission_undefined"
    assert "tech:GET /payments" in decision.reason


@pytest.mark.asyncio
async def test_unmapped_permission_is_a_config_error(
    monkeypatch: pytest.MonkeyPatch, enforcer: Enforcer,
) -> None:
    monkeypatch.setitem(route_map.ROUTE_PERMISSION_MAP, "customer:GET /payments", "paymentsView")
    identity = Identity(user_id="0000000000000000000000c3", organization_id="0000000000000000000000a1",
                        portal_type="customer", role="customer_admin")

    decision = await check_access(enforcer, identity, RequestDescriptor("customer", "GET", "/api/v1/customer/payments"))

    assert decision.outcome is Outcome.CONFIG_ERROR
    assert isinstance(decision.error, PermissionUnmapped)
    assert decision.error.code == "permission_unmapped"
    # Configuration gaps never reach the policy store
    assert not enforcer.is_loaded


@pytest.mark.asyncio
async def test_user_without_role_is_denied(
    db: AsyncSession, world: World, enforcer: Enforcer, identity_resolver: IdentityResolver,
) -> None:
    identity = await identity_resolver.resolve(db, world.u1)

    decision = await check_access(enforcer, identity, RequestDescriptor("customer", "GET", "/api/v1/customer/rfq"))

    assert decision.outcome is Outcome.DENY
    assert decision.permission == "rfqView"
