"""
FastAPI dependencies for route protection.

Every portal route is guarded by ``require_access``: the permission is looked
up from the route itself, so handlers never name a permission.

Usage:
    @router.get("/rfq")
    async def list_rfqs(identity: Identity = Depends(require_access)):
        ...
"""
from typing import Annotated
from fastapi import Depends, Request

from erp_access.core import config
from erp_access.core.cache import Cache
from erp_access.features.access.decision import RequestDescriptor, check_access
from erp_access.features.access.enforcer import Enforcer
from erp_access.features.access.errors import ScopeMismatch
from erp_access.features.access.portals import PortalType
from erp_access.features.users.dependencies import get_current_identity
from erp_access.features.users.identity import Identity


def get_enforcer(request: Request) -> Enforcer:
    return request.app.state.enforcer


def get_cache(request: Request) -> Cache:
    return request.app.state.cache


def descriptor_from_request(request: Request) -> RequestDescriptor:
    """The portal is the first path segment below the API prefix: ``/api/v1/<portal>/...``."""
    path = request.url.path
    if config.API_PREFIX and path.startswith(config.API_PREFIX):
        path = path[len(config.API_PREFIX):]
    portal = path.lstrip("/").split("/", 1)[0]
    return RequestDescriptor(portal_type=portal, method=request.method, raw_path=request.url.path)


def organization_scope(identity: Identity, requested: str | None = None) -> str | None:
    """
    Organization an administrative call acts on.

    Platform operators (tech portal) may name any organization; everyone else
    is confined to their own and gets ``ScopeMismatch`` for another one.
    """
    if identity.portal_type == PortalType.TECH.value:
        return requested or identity.organization_id
    if requested and requested != identity.organization_id:
        raise ScopeMismatch("Cannot act on another organization")
    return identity.organization_id


async def require_access(
    request: Request,
    identity: Annotated[Identity, Depends(get_current_identity)],
    enforcer: Annotated[Enforcer, Depends(get_enforcer)],
) -> Identity:
    """
    Allow the request or raise.

    Raises ``AccessDenied`` when the user lacks the route's permission and
    ``PermissionUndefined`` / ``PermissionUnmapped`` when the route is not
    configured; both render as 403 with distinct codes.
    """
    decision = await check_access(enforcer, identity, descriptor_from_request(request))
    if not decision.allowed:
        raise decision.error
    return identity
