"""
Access decision for one request.

``check_access`` runs the whole pipeline for an already resolved identity:

    route -> permission name -> (resource, action) -> Enforcer.allowed()

The outcome is one of ``allow``, ``deny`` (a legitimate refusal) or
``config_error`` (the route or the permission is not mapped). The two refusal
kinds carry different errors so operators can tell a missing mapping from a
user who simply lacks the permission.
"""
import enum
from dataclasses import dataclass

from erp_access.features.access.enforcer import Enforcer
from erp_access.features.access.errors import AccessDenied, AccessError, PermissionUndefined, PermissionUnmapped
from erp_access.features.access.permission_map import resolve_permission
from erp_access.features.access.portals import portal_group
from erp_access.features.access.route_map import lookup_permission
from erp_access.features.users.identity import Identity
from erp_access.utils import get_logger


log = get_logger(__name__)


class Outcome(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"
    CONFIG_ERROR = "config_error"


@dataclass(frozen=True)
class RequestDescriptor:
    """The portal and route a request targets, e.g. ``("customer", "GET", "/api/v1/customer/rfq")``."""
    portal_type: str
    method: str
    raw_path: str


@dataclass(frozen=True)
class AccessDecision:
    outcome: Outcome
    reason: str
    permission: str | None = None
    error: AccessError | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.ALLOW


async def check_access(enforcer: Enforcer, identity: Identity, descriptor: RequestDescriptor) -> AccessDecision:
    """
    Decide whether ``identity`` may perform the request described by ``descriptor``.

    Raises ``StoreUnavailable`` when the policy store cannot be read; the
    request must then be refused.
    """
    try:
        permission = lookup_permission(descriptor.portal_type, descriptor.method, descriptor.raw_path)
        resource, action = resolve_permission(permission)
    except (PermissionUndefined, PermissionUnmapped) as e:
        log.error("Access configuration gap for user %s: %s", identity.user_id, e)
        return AccessDecision(Outcome.CONFIG_ERROR, str(e), error=e)

    # A role is only bound to its own portal group, so requests on another
    # portal's routes fail the g2 check in the enforcer
    allowed = await enforcer.allowed(
        identity.user_id,
        resource,
        action,
        identity.organization_id or "",
        portal_group(descriptor.portal_type),
        identity.role or "",
    )
    if allowed:
        log.debug("Allowed %s for user %s (%s:%s)", permission, identity.user_id, resource, action)
        return AccessDecision(Outcome.ALLOW, "Allowed", permission=permission)

    log.info("Denied %s for user %s in organization %s", permission, identity.user_id, identity.organization_id)
    return AccessDecision(Outcome.DENY, "Access denied", permission=permission, error=AccessDenied(permission))
