"""
Error taxonomy of the access-control core.

Every error carries the HTTP status and a stable ``code`` so callers can tell
a configuration gap (``permission_undefined`` / ``permission_unmapped``) apart
from a legitimate refusal (``access_denied``).
"""


class AccessError(Exception):
    status_code: int = 500
    code: str = "access_error"


class IdentityNotFound(AccessError):
    """The authenticated user id does not resolve to an active user."""
    status_code = 401
    code = "identity_not_found"

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class PermissionUndefined(AccessError):
    """No route-permission mapping exists for the normalized route."""
    status_code = 403
    code = "permission_undefined"

    def __init__(self, route_key: str):
        super().__init__(f"No permission defined for route {route_key}")
        self.route_key = route_key


class PermissionUnmapped(AccessError):
    """A permission name has no resource/action mapping."""
    status_code = 403
    code = "permission_unmapped"

    def __init__(self, permission: str):
        super().__init__(f"Permission {permission} is not mapped to a resource/action")
        self.permission = permission


class AccessDenied(AccessError):
    status_code = 403
    code = "access_denied"

    def __init__(self, permission: str):
        super().__init__(f"Access denied: {permission}")
        self.permission = permission


class ScopeMismatch(AccessError):
    status_code = 400
    code = "scope_mismatch"


class PortalMismatch(AccessError):
    status_code = 400
    code = "portal_mismatch"

    def __init__(self, user_portal: str, role_portal: str):
        super().__init__(f"User portal ({user_portal}) does not match role portal ({role_portal})")
        self.user_portal = user_portal
        self.role_portal = role_portal


class RecordNotFound(AccessError):
    status_code = 404
    code = "not_found"


class RoleInUse(AccessError):
    status_code = 409
    code = "role_in_use"


class InvalidRoleDefinition(AccessError):
    status_code = 400
    code = "invalid_role"


class StoreUnavailable(AccessError):
    """The policy or user store could not be reached; enforcement fails closed."""
    status_code = 503
    code = "store_unavailable"
