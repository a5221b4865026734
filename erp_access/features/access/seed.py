"""
Default system roles and their policies.

``seed_defaults`` runs at startup (``SEED_DEFAULT_POLICIES``) and from
``scripts/seed_policies.py``. Role rows are inserted when missing; policy rows
are only written into an empty policy store so that edits made through the
role catalog are never overwritten.
"""
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from erp_access.features.access.enforcer import Enforcer
from erp_access.features.access.permission_map import resolve_permission
from erp_access.features.access.portals import PortalType
from erp_access.features.access.store import ROLE_GROUP, PolicyStore
from erp_access.features.roles.models import Role
from erp_access.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class DefaultRole:
    key: str
    name: str
    portal_type: PortalType
    permissions: list[str] = field(default_factory=list)
    description: str | None = None


DEFAULT_ROLES: list[DefaultRole] = [
    DefaultRole(
        "tech_admin", "Tech Admin", PortalType.TECH,
        [
            "techUsersCreate", "techUsersUpdate", "techUsersDelete", "techUsersView",
            "adminUsersCreate", "adminUsersUpdate", "adminUsersView",
            "organizationsCreate", "organizationsUpdate", "organizationsDelete", "organizationsView",
            "licensesView", "licensesIssue", "licensesRevoke",
            "onboardingView", "onboardingManage",
            "systemConfigManage",
            "rolesView", "rolesCreate", "rolesUpdate", "rolesDelete",
            "assignRolesView", "assignRolesAssign", "assignRolesUpdate", "assignRolesRemove",
        ],
        "Full platform access",
    ),
    DefaultRole(
        "tech_manager", "Tech Manager", PortalType.TECH,
        [
            "adminUsersCreate", "adminUsersUpdate", "adminUsersView",
            "licensesView", "licensesIssue", "licensesRevoke",
            "organizationsView", "onboardingView",
        ],
    ),
    DefaultRole(
        "tech_developer", "Tech Developer", PortalType.TECH,
        ["licensesView", "systemLogsView", "organizationsView", "onboardingView"],
    ),
    DefaultRole(
        "tech_support", "Tech Support", PortalType.TECH,
        ["systemStatusView", "organizationsView"],
    ),
    DefaultRole(
        "admin_superuser", "Admin Superuser", PortalType.ADMIN,
        [
            "adminUsersCreate", "adminUsersView",
            "customerOrgsManage", "vendorOrgsManage",
            "licenseView", "licensesIssue", "licensesRevoke",
            "onboardingView", "onboardingManage",
            "rolesView", "rolesCreate", "rolesUpdate", "rolesDelete",
            "assignRolesView", "assignRolesAssign", "assignRolesUpdate", "assignRolesRemove",
        ],
    ),
    DefaultRole(
        "customer_admin", "Customer Admin", PortalType.CUSTOMER,
        ["rfqView", "rfqManage", "vesselsView", "vesselsManage", "crewView", "crewManage"],
    ),
    DefaultRole("customer_user", "Customer User", PortalType.CUSTOMER, ["rfqView", "vesselsView"]),
    DefaultRole(
        "vendor_admin", "Vendor Admin", PortalType.VENDOR,
        ["catalogueView", "catalogueManage", "inventoryView", "inventoryManage", "quotationView", "quotationManage"],
    ),
    DefaultRole("vendor_user", "Vendor User", PortalType.VENDOR, ["catalogueView", "quotationView"]),
]

# (role, inherited role): a tech_admin can do everything a tech_manager can, and so on
TECH_INHERITANCE: list[tuple[str, str]] = [
    ("tech_admin", "tech_manager"),
    ("tech_manager", "tech_developer"),
    ("tech_developer", "tech_support"),
]


async def seed_roles(db: AsyncSession) -> int:
    """Insert the system roles that do not exist yet. Returns how many were added."""
    result = await db.execute(select(Role.key).where(Role.key.in_([r.key for r in DEFAULT_ROLES])))
    existing = set(result.scalars().all())
    added = 0
    for default in DEFAULT_ROLES:
        if default.key in existing:
            continue
        db.add(Role(
            key=default.key,
            name=default.name,
            description=default.description,
            portal_type=default.portal_type.value,
            permissions=list(default.permissions),
            organization_id=None,
            is_system=True,
        ))
        added += 1
    await db.commit()
    return added


async def seed_policies(enforcer: Enforcer) -> int:
    """Write bindings, inheritance and policies of the system roles. Returns the rule count."""
    count = 0
    async with enforcer.edit() as editor:
        for default in DEFAULT_ROLES:
            group = default.portal_type.group
            count += await editor.add_grouping_policy(default.key, default.key, group, ROLE_GROUP)
            for permission in default.permissions:
                resource, action = resolve_permission(permission)
                count += await editor.add_policy(default.key, resource, action)
        for role, inherited in TECH_INHERITANCE:
            count += await editor.add_grouping_policy(role, inherited, PortalType.TECH.group, ROLE_GROUP)
    return count


async def seed_defaults(db: AsyncSession, enforcer: Enforcer, store: PolicyStore | None = None) -> None:
    store = store or PolicyStore()
    added = await seed_roles(db)
    if added:
        log.info("Seeded %d system roles", added)

    empty = await store.is_empty(db)
    # Release the read before the adapter writes on its own connection
    await db.commit()
    if not empty:
        log.info("Policy store already populated, skipping policy seed")
        return
    count = await seed_policies(enforcer)
    log.info("Seeded %d default policy rules", count)
