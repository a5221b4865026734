"""
Permission name -> (resource, action).

Many routes share one coarse permission; the enforcer only ever sees the
stable resource/action pair. ``PORTAL_PERMISSIONS`` lists the permissions an
administrator may grant to a role of each portal.
"""
import re
from typing import NamedTuple

from erp_access.features.access.errors import PermissionUnmapped
from erp_access.features.access.portals import PortalType


class ResourceAction(NamedTuple):
    resource: str
    action: str


PERMISSION_TO_ACTION: dict[str, ResourceAction] = {
    # Admin portal
    "adminUsersCreate": ResourceAction("admin_users", "create"),
    "adminUsersUpdate": ResourceAction("admin_users", "update"),
    "adminUsersDisable": ResourceAction("admin_users", "disable"),
    "adminUsersView": ResourceAction("admin_users", "view"),
    "customerOrgsManage": ResourceAction("customer_orgs", "manage"),
    "vendorOrgsManage": ResourceAction("vendor_orgs", "manage"),
    "licenseView": ResourceAction("licenses", "view"),
    "licensesView": ResourceAction("licenses", "view"),
    "licensesIssue": ResourceAction("licenses", "issue"),
    "licensesRevoke": ResourceAction("licenses", "revoke"),
    "onboardingView": ResourceAction("onboarding", "view"),
    "onboardingManage": ResourceAction("onboarding", "manage"),
    "systemSettingsManage": ResourceAction("system_settings", "manage"),
    "securityPoliciesManage": ResourceAction("security_policies", "manage"),
    "auditLogsView": ResourceAction("audit_logs", "view"),
    "adminRfqView": ResourceAction("admin_rfq", "view"),
    "adminRfqManage": ResourceAction("admin_rfq", "manage"),

    # Tech portal
    "techUsersCreate": ResourceAction("tech_users", "create"),
    "techUsersUpdate": ResourceAction("tech_users", "update"),
    "techUsersDelete": ResourceAction("tech_users", "delete"),
    "techUsersView": ResourceAction("tech_users", "view"),
    "organizationsCreate": ResourceAction("organizations", "create"),
    "organizationsUpdate": ResourceAction("organizations", "update"),
    "organizationsDelete": ResourceAction("organizations", "delete"),
    "organizationsView": ResourceAction("organizations", "view"),
    "systemLogsView": ResourceAction("system_logs", "view"),
    "systemConfigManage": ResourceAction("system_config", "manage"),
    "systemStatusView": ResourceAction("system_status", "view"),
    "rolesView": ResourceAction("roles", "view"),
    "rolesCreate": ResourceAction("roles", "create"),
    "rolesUpdate": ResourceAction("roles", "update"),
    "rolesDelete": ResourceAction("roles", "delete"),
    "assignRolesView": ResourceAction("assign_roles", "view"),
    "assignRolesAssign": ResourceAction("assign_roles", "assign"),
    "assignRolesUpdate": ResourceAction("assign_roles", "update"),
    "assignRolesRemove": ResourceAction("assign_roles", "remove"),

    # Customer portal
    "rfqView": ResourceAction("rfq", "view"),
    "rfqManage": ResourceAction("rfq", "manage"),
    "vesselsView": ResourceAction("vessels", "view"),
    "vesselsManage": ResourceAction("vessels", "manage"),
    "crewView": ResourceAction("crew", "view"),
    "crewManage": ResourceAction("crew", "manage"),
    "financeView": ResourceAction("finance", "view"),
    "financeManage": ResourceAction("finance", "manage"),
    "customerBillingView": ResourceAction("billing", "view"),
    "customerBillingManage": ResourceAction("billing", "manage"),
    "documentsView": ResourceAction("documents", "view"),
    "documentsUpload": ResourceAction("documents", "upload"),
    "claimView": ResourceAction("claims", "view"),
    "claimManage": ResourceAction("claims", "manage"),

    # Vendor portal
    "catalogueView": ResourceAction("catalogue", "view"),
    "catalogueManage": ResourceAction("catalogue", "manage"),
    "inventoryView": ResourceAction("inventory", "view"),
    "inventoryManage": ResourceAction("inventory", "manage"),
    "quotationView": ResourceAction("quotation", "view"),
    "quotationManage": ResourceAction("quotation", "manage"),
    "vendorBillingView": ResourceAction("billing", "view"),
    "vendorBillingManage": ResourceAction("billing", "manage"),
    "vendorDocumentsView": ResourceAction("vendor_documents", "view"),
    "vendorDocumentsUpload": ResourceAction("vendor_documents", "upload"),
    "vendorClaimView": ResourceAction("vendor_claims", "view"),
    "vendorClaimRespond": ResourceAction("vendor_claims", "respond"),
    "vendorSupportView": ResourceAction("support", "view"),
    "vendorSupportRespond": ResourceAction("support", "respond"),
    "shipmentView": ResourceAction("shipment", "view"),
    "shipmentUpdate": ResourceAction("shipment", "update"),
    "vendorUsersCreate": ResourceAction("vendor_users", "create"),
}


PORTAL_PERMISSIONS: dict[PortalType, list[str]] = {
    PortalType.TECH: [
        "techUsersCreate", "techUsersUpdate", "techUsersDelete", "techUsersView",
        "adminUsersCreate", "adminUsersUpdate", "adminUsersView",
        "organizationsCreate", "organizationsUpdate", "organizationsDelete", "organizationsView",
        "licensesView", "licensesIssue", "licensesRevoke",
        "onboardingView", "onboardingManage",
        "systemLogsView", "systemConfigManage", "systemStatusView",
        "rolesView", "rolesCreate", "rolesUpdate", "rolesDelete",
        "assignRolesView", "assignRolesAssign", "assignRolesUpdate", "assignRolesRemove",
    ],
    PortalType.ADMIN: [
        "adminUsersCreate", "adminUsersUpdate", "adminUsersDisable", "adminUsersView",
        "customerOrgsManage", "vendorOrgsManage",
        "licenseView", "licensesIssue", "licensesRevoke",
        "onboardingView", "onboardingManage",
        "systemSettingsManage", "securityPoliciesManage",
        "auditLogsView",
        "adminRfqView", "adminRfqManage",
        "rolesView", "rolesCreate", "rolesUpdate", "rolesDelete",
        "assignRolesView", "assignRolesAssign", "assignRolesUpdate", "assignRolesRemove",
    ],
    PortalType.CUSTOMER: [
        "rfqView", "rfqManage",
        "vesselsView", "vesselsManage",
        "crewView", "crewManage",
        "financeView", "financeManage",
        "customerBillingView", "customerBillingManage",
        "documentsView", "documentsUpload",
        "claimView", "claimManage",
    ],
    PortalType.VENDOR: [
        "catalogueView", "catalogueManage",
        "inventoryView", "inventoryManage",
        "quotationView", "quotationManage",
        "vendorBillingView", "vendorBillingManage",
        "vendorDocumentsView", "vendorDocumentsUpload",
        "vendorClaimView", "vendorClaimRespond",
        "vendorSupportView", "vendorSupportRespond",
        "shipmentView", "shipmentUpdate",
        "vendorUsersCreate",
    ],
}

# Labels that do not follow from splitting the camel-cased key
_LABEL_OVERRIDES = {
    "rfqView": "RFQ View",
    "rfqManage": "RFQ Manage",
    "adminRfqView": "Admin RFQ View",
    "adminRfqManage": "Admin RFQ Manage",
    "assignRolesAssign": "Assign Role",
    "assignRolesUpdate": "Update Assigned Role",
    "assignRolesRemove": "Remove Assigned Role",
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def resolve_permission(permission: str) -> ResourceAction:
    try:
        return PERMISSION_TO_ACTION[permission]
    except KeyError:
        raise PermissionUnmapped(permission) from None


def permission_label(permission: str) -> str:
    """Display label, e.g. ``vesselsManage`` -> ``Vessels Manage``."""
    if permission in _LABEL_OVERRIDES:
        return _LABEL_OVERRIDES[permission]
    return " ".join(word.capitalize() for word in _CAMEL_BOUNDARY.split(permission))


def permissions_for_portal(portal_type: PortalType) -> list[str]:
    return list(PORTAL_PERMISSIONS[portal_type])
