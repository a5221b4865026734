"""
Route -> permission lookup.

Keys have the form ``"<portal>:<METHOD> <path template>"`` where every opaque
24-character hexadecimal id in the path is replaced by ``:id``. A route that
is missing here is a configuration gap and raises ``PermissionUndefined``;
it is never treated as an allow or a plain deny.
"""
import re

from erp_access.core import config
from erp_access.features.access.errors import PermissionUndefined


ID_PLACEHOLDER = ":id"

_OBJECT_ID = re.compile(r"^[0-9a-fA-F]{24}$")


ROUTE_PERMISSION_MAP: dict[str, str] = {
    # Tech portal
    "tech:GET /users": "techUsersView",
    "tech:POST /users/invite": "techUsersCreate",
    "tech:GET /users/:id": "techUsersView",
    "tech:PUT /users/:id": "techUsersUpdate",
    "tech:DELETE /users/:id": "techUsersDelete",

    "tech:GET /organizations": "organizationsView",
    "tech:POST /organizations": "organizationsCreate",
    "tech:PUT /organizations/:id": "organizationsUpdate",
    "tech:DELETE /organizations/:id": "organizationsDelete",

    "tech:GET /licenses": "licensesView",
    "tech:POST /licenses": "licensesIssue",
    "tech:PUT /licenses/:id": "licensesRevoke",
    "tech:DELETE /licenses/:id": "licensesRevoke",

    "tech:GET /customer-onboardings": "onboardingView",
    "tech:GET /vendor-onboardings": "onboardingView",
    "tech:POST /customer-onboardings/:id/approve": "onboardingManage",
    "tech:POST /customer-onboardings/:id/reject": "onboardingManage",
    "tech:POST /vendor-onboardings/:id/approve": "onboardingManage",
    "tech:POST /vendor-onboardings/:id/reject": "onboardingManage",

    "tech:GET /roles": "rolesView",
    "tech:GET /roles/:id": "rolesView",
    "tech:POST /roles": "rolesCreate",
    "tech:PUT /roles/:id": "rolesUpdate",
    "tech:DELETE /roles/:id": "rolesDelete",

    "tech:GET /assign-role/users": "assignRolesView",
    "tech:GET /assign-role/roles": "assignRolesView",
    "tech:POST /assign-role/assign": "assignRolesAssign",
    "tech:PUT /assign-role/:id": "assignRolesUpdate",
    "tech:DELETE /assign-role/:id": "assignRolesRemove",

    # Admin portal
    "admin:GET /users": "adminUsersView",
    "admin:POST /users": "adminUsersCreate",
    "admin:POST /users/invite": "adminUsersCreate",
    "admin:GET /users/:id": "adminUsersView",
    "admin:PUT /users/:id": "adminUsersUpdate",
    "admin:DELETE /users/:id": "adminUsersDisable",
    "admin:GET /admin-users": "adminUsersView",
    "admin:GET /admin-users/:id": "adminUsersView",

    "admin:GET /organizations": "customerOrgsManage",
    "admin:POST /organizations": "customerOrgsManage",
    "admin:POST /organizations/invite": "customerOrgsManage",
    "admin:GET /organizations/:id": "customerOrgsManage",
    "admin:PUT /organizations/:id": "customerOrgsManage",
    "admin:DELETE /organizations/:id": "customerOrgsManage",
    "admin:GET /organizations/with-licenses": "customerOrgsManage",
    "admin:GET /vendor-organizations": "vendorOrgsManage",
    "admin:GET /vendor-organizations/:id": "vendorOrgsManage",

    "admin:GET /licenses": "licenseView",
    "admin:POST /licenses": "licensesIssue",
    "admin:GET /licenses/:id": "licenseView",
    "admin:PUT /licenses/:id": "licensesRevoke",
    "admin:DELETE /licenses/:id": "licensesRevoke",

    "admin:GET /customer-onboardings": "onboardingView",
    "admin:GET /customer-onboardings/:id": "onboardingView",
    "admin:GET /vendor-onboardings": "onboardingView",
    "admin:GET /vendor-onboardings/:id": "onboardingView",
    "admin:POST /customer-onboardings/:id/approve": "onboardingManage",
    "admin:POST /customer-onboardings/:id/reject": "onboardingManage",
    "admin:POST /vendor-onboardings/:id/approve": "onboardingManage",
    "admin:POST /vendor-onboardings/:id/reject": "onboardingManage",

    "admin:GET /customers": "customerOrgsManage",
    "admin:GET /customers/:id": "customerOrgsManage",

    "admin:GET /rfq": "adminRfqView",
    "admin:GET /rfq/:id": "adminRfqView",
    "admin:POST /quotation": "adminRfqManage",
    "admin:GET /quotation/rfq/:id": "adminRfqView",

    "admin:GET /roles": "rolesView",
    "admin:GET /roles/:id": "rolesView",
    "admin:POST /roles": "rolesCreate",
    "admin:PUT /roles/:id": "rolesUpdate",
    "admin:DELETE /roles/:id": "rolesDelete",

    "admin:GET /assign-role/users": "assignRolesView",
    "admin:GET /assign-role/roles": "assignRolesView",
    "admin:POST /assign-role/assign": "assignRolesAssign",
    "admin:PUT /assign-role/:id": "assignRolesUpdate",
    "admin:DELETE /assign-role/:id": "assignRolesRemove",

    # Customer portal
    "customer:GET /rfq": "rfqView",
    "customer:POST /rfq": "rfqManage",
    "customer:GET /rfq/:id": "rfqView",
    "customer:PUT /rfq/:id": "rfqManage",
    "customer:DELETE /rfq/:id": "rfqManage",
    "customer:GET /rfq/:id/quotations": "rfqView",
    "customer:POST /quotations/:id/finalize": "rfqManage",
    "customer:GET /vessels": "vesselsView",
    "customer:POST /vessels": "vesselsManage",
    "customer:GET /crew": "crewView",
    "customer:POST /crew": "crewManage",
    "customer:GET /finance": "financeView",
    "customer:POST /finance": "financeManage",
    "customer:GET /billing": "customerBillingView",
    "customer:POST /billing": "customerBillingManage",
    "customer:GET /claims": "claimView",
    "customer:POST /claims": "claimManage",
    "customer:GET /documents": "documentsView",
    "customer:POST /documents": "documentsUpload",

    # Vendor portal
    "vendor:GET /catalogue": "catalogueView",
    "vendor:POST /catalogue": "catalogueManage",
    "vendor:GET /inventory": "inventoryView",
    "vendor:POST /inventory": "inventoryManage",
    "vendor:GET /quotations": "quotationView",
    "vendor:POST /quotations": "quotationManage",
    "vendor:GET /billing": "vendorBillingView",
    "vendor:POST /billing": "vendorBillingManage",
    "vendor:GET /documents": "vendorDocumentsView",
    "vendor:POST /documents": "vendorDocumentsUpload",
    "vendor:GET /claims": "vendorClaimView",
    "vendor:POST /claims/respond": "vendorClaimRespond",
    "vendor:GET /support": "vendorSupportView",
    "vendor:POST /support/respond": "vendorSupportRespond",
    "vendor:GET /shipments": "shipmentView",
    "vendor:PUT /shipments/:id": "shipmentUpdate",
    "vendor:POST /users": "vendorUsersCreate",
}


def normalize_path(portal: str, raw_path: str) -> str:
    """
    Reduce a request path to its route template.

    >>> normalize_path("customer", "/api/v1/customer/rfq/65f1c0ffee0000000000abcd/quotations?page=2")
    '/rfq/:id/quotations'
    """
    path = raw_path.split("?", 1)[0]
    if config.API_PREFIX and (path == config.API_PREFIX or path.startswith(config.API_PREFIX + "/")):
        path = path[len(config.API_PREFIX):]
    portal_prefix = f"/{portal}"
    if path == portal_prefix or path.startswith(portal_prefix + "/"):
        path = path[len(portal_prefix):]

    segments = [s for s in path.split("/") if s]
    segments = [ID_PLACEHOLDER if _OBJECT_ID.match(s) else s for s in segments]
    return "/" + "/".join(segments)


def route_key(portal: str, method: str, raw_path: str) -> str:
    return f"{portal}:{method.upper()} {normalize_path(portal, raw_path)}"


def lookup_permission(portal: str, method: str, raw_path: str) -> str:
    key = route_key(portal, method, raw_path)
    try:
        return ROUTE_PERMISSION_MAP[key]
    except KeyError:
        raise PermissionUndefined(key) from None
