import enum


class PortalType(str, enum.Enum):
    """The four tenant-facing application surfaces, each with its own role namespace."""
    TECH = "tech"
    ADMIN = "admin"
    CUSTOMER = "customer"
    VENDOR = "vendor"

    @property
    def group(self) -> str:
        """Portal-group label used by role bindings, e.g. ``customer_portal``."""
        return portal_group(self.value)


def portal_group(portal_type: str) -> str:
    return f"{portal_type}_portal"
