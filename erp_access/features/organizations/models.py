"""
Organization model.

Organizations are the tenants that scope user -> role assignments. Only the
fields the access core needs are kept here.
"""
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from erp_access.core.database.base import Base, TimestampMixin, generate_object_id


class Organization(Base, TimestampMixin):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=generate_object_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # One of the portal types; a customer organization only hosts customer users
    portal_type: Mapped[str] = mapped_column(String(20), nullable=False, default="customer")

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name!r})>"
