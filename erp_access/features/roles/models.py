"""
Role catalog model.

A role is the subject that policies are written against. ``key`` is the
identifier used in ``casbin_rule`` rows (e.g. ``customer_admin``), globally
unique and prefixed with the portal type. ``permissions`` keeps the
permission names the role was defined with, so the role's ``p`` rows can be
regenerated from it.
"""
from sqlalchemy import String, Text, Boolean, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from erp_access.core.database.base import Base, TimestampMixin, generate_object_id


class Role(Base, TimestampMixin):
    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("organization_id", "portal_type", "name", name="uq_roles_org_portal_name"),
    )

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=generate_object_id)

    # Role definition
    key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    portal_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Optional: Link to specific organization (null = system-wide role)
    organization_id: Mapped[str | None] = mapped_column(
        String(24),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    # Seeded roles cannot be deleted
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, key={self.key!r}, org_id={self.organization_id})>"
