"""
SQLAlchemy declarative base and common model utilities.

All SQLAlchemy models should inherit from Base.
"""
import secrets
import time
from datetime import datetime
from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


OBJECT_ID_LENGTH = 24


def generate_object_id() -> str:
    """
    Generate a 24-character hexadecimal identifier.

    The first 8 characters encode the creation time in seconds, so ids sort
    roughly by age. Route normalization relies on this exact shape.
    """
    return f"{int(time.time()):08x}{secrets.token_hex(8)}"


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        from erp_access.core.database.base import Base

        class Organization(Base):
            __tablename__ = "organizations"

            id: Mapped[str] = mapped_column(String(24), primary_key=True, default=generate_object_id)
            name: Mapped[str] = mapped_column(String(255))
    """
    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.

    Usage:
        class Role(Base, TimestampMixin):
            __tablename__ = "roles"
            id: Mapped[str] = mapped_column(String(24), primary_key=True)
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
