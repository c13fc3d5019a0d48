"""
Role model for RBAC
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship

from security_api.core.database import Base


class Role(Base):
    """
    Named role granted to users through memberships.

    Roles are soft-deleted (deleted=True) and excluded from reads afterwards.
    Role memberships and grants that reference a deleted role are kept.
    """
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    deleted = Column(Boolean, nullable=False, default=False)

    created_by = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_by = Column(String(50), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    grants = relationship("RoleGrant", back_populates="role")

    def __repr__(self):
        return f"<Role(id={self.id}, name='{self.name}')>"


# Roles that must exist for the API to be administrable
SYSTEM_ROLES = ["admin"]
