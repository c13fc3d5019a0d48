"""
RoleGrant ("role-sub") - permission matrix row for a role and an action
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from security_api.core.database import Base


class RoleGrant(Base):
    """
    Which of the four CRUD capabilities a role holds on an action.

    One row per (role_id, action_id). Removing a grant soft-deletes the row;
    granting the pair again revives it.
    """
    __tablename__ = "role_grants"

    id = Column(Integer, primary_key=True, index=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="RESTRICT"), nullable=False)
    action_id = Column(Integer, ForeignKey("actions.id", ondelete="RESTRICT"), nullable=False)
    can_select = Column(Boolean, nullable=False, default=False)
    can_insert = Column(Boolean, nullable=False, default=False)
    can_update = Column(Boolean, nullable=False, default=False)
    can_delete = Column(Boolean, nullable=False, default=False)
    deleted = Column(Boolean, nullable=False, default=False)

    created_by = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_by = Column(String(50), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    role = relationship("Role", back_populates="grants")
    action = relationship("Action")

    __table_args__ = (
        UniqueConstraint("role_id", "action_id", name="uq_role_grant_role_action"),
    )

    def __repr__(self):
        return f"<RoleGrant(role_id={self.role_id}, action_id={self.action_id})>"
