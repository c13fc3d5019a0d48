"""
Membership models

A membership binds one user to one owner for an optional validity window and
carries the roles and actions granted under it.
"""
import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Index, Enum as SQLEnum,
    and_, or_,
)
from sqlalchemy.orm import relationship

from security_api.core.clock import as_utc, utcnow
from security_api.core.database import Base


class MembershipKind(str, enum.Enum):
    TRIAL = "trial"
    CONTRACT = "contract"
    PERMANENT = "permanent"


class MembershipStatus(str, enum.Enum):
    ACTIVE = "active"
    DECOMMISSIONED = "decommissioned"


class Membership(Base):
    """
    Lifecycle:
    - ACTIVE while not decommissioned and valid_until is null or not yet passed
    - Expired is computed from valid_until, never stored
    - DECOMMISSIONED is the stored soft-delete marker; valid_until is kept
    """
    __tablename__ = "memberships"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    owner_id = Column(Integer, ForeignKey("owners.id", ondelete="RESTRICT"), nullable=False)
    kind = Column(SQLEnum(MembershipKind, name="membership_kind"), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        SQLEnum(MembershipStatus, name="membership_status"),
        nullable=False,
        default=MembershipStatus.ACTIVE,
    )

    created_by = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_by = Column(String(50), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="memberships")
    owner = relationship("Owner")
    role_links = relationship("RoleMembership", back_populates="membership")
    action_links = relationship("ActionMembership", back_populates="membership")

    __table_args__ = (
        Index("ix_memberships_user_id", "user_id"),
        Index("ix_memberships_owner_id", "owner_id"),
    )

    def __repr__(self):
        return f"<Membership(id={self.id}, user_id={self.user_id}, owner_id={self.owner_id})>"

    def is_active_at(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        if self.status == MembershipStatus.DECOMMISSIONED:
            return False
        return self.valid_until is None or as_utc(self.valid_until) >= now

    @property
    def is_active(self) -> bool:
        return self.is_active_at()


def active_membership_clause(now: Optional[datetime] = None):
    """SQL form of Membership.is_active_at, evaluated at query time."""
    now = now or utcnow()
    return and_(
        Membership.status != MembershipStatus.DECOMMISSIONED,
        or_(Membership.valid_until.is_(None), Membership.valid_until >= now),
    )


class RoleMembership(Base):
    """Roles granted under a specific membership."""
    __tablename__ = "role_memberships"

    membership_id = Column(Integer, ForeignKey("memberships.id", ondelete="RESTRICT"), primary_key=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="RESTRICT"), primary_key=True)

    created_by = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_by = Column(String(50), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    membership = relationship("Membership", back_populates="role_links")
    role = relationship("Role")

    __table_args__ = (
        Index("ix_role_memberships_role_id", "role_id"),
    )

    def __repr__(self):
        return f"<RoleMembership(membership_id={self.membership_id}, role_id={self.role_id})>"


class ActionMembership(Base):
    """
    Actions granted directly under a membership, independent of any role.

    Capability flags default to read-only.
    """
    __tablename__ = "action_memberships"

    membership_id = Column(Integer, ForeignKey("memberships.id", ondelete="RESTRICT"), primary_key=True)
    action_id = Column(Integer, ForeignKey("actions.id", ondelete="RESTRICT"), primary_key=True)
    can_select = Column(Boolean, nullable=False, default=True)
    can_insert = Column(Boolean, nullable=False, default=False)
    can_update = Column(Boolean, nullable=False, default=False)
    can_delete = Column(Boolean, nullable=False, default=False)

    created_by = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_by = Column(String(50), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    membership = relationship("Membership", back_populates="action_links")
    action = relationship("Action")

    def __repr__(self):
        return f"<ActionMembership(membership_id={self.membership_id}, action_id={self.action_id})>"
