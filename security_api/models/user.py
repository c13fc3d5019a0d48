"""
User model - credential store
"""
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum
from sqlalchemy.orm import relationship

from security_api.core.database import Base


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"


class User(Base):
    """
    Application user.

    Never hard-deleted: deactivation flips status to INACTIVE or BLOCKED.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    display_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=True)
    status = Column(SQLEnum(UserStatus, name="user_status"), nullable=False, default=UserStatus.ACTIVE)

    created_by = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_by = Column(String(50), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    last_access_at = Column(DateTime(timezone=True), nullable=True)

    memberships = relationship("Membership", back_populates="user")
    tokens = relationship("Token", back_populates="user", passive_deletes=True)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}')>"

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE
