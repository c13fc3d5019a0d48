"""
Owner model - the tenant a membership grants access to
"""
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Index

from security_api.core.database import Base


class OwnerStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Owner(Base):
    __tablename__ = "owners"

    id = Column(Integer, primary_key=True, index=True)
    tax_id = Column(String(20), nullable=False)
    legal_id = Column(String(20), nullable=False)
    name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    address = Column(String(255), nullable=True)
    status = Column(SQLEnum(OwnerStatus, name="owner_status"), nullable=False, default=OwnerStatus.ACTIVE)

    created_by = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_by = Column(String(50), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_owners_status_name", "status", "name"),
    )

    def __repr__(self):
        return f"<Owner(id={self.id}, name='{self.name}')>"
