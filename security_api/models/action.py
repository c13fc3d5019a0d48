"""
Action model - an atomic permissible operation (e.g. "invoice.create")
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime

from security_api.core.database import Base


class Action(Base):
    __tablename__ = "actions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    # Groups actions into categories
    type_code = Column(String(20), nullable=False, index=True)
    ui_hint = Column(String(500), nullable=True)

    created_by = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_by = Column(String(50), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Action(id={self.id}, name='{self.name}', type='{self.type_code}')>"
