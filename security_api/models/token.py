"""
Token model - persisted session record, separate from the bearer JWT
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from security_api.core.clock import as_utc, utcnow
from security_api.core.database import Base


class Token(Base):
    __tablename__ = "tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    value = Column(String(255), unique=True, nullable=False, index=True)
    issued_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=False)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    validated = Column(Boolean, nullable=False, default=False)

    created_by = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_by = Column(String(50), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="tokens")

    __table_args__ = (
        Index("ix_tokens_user_id", "user_id"),
        Index("ix_tokens_expires_at", "expires_at"),
    )

    def __repr__(self):
        return f"<Token(id={self.id}, user_id={self.user_id}, value='{self.value[:8]}...')>"

    def is_valid_at(self, now: Optional[datetime] = None) -> bool:
        return as_utc(self.expires_at) > (now or utcnow())
