"""
Audit record model

Append-only: the application never updates or deletes rows.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, BigInteger, String, Text, DateTime, Index

from security_api.core.database import Base


class AuditAction:
    """Action names written by the API. Free-form names are accepted too."""

    USER_REGISTERED = "user.registered"
    USER_LOGIN = "user.login"
    USER_UPDATED = "user.updated"
    USER_DEACTIVATED = "user.deactivated"
    USER_PASSWORD_CHANGED = "user.password_changed"

    ROLE_CREATED = "role.created"
    ROLE_UPDATED = "role.updated"
    ROLE_DELETED = "role.deleted"
    ROLE_GRANT_ADDED = "role.grant_added"
    ROLE_GRANT_UPDATED = "role.grant_updated"
    ROLE_GRANT_REMOVED = "role.grant_removed"

    ACTION_CREATED = "action.created"
    ACTION_UPDATED = "action.updated"
    ACTION_DELETED = "action.deleted"

    OWNER_CREATED = "owner.created"
    OWNER_UPDATED = "owner.updated"
    OWNER_DEACTIVATED = "owner.deactivated"

    MEMBERSHIP_CREATED = "membership.created"
    MEMBERSHIP_UPDATED = "membership.updated"
    MEMBERSHIP_DECOMMISSIONED = "membership.decommissioned"
    MEMBERSHIP_ROLE_ADDED = "membership.role_added"
    MEMBERSHIP_ROLE_REMOVED = "membership.role_removed"
    MEMBERSHIP_ACTION_ADDED = "membership.action_added"
    MEMBERSHIP_ACTION_REMOVED = "membership.action_removed"

    TOKEN_CREATED = "token.created"
    TOKEN_UPDATED = "token.updated"
    TOKEN_DELETED = "token.deleted"
    TOKENS_SWEPT = "token.swept"


class AuditRecord(Base):
    __tablename__ = "audit_records"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    action_name = Column(String(100), nullable=False, index=True)
    table_name = Column(String(100), nullable=False)
    record_id = Column(String(100), nullable=True)
    before_json = Column(Text, nullable=True)
    after_json = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_audit_records_table_record", "table_name", "record_id"),
        Index("ix_audit_records_at", "at"),
    )

    def __repr__(self):
        return f"<AuditRecord(id={self.id}, action='{self.action_name}', table='{self.table_name}')>"
