"""
Session Service

Issues and verifies bearer JWTs and keeps the persisted token table that
records each login. The JWT and the token row share a user but are not
cryptographically linked.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.core.clock import utcnow
from security_api.core.config import settings
from security_api.core.security import create_access_token, decode_token, generate_token_value
from security_api.models.token import Token
from security_api.services.base import apply_changes

logger = logging.getLogger(__name__)

TOKEN_UPDATABLE_FIELDS = ("expires_at", "validated", "validated_at")


@dataclass(frozen=True)
class Claims:
    user_id: int
    username: str
    expires_at: datetime


@dataclass(frozen=True)
class IssuedSession:
    jwt: str
    expires_at: datetime
    token: Token


class SessionService:
    """
    Service for JWT sessions and persisted token records.

    Features:
    - JWT issuance, verification and refresh
    - Token lookup and validity checks
    - Sweeping of expired token rows
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============================================================
    # JWT
    # ============================================================

    async def issue(self, user_id: int, username: str) -> IssuedSession:
        """Sign a JWT for the user and persist a matching token row."""
        jwt_string, expires_at = create_access_token(user_id, username)
        token = await self.create_token(
            user_id=user_id,
            expires_at=expires_at,
            created_by=username,
        )
        return IssuedSession(jwt=jwt_string, expires_at=expires_at, token=token)

    @staticmethod
    def verify(jwt_string: str) -> Optional[Claims]:
        """Decode a JWT. Bad signature, malformed input and expiry all yield None."""
        payload = decode_token(jwt_string)
        if payload is None:
            return None
        return Claims(
            user_id=payload["userId"],
            username=payload["username"],
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    @staticmethod
    def refresh(claims: Claims) -> Tuple[str, datetime]:
        """Re-issue a JWT for an authenticated caller; credentials are not rechecked."""
        return create_access_token(claims.user_id, claims.username)

    # ============================================================
    # Token records
    # ============================================================

    async def create_token(
        self,
        user_id: int,
        expires_at: Optional[datetime] = None,
        created_by: str = "system",
        value: Optional[str] = None,
    ) -> Token:
        now = utcnow()
        token = Token(
            user_id=user_id,
            value=value or generate_token_value(),
            issued_at=now,
            expires_at=expires_at or now + settings.jwt_lifetime,
            validated=False,
            created_by=created_by,
        )
        self.db.add(token)
        await self.db.flush()
        return token

    async def get_token_by_id(self, token_id: int) -> Optional[Token]:
        result = await self.db.execute(select(Token).where(Token.id == token_id))
        return result.scalar_one_or_none()

    async def lookup_by_value(self, value: str) -> Optional[Token]:
        result = await self.db.execute(select(Token).where(Token.value == value))
        return result.scalar_one_or_none()

    async def get_tokens_by_user(self, user_id: int) -> List[Token]:
        """Newest expiry first."""
        result = await self.db.execute(
            select(Token).where(Token.user_id == user_id).order_by(Token.expires_at.desc())
        )
        return list(result.scalars().all())

    async def update_token(self, token_id: int, changes: Dict[str, Any], updated_by: str) -> Optional[Token]:
        token = await self.get_token_by_id(token_id)
        if not token:
            return None
        apply_changes(token, changes, TOKEN_UPDATABLE_FIELDS, updated_by=updated_by)
        await self.db.flush()
        return token

    async def delete_token(self, token_id: int) -> bool:
        result = await self.db.execute(delete(Token).where(Token.id == token_id))
        return result.rowcount > 0

    async def is_valid(self, value: str) -> bool:
        """True when the token exists and has not yet expired."""
        token = await self.lookup_by_value(value)
        return token is not None and token.is_valid_at()

    async def mark_validated(self, value: str, validated_by: str) -> Optional[Token]:
        """Stamp a live token as validated. Returns None for unknown or expired tokens."""
        token = await self.lookup_by_value(value)
        if token is None or not token.is_valid_at():
            return None
        now = utcnow()
        token.validated = True
        token.validated_at = now
        token.updated_at = now
        token.updated_by = validated_by
        await self.db.flush()
        return token

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete every token whose expiry is in the past.

        Returns:
            Number of tokens removed
        """
        result = await self.db.execute(
            delete(Token)
            .where(Token.expires_at < (now or utcnow()))
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
        if count:
            logger.info(f"Swept {count} expired tokens")
        return count
