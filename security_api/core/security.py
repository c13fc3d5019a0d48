"""
Security utilities - password hashing, JWT tokens

Claims carried by every access token: userId, username, exp, iat.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import bcrypt
from jose import JWTError, jwt

from security_api.core.config import settings


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8")
        )
    except ValueError:
        # Malformed stored hash
        return False


def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt()
    ).decode("utf-8")


def create_access_token(
    user_id: int,
    username: str,
    expires_delta: Optional[timedelta] = None,
) -> Tuple[str, datetime]:
    """Create JWT access token. Returns the encoded token and its expiry."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or settings.jwt_lifetime)
    to_encode = {
        "userId": user_id,
        "username": username,
        "exp": expire,
        "iat": now,
    }
    token = jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token, expire


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate JWT token. Any failure yields None."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        return None

    if not isinstance(payload.get("userId"), int) or not isinstance(payload.get("username"), str):
        return None
    return payload


def generate_token_value() -> str:
    """Opaque value for a persisted session token."""
    return secrets.token_urlsafe(32)
