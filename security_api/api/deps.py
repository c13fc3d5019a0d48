"""
API dependencies
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.core.database import get_db
from security_api.core.exceptions import Unauthorized
from security_api.core.rate_limit import get_client_ip, get_user_agent
from security_api.models.user import User
from security_api.services.session_service import Claims, SessionService
from security_api.services.user_service import UserService

# Missing headers are reported through Unauthorized, not FastAPI's default 403
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class RequestContext:
    ip_address: Optional[str]
    user_agent: Optional[str]


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(ip_address=get_client_ip(request), user_agent=get_user_agent(request) or None)


async def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Claims:
    """Verified JWT claims of the caller"""
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Missing bearer token")

    claims = SessionService.verify(credentials.credentials)
    if claims is None:
        raise Unauthorized("Invalid or expired token")
    return claims


async def get_current_user(
    claims: Claims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get current authenticated user"""
    user = await UserService(db).get_user_by_id(claims.user_id)

    if not user:
        raise Unauthorized("Invalid or expired token")

    if not user.is_active:
        raise Unauthorized("Account is disabled")

    return user
