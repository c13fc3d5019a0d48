"""
Authentication routes

Login and registration are rate limited. Credential failures share one
message so callers cannot tell an unknown username from a wrong password.
"""
import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.api.deps import (
    RequestContext,
    get_current_claims,
    get_current_user,
    get_request_context,
)
from security_api.core.config import settings
from security_api.core.database import get_db
from security_api.core.exceptions import Unauthorized
from security_api.core.permissions import PermissionChecker
from security_api.core.rate_limit import limiter
from security_api.models.audit_record import AuditAction
from security_api.models.user import User
from security_api.schemas.auth import (
    AuthorizeRequest,
    AuthorizeResponse,
    LoginRequest,
    LoginResponse,
    RefreshResponse,
)
from security_api.schemas.user import UserCreate, UserResponse
from security_api.services.audit_service import AuditService
from security_api.services.session_service import Claims, SessionService
from security_api.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_CREDENTIALS = "Invalid credentials"


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_AUTH)
async def register(
    request: Request,
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Register a new user. The response never includes the password hash."""
    user_service = UserService(db)
    user = await user_service.create_user(
        username=user_data.username,
        password=user_data.password,
        display_name=user_data.display_name,
        email=user_data.email,
        phone=user_data.phone,
    )

    await AuditService(db).record(
        user_id=user.id,
        action_name=AuditAction.USER_REGISTERED,
        table_name="users",
        record_id=user.id,
        after=user_service.format_user_for_display(user),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return user


@router.post("/login", response_model=LoginResponse)
@limiter.limit(settings.RATE_LIMIT_AUTH)
async def login(
    request: Request,
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Exchange a username and password for a bearer JWT."""
    user_service = UserService(db)
    user = await user_service.verify_credentials(credentials.username, credentials.password)

    if user is None or not user.is_active:
        logger.info(f"Failed login from {ctx.ip_address}")
        raise Unauthorized(INVALID_CREDENTIALS)

    await user_service.touch_last_access(user.id)

    session = await SessionService(db).issue(user.id, user.username)

    await AuditService(db).record(
        user_id=user.id,
        action_name=AuditAction.USER_LOGIN,
        table_name="tokens",
        record_id=session.token.id,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )

    return LoginResponse(
        token=session.jwt,
        expires_at=session.expires_at,
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_token(
    claims: Claims = Depends(get_current_claims),
    current_user: User = Depends(get_current_user),
):
    """Extend the session of an authenticated caller without rechecking credentials."""
    token, expires_at = SessionService.refresh(claims)
    return RefreshResponse(token=token, expires_at=expires_at)


@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize(
    check: AuthorizeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Check whether the caller may perform an action within an owner."""
    checker = PermissionChecker(db, current_user.id)
    allowed = await checker.can(check.owner_id, check.action, check.capability)
    return AuthorizeResponse(
        allowed=allowed,
        owner_id=check.owner_id,
        action=check.action,
        capability=check.capability,
    )
