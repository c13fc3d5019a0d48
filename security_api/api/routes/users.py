"""
User routes

Reads need a bearer token. Users may edit their own profile and password;
everything else requires the admin role.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.api.deps import RequestContext, get_current_user, get_request_context
from security_api.api.routes.memberships import membership_to_response
from security_api.core.config import settings
from security_api.core.database import get_db
from security_api.core.exceptions import Forbidden, NotFound
from security_api.core.permissions import require_admin
from security_api.models.audit_record import AuditAction
from security_api.models.user import User, UserStatus
from security_api.schemas.membership import MembershipResponse
from security_api.schemas.user import (
    PasswordChange,
    UserCreate,
    UserListResponse,
    UserResponse,
    UserRolesResponse,
    UserUpdate,
)
from security_api.services.audit_service import AuditService
from security_api.services.membership_service import MembershipService
from security_api.services.user_service import UserService

router = APIRouter()


async def _ensure_self_or_admin(db: AsyncSession, current_user: User, user_id: int) -> bool:
    """Returns True when the caller is an admin. Raises Forbidden otherwise unless acting on self."""
    is_admin = settings.ADMIN_ROLE_NAME in await UserService(db).list_roles(current_user.id)
    if not is_admin and current_user.id != user_id:
        raise Forbidden("You may only modify your own account")
    return is_admin


@router.get("", response_model=UserListResponse)
async def list_users(
    search: Optional[str] = Query(None, max_length=100),
    user_status: Optional[UserStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    users, total = await UserService(db).list_users(
        search=search, status=user_status, limit=limit, offset=offset
    )
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    user_service = UserService(db)
    user = await user_service.create_user(
        username=user_data.username,
        password=user_data.password,
        display_name=user_data.display_name,
        email=user_data.email,
        phone=user_data.phone,
        created_by=current_user.username,
    )
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.USER_REGISTERED,
        table_name="users",
        record_id=user.id,
        after=user_service.format_user_for_display(user),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return user


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await UserService(db).get_user_by_id(user_id)
    if not user:
        raise NotFound("User", user_id)
    return user


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    changes: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Partial update: omitted fields keep their value. Only admins may change status."""
    is_admin = await _ensure_self_or_admin(db, current_user, user_id)
    if changes.status is not None and not is_admin:
        raise Forbidden("Only administrators may change account status")

    user_service = UserService(db)
    user = await user_service.get_user_by_id(user_id)
    if not user:
        raise NotFound("User", user_id)
    before = user_service.format_user_for_display(user)

    user = await user_service.update_user(
        user_id, changes.model_dump(exclude_unset=True), updated_by=current_user.username
    )
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.USER_UPDATED,
        table_name="users",
        record_id=user_id,
        before=before,
        after=user_service.format_user_for_display(user),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return user


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_user(
    user_id: int,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Block the account. Users are never physically removed."""
    user_service = UserService(db)
    user = await user_service.deactivate_user(user_id, updated_by=current_user.username)
    if not user:
        raise NotFound("User", user_id)

    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.USER_DEACTIVATED,
        table_name="users",
        record_id=user_id,
        after={"status": user.status.value},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{user_id}/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    user_id: int,
    payload: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    await _ensure_self_or_admin(db, current_user, user_id)
    await UserService(db).set_password(user_id, payload.password, updated_by=current_user.username)

    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.USER_PASSWORD_CHANGED,
        table_name="users",
        record_id=user_id,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{user_id}/roles", response_model=UserRolesResponse)
async def get_user_roles(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_service = UserService(db)
    if not await user_service.get_user_by_id(user_id):
        raise NotFound("User", user_id)
    roles = await user_service.list_roles(user_id)
    return UserRolesResponse(user_id=user_id, roles=sorted(roles))


@router.get("/{user_id}/memberships", response_model=List[MembershipResponse])
async def get_user_memberships(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    memberships = await MembershipService(db).get_by_user(user_id)
    return [membership_to_response(m) for m in memberships]
