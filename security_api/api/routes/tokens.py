"""
Token routes (admin only)

Persisted session records. DELETE /expired sweeps every expired token.
"""
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.api.deps import RequestContext, get_request_context
from security_api.core.database import get_db
from security_api.core.exceptions import NotFound
from security_api.core.permissions import require_admin
from security_api.models.audit_record import AuditAction
from security_api.models.user import User
from security_api.schemas.token import (
    SweepResponse,
    TokenCreate,
    TokenResponse,
    TokenUpdate,
    TokenValidationResponse,
)
from security_api.services.audit_service import AuditService
from security_api.services.base import snapshot
from security_api.services.session_service import TOKEN_UPDATABLE_FIELDS, SessionService
from security_api.services.user_service import UserService

router = APIRouter()


@router.post("", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def create_token(
    payload: TokenCreate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    if not await UserService(db).get_user_by_id(payload.user_id):
        raise NotFound("User", payload.user_id)

    token = await SessionService(db).create_token(
        user_id=payload.user_id,
        expires_at=payload.expires_at,
        value=payload.value,
        created_by=current_user.username,
    )
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.TOKEN_CREATED,
        table_name="tokens",
        record_id=token.id,
        after={"user_id": token.user_id, "expires_at": token.expires_at},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return token


@router.delete("/expired", response_model=SweepResponse)
async def sweep_expired_tokens(
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    deleted = await SessionService(db).sweep_expired()
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.TOKENS_SWEPT,
        table_name="tokens",
        after={"deleted": deleted},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return SweepResponse(deleted=deleted)


@router.get("/validate/{value}", response_model=TokenValidationResponse)
async def validate_token(
    value: str,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    """A live token is stamped as validated by the caller."""
    token = await SessionService(db).mark_validated(value, validated_by=current_user.username)
    return TokenValidationResponse(value=value, valid=token is not None)


@router.get("/value/{value}", response_model=TokenResponse)
async def get_token_by_value(
    value: str,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    token = await SessionService(db).lookup_by_value(value)
    if not token:
        raise NotFound("Token")
    return token


@router.get("/user/{user_id}", response_model=List[TokenResponse])
async def get_tokens_by_user(
    user_id: int,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    return await SessionService(db).get_tokens_by_user(user_id)


@router.get("/{token_id}", response_model=TokenResponse)
async def get_token(
    token_id: int,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    token = await SessionService(db).get_token_by_id(token_id)
    if not token:
        raise NotFound("Token", token_id)
    return token


@router.put("/{token_id}", response_model=TokenResponse)
async def update_token(
    token_id: int,
    payload: TokenUpdate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    session_service = SessionService(db)
    token = await session_service.get_token_by_id(token_id)
    if not token:
        raise NotFound("Token", token_id)
    before = snapshot(token, TOKEN_UPDATABLE_FIELDS)

    token = await session_service.update_token(
        token_id, payload.model_dump(exclude_unset=True), updated_by=current_user.username
    )
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.TOKEN_UPDATED,
        table_name="tokens",
        record_id=token_id,
        before=before,
        after=snapshot(token, TOKEN_UPDATABLE_FIELDS),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return token


@router.delete("/{token_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_token(
    token_id: int,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    if not await SessionService(db).delete_token(token_id):
        raise NotFound("Token", token_id)

    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.TOKEN_DELETED,
        table_name="tokens",
        record_id=token_id,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
