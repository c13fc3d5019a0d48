"""
Role routes

Roles and their grants ("subs"). Reads need a bearer token, mutations need
the admin role.
"""
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.api.deps import RequestContext, get_current_user, get_request_context
from security_api.core.database import get_db
from security_api.core.exceptions import NotFound
from security_api.core.permissions import require_admin
from security_api.models.audit_record import AuditAction
from security_api.models.user import User
from security_api.schemas.catalog import (
    CapabilityFlagsUpdate,
    RoleCreate,
    RoleGrantCreate,
    RoleGrantResponse,
    RoleResponse,
    RoleUpdate,
)
from security_api.services.audit_service import AuditService
from security_api.services.base import snapshot
from security_api.services.role_service import CAPABILITY_FIELDS, RoleService

router = APIRouter()


# ============================================================
# Role CRUD Endpoints
# ============================================================

@router.get("", response_model=List[RoleResponse])
async def list_roles(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await RoleService(db).get_all_roles()


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    payload: RoleCreate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    role = await RoleService(db).create_role(payload.name, created_by=current_user.username)
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.ROLE_CREATED,
        table_name="roles",
        record_id=role.id,
        after={"name": role.name},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return role


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    role = await RoleService(db).get_role_by_id(role_id)
    if not role:
        raise NotFound("Role", role_id)
    return role


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    payload: RoleUpdate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    role_service = RoleService(db)
    role = await role_service.get_role_by_id(role_id)
    if not role:
        raise NotFound("Role", role_id)
    before = {"name": role.name}

    role = await role_service.update_role(
        role_id, payload.model_dump(exclude_unset=True), updated_by=current_user.username
    )
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.ROLE_UPDATED,
        table_name="roles",
        record_id=role_id,
        before=before,
        after={"name": role.name},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return role


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: int,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Soft delete. Memberships keep their reference to the role."""
    if not await RoleService(db).delete_role(role_id, deleted_by=current_user.username):
        raise NotFound("Role", role_id)

    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.ROLE_DELETED,
        table_name="roles",
        record_id=role_id,
        after={"deleted": True},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================
# Role Grant ("sub") Endpoints
# ============================================================

@router.get("/{role_id}/subs", response_model=List[RoleGrantResponse])
async def list_role_grants(
    role_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    role_service = RoleService(db)
    if not await role_service.get_role_by_id(role_id):
        raise NotFound("Role", role_id)
    return await role_service.get_role_grants(role_id)


@router.post("/{role_id}/subs", response_model=RoleGrantResponse, status_code=status.HTTP_201_CREATED)
async def add_role_grant(
    role_id: int,
    payload: RoleGrantCreate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    grant = await RoleService(db).add_role_grant(
        role_id,
        payload.action_id,
        payload.to_capabilities(),
        created_by=current_user.username,
    )
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.ROLE_GRANT_ADDED,
        table_name="role_grants",
        record_id=grant.id,
        after=snapshot(grant, ("role_id", "action_id") + CAPABILITY_FIELDS),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return grant


@router.patch("/{role_id}/subs/{grant_id}", response_model=RoleGrantResponse)
async def update_role_grant(
    role_id: int,
    grant_id: int,
    payload: CapabilityFlagsUpdate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    role_service = RoleService(db)
    grant = await role_service.get_role_grant(role_id, grant_id)
    if not grant:
        raise NotFound("Role grant", grant_id)
    before = snapshot(grant, CAPABILITY_FIELDS)

    grant = await role_service.update_role_grant(
        role_id, grant_id, payload.model_dump(exclude_unset=True), updated_by=current_user.username
    )
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.ROLE_GRANT_UPDATED,
        table_name="role_grants",
        record_id=grant_id,
        before=before,
        after=snapshot(grant, CAPABILITY_FIELDS),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return grant


@router.delete("/{role_id}/subs/{grant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_role_grant(
    role_id: int,
    grant_id: int,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    if not await RoleService(db).remove_role_grant(role_id, grant_id, removed_by=current_user.username):
        raise NotFound("Role grant", grant_id)

    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.ROLE_GRANT_REMOVED,
        table_name="role_grants",
        record_id=grant_id,
        after={"deleted": True},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
