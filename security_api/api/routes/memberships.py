"""
Membership routes

Deleting a membership decommissions it; the row and its history stay.
"""
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.api.deps import RequestContext, get_current_user, get_request_context
from security_api.core.database import get_db
from security_api.core.exceptions import NotFound
from security_api.core.permissions import require_admin
from security_api.models.audit_record import AuditAction
from security_api.models.membership import Membership
from security_api.models.user import User
from security_api.schemas.catalog import RoleResponse
from security_api.schemas.membership import (
    EffectivePermissionResponse,
    MembershipCreate,
    MembershipResponse,
    MembershipRoleAdd,
    MembershipUpdate,
)
from security_api.services.audit_service import AuditService
from security_api.services.base import snapshot
from security_api.services.membership_service import MembershipService, is_active

router = APIRouter()

MEMBERSHIP_AUDIT_FIELDS = ("user_id", "owner_id", "kind", "valid_until", "status")


def membership_to_response(membership: Membership) -> MembershipResponse:
    return MembershipResponse(
        id=membership.id,
        user_id=membership.user_id,
        owner_id=membership.owner_id,
        kind=membership.kind.value,
        valid_until=membership.valid_until,
        status=membership.status,
        is_active=is_active(membership),
        created_by=membership.created_by,
        created_at=membership.created_at,
        updated_by=membership.updated_by,
        updated_at=membership.updated_at,
    )


@router.get("", response_model=List[MembershipResponse])
async def list_memberships(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [membership_to_response(m) for m in await MembershipService(db).list_memberships()]


@router.get("/active", response_model=List[MembershipResponse])
async def list_active_memberships(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [membership_to_response(m) for m in await MembershipService(db).list_active()]


@router.get("/user/{user_id}", response_model=List[MembershipResponse])
async def get_memberships_by_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [membership_to_response(m) for m in await MembershipService(db).get_by_user(user_id)]


@router.get("/owner/{owner_id}", response_model=List[MembershipResponse])
async def get_memberships_by_owner(
    owner_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [membership_to_response(m) for m in await MembershipService(db).get_by_owner(owner_id)]


@router.post("", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
async def create_membership(
    payload: MembershipCreate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Create a membership with its initial roles in one transaction."""
    membership = await MembershipService(db).create(
        user_id=payload.user_id,
        owner_id=payload.owner_id,
        kind=payload.kind,
        valid_until=payload.valid_until,
        role_ids=payload.role_ids,
        created_by=current_user.username,
    )
    after = snapshot(membership, MEMBERSHIP_AUDIT_FIELDS)
    after["role_ids"] = payload.role_ids
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.MEMBERSHIP_CREATED,
        table_name="memberships",
        record_id=membership.id,
        after=after,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return membership_to_response(membership)


@router.get("/{membership_id}", response_model=MembershipResponse)
async def get_membership(
    membership_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    membership = await MembershipService(db).get_by_id(membership_id)
    if not membership:
        raise NotFound("Membership", membership_id)
    return membership_to_response(membership)


@router.put("/{membership_id}", response_model=MembershipResponse)
async def update_membership(
    membership_id: int,
    payload: MembershipUpdate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Send only the fields to change; the rest keep their stored value."""
    membership_service = MembershipService(db)
    membership = await membership_service.get_by_id(membership_id)
    if not membership:
        raise NotFound("Membership", membership_id)
    before = snapshot(membership, MEMBERSHIP_AUDIT_FIELDS)

    membership = await membership_service.update(
        membership_id, payload.model_dump(exclude_unset=True), updated_by=current_user.username
    )
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.MEMBERSHIP_UPDATED,
        table_name="memberships",
        record_id=membership_id,
        before=before,
        after=snapshot(membership, MEMBERSHIP_AUDIT_FIELDS),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return membership_to_response(membership)


@router.delete("/{membership_id}", status_code=status.HTTP_204_NO_CONTENT)
async def decommission_membership(
    membership_id: int,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Decommission. Repeating the call on a decommissioned membership is a no-op."""
    changed = await MembershipService(db).decommission(membership_id, updated_by=current_user.username)
    if changed:
        await AuditService(db).record(
            user_id=current_user.id,
            action_name=AuditAction.MEMBERSHIP_DECOMMISSIONED,
            table_name="memberships",
            record_id=membership_id,
            after={"status": "decommissioned"},
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================
# Roles under a membership
# ============================================================

@router.get("/{membership_id}/roles", response_model=List[RoleResponse])
async def get_membership_roles(
    membership_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    membership_service = MembershipService(db)
    if not await membership_service.get_by_id(membership_id):
        raise NotFound("Membership", membership_id)
    return await membership_service.get_roles(membership_id)


@router.post("/{membership_id}/roles", status_code=status.HTTP_201_CREATED)
async def add_membership_role(
    membership_id: int,
    payload: MembershipRoleAdd,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    await MembershipService(db).add_role(membership_id, payload.role_id, created_by=current_user.username)
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.MEMBERSHIP_ROLE_ADDED,
        table_name="role_memberships",
        record_id=f"{membership_id}:{payload.role_id}",
        after={"membership_id": membership_id, "role_id": payload.role_id},
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return {"membership_id": membership_id, "role_id": payload.role_id}


@router.delete("/{membership_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_membership_role(
    membership_id: int,
    role_id: int,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    if not await MembershipService(db).remove_role(membership_id, role_id):
        raise NotFound("Role membership", f"{membership_id}:{role_id}")

    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.MEMBERSHIP_ROLE_REMOVED,
        table_name="role_memberships",
        record_id=f"{membership_id}:{role_id}",
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{membership_id}/permissions", response_model=List[EffectivePermissionResponse])
async def get_effective_permissions(
    membership_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    permissions = await MembershipService(db).effective_permissions(membership_id)
    return [
        EffectivePermissionResponse(
            action_id=p.action_id,
            action_name=p.action_name,
            type_code=p.type_code,
            **p.capabilities.as_dict(),
        )
        for p in permissions
    ]
