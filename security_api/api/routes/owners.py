"""
Owner routes
"""
from typing import List

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.api.deps import RequestContext, get_current_user, get_request_context
from security_api.core.database import get_db
from security_api.core.exceptions import NotFound
from security_api.core.permissions import require_admin
from security_api.models.audit_record import AuditAction
from security_api.models.user import User
from security_api.schemas.owner import OwnerCreate, OwnerResponse, OwnerUpdate
from security_api.services.audit_service import AuditService
from security_api.services.base import snapshot
from security_api.services.owner_service import OWNER_FIELDS, OwnerService

router = APIRouter()


@router.get("", response_model=List[OwnerResponse])
async def list_owners(
    include_inactive: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await OwnerService(db).get_all_owners(include_inactive=include_inactive)


@router.get("/search", response_model=List[OwnerResponse])
async def search_owners(
    name: str = Query(..., min_length=1, max_length=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await OwnerService(db).search_owners(name)


@router.get("/membership/{membership_id}", response_model=List[OwnerResponse])
async def get_owners_by_membership(
    membership_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await OwnerService(db).get_owners_by_membership(membership_id)


@router.post("", response_model=OwnerResponse, status_code=status.HTTP_201_CREATED)
async def create_owner(
    payload: OwnerCreate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    owner = await OwnerService(db).create_owner(payload.model_dump(), created_by=current_user.username)
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.OWNER_CREATED,
        table_name="owners",
        record_id=owner.id,
        after=snapshot(owner, OWNER_FIELDS),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return owner


@router.get("/{owner_id}", response_model=OwnerResponse)
async def get_owner(
    owner_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    owner = await OwnerService(db).get_owner_by_id(owner_id)
    if not owner:
        raise NotFound("Owner", owner_id)
    return owner


@router.put("/{owner_id}", response_model=OwnerResponse)
async def update_owner(
    owner_id: int,
    payload: OwnerUpdate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    owner_service = OwnerService(db)
    owner = await owner_service.get_owner_by_id(owner_id)
    if not owner:
        raise NotFound("Owner", owner_id)
    before = snapshot(owner, OWNER_FIELDS + ("status",))

    owner = await owner_service.update_owner(
        owner_id, payload.model_dump(exclude_unset=True), updated_by=current_user.username
    )
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.OWNER_UPDATED,
        table_name="owners",
        record_id=owner_id,
        before=before,
        after=snapshot(owner, OWNER_FIELDS + ("status",)),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return owner


@router.delete("/{owner_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_owner(
    owner_id: int,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Soft delete: the owner is marked inactive and drops out of searches."""
    owner_service = OwnerService(db)
    if not await owner_service.get_owner_by_id(owner_id):
        raise NotFound("Owner", owner_id)

    if await owner_service.deactivate_owner(owner_id, updated_by=current_user.username):
        await AuditService(db).record(
            user_id=current_user.id,
            action_name=AuditAction.OWNER_DEACTIVATED,
            table_name="owners",
            record_id=owner_id,
            after={"status": "inactive"},
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
