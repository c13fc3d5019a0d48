"""
Action routes

Action catalog plus direct assignment of actions to memberships.
"""
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.api.deps import RequestContext, get_current_user, get_request_context
from security_api.core.database import get_db
from security_api.core.exceptions import NotFound
from security_api.core.permissions import require_admin
from security_api.models.audit_record import AuditAction
from security_api.models.membership import ActionMembership
from security_api.models.user import User
from security_api.schemas.catalog import (
    ActionCreate,
    ActionMembershipCreate,
    ActionMembershipResponse,
    ActionResponse,
    ActionUpdate,
)
from security_api.services.action_service import ACTION_UPDATABLE_FIELDS, ActionService
from security_api.services.audit_service import AuditService
from security_api.services.base import snapshot

router = APIRouter()


def link_to_response(link: ActionMembership) -> ActionMembershipResponse:
    return ActionMembershipResponse(
        membership_id=link.membership_id,
        action_id=link.action_id,
        action_name=link.action.name,
        type_code=link.action.type_code,
        can_select=link.can_select,
        can_insert=link.can_insert,
        can_update=link.can_update,
        can_delete=link.can_delete,
        created_by=link.created_by,
        created_at=link.created_at,
    )


@router.get("", response_model=List[ActionResponse])
async def list_actions(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await ActionService(db).get_all_actions()


@router.post("", response_model=ActionResponse, status_code=status.HTTP_201_CREATED)
async def create_action(
    payload: ActionCreate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    action = await ActionService(db).create_action(
        name=payload.name,
        type_code=payload.type_code,
        ui_hint=payload.ui_hint,
        created_by=current_user.username,
    )
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.ACTION_CREATED,
        table_name="actions",
        record_id=action.id,
        after=snapshot(action, ACTION_UPDATABLE_FIELDS),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return action


@router.get("/type/{type_code}", response_model=List[ActionResponse])
async def get_actions_by_type(
    type_code: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await ActionService(db).get_actions_by_type(type_code)


@router.get("/membership/{membership_id}", response_model=List[ActionMembershipResponse])
async def get_actions_by_membership(
    membership_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    links = await ActionService(db).get_actions_by_membership(membership_id)
    return [link_to_response(link) for link in links]


@router.post("/membership", response_model=ActionMembershipResponse, status_code=status.HTTP_201_CREATED)
async def add_action_to_membership(
    payload: ActionMembershipCreate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    link = await ActionService(db).add_action_to_membership(
        payload.membership_id,
        payload.action_id,
        payload.to_capabilities(),
        created_by=current_user.username,
    )
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.MEMBERSHIP_ACTION_ADDED,
        table_name="action_memberships",
        record_id=f"{payload.membership_id}:{payload.action_id}",
        after=payload.model_dump(),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return link_to_response(link)


@router.delete("/membership/{membership_id}/{action_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_action_from_membership(
    membership_id: int,
    action_id: int,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    if not await ActionService(db).remove_action_from_membership(membership_id, action_id):
        raise NotFound("Action membership", f"{membership_id}:{action_id}")

    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.MEMBERSHIP_ACTION_REMOVED,
        table_name="action_memberships",
        record_id=f"{membership_id}:{action_id}",
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{action_id}", response_model=ActionResponse)
async def get_action(
    action_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    action = await ActionService(db).get_action_by_id(action_id)
    if not action:
        raise NotFound("Action", action_id)
    return action


@router.put("/{action_id}", response_model=ActionResponse)
async def update_action(
    action_id: int,
    payload: ActionUpdate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    action_service = ActionService(db)
    action = await action_service.get_action_by_id(action_id)
    if not action:
        raise NotFound("Action", action_id)
    before = snapshot(action, ACTION_UPDATABLE_FIELDS)

    action = await action_service.update_action(
        action_id, payload.model_dump(exclude_unset=True), updated_by=current_user.username
    )
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.ACTION_UPDATED,
        table_name="actions",
        record_id=action_id,
        before=before,
        after=snapshot(action, ACTION_UPDATABLE_FIELDS),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return action


@router.delete("/{action_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_action(
    action_id: int,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    action_service = ActionService(db)
    action = await action_service.get_action_by_id(action_id)
    if not action:
        raise NotFound("Action", action_id)
    before = snapshot(action, ACTION_UPDATABLE_FIELDS)

    await action_service.delete_action(action_id)
    await AuditService(db).record(
        user_id=current_user.id,
        action_name=AuditAction.ACTION_DELETED,
        table_name="actions",
        record_id=action_id,
        before=before,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
