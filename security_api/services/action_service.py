"""
Action Service - catalog of permissible operations and their direct
assignment to memberships
"""
import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager

from security_api.core.exceptions import Conflict, NotFound
from security_api.models.action import Action
from security_api.models.membership import ActionMembership, Membership
from security_api.services.base import apply_changes
from security_api.services.role_service import Capabilities

logger = logging.getLogger(__name__)

ACTION_UPDATABLE_FIELDS = ("name", "type_code", "ui_hint")


class ActionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_all_actions(self) -> List[Action]:
        result = await self.db.execute(select(Action).order_by(Action.name))
        return list(result.scalars().all())

    async def get_action_by_id(self, action_id: int) -> Optional[Action]:
        result = await self.db.execute(select(Action).where(Action.id == action_id))
        return result.scalar_one_or_none()

    async def get_actions_by_type(self, type_code: str) -> List[Action]:
        result = await self.db.execute(
            select(Action).where(Action.type_code == type_code).order_by(Action.name)
        )
        return list(result.scalars().all())

    async def create_action(
        self,
        name: str,
        type_code: str,
        created_by: str,
        ui_hint: Optional[str] = None,
    ) -> Action:
        action = Action(name=name, type_code=type_code, ui_hint=ui_hint, created_by=created_by)
        self.db.add(action)
        await self.db.flush()
        return action

    async def update_action(self, action_id: int, changes: Dict[str, Any], updated_by: str) -> Optional[Action]:
        action = await self.get_action_by_id(action_id)
        if not action:
            return None
        apply_changes(action, changes, ACTION_UPDATABLE_FIELDS, updated_by=updated_by)
        await self.db.flush()
        return action

    async def delete_action(self, action_id: int) -> bool:
        """
        Delete an action.

        Fails with an integrity error (reported as a conflict) while grants or
        memberships still reference it.
        """
        action = await self.get_action_by_id(action_id)
        if not action:
            return False
        await self.db.delete(action)
        await self.db.flush()
        return True

    # ============================================================
    # Membership assignment
    # ============================================================

    async def get_actions_by_membership(self, membership_id: int) -> List[ActionMembership]:
        """Direct action grants of a membership, with their actions loaded."""
        result = await self.db.execute(
            select(ActionMembership)
            .join(ActionMembership.action)
            .options(contains_eager(ActionMembership.action))
            .where(ActionMembership.membership_id == membership_id)
            .order_by(Action.name)
        )
        return list(result.scalars().all())

    async def add_action_to_membership(
        self,
        membership_id: int,
        action_id: int,
        capabilities: Capabilities,
        created_by: str,
    ) -> ActionMembership:
        """
        Grant an action directly under a membership.

        Raises:
            NotFound: If the membership or action does not exist
            Conflict: If the action is already granted to the membership
        """
        if not await self.db.get(Membership, membership_id):
            raise NotFound("Membership", membership_id)
        action = await self.get_action_by_id(action_id)
        if not action:
            raise NotFound("Action", action_id)

        existing = await self.db.get(ActionMembership, (membership_id, action_id))
        if existing:
            raise Conflict(f"Action {action_id} is already granted to membership {membership_id}")

        link = ActionMembership(
            membership_id=membership_id,
            action_id=action_id,
            action=action,
            created_by=created_by,
            **capabilities.as_dict(),
        )
        self.db.add(link)
        await self.db.flush()
        return link

    async def remove_action_from_membership(self, membership_id: int, action_id: int) -> bool:
        result = await self.db.execute(
            delete(ActionMembership).where(
                ActionMembership.membership_id == membership_id,
                ActionMembership.action_id == action_id,
            )
        )
        return result.rowcount > 0
