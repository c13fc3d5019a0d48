"""
Role Service - grant catalog for roles and their permission matrix ("role-subs")
"""
import logging
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.core.clock import utcnow
from security_api.core.exceptions import Conflict, NotFound
from security_api.models.action import Action
from security_api.models.role import Role, SYSTEM_ROLES
from security_api.models.role_grant import RoleGrant
from security_api.services.base import apply_changes

logger = logging.getLogger(__name__)

CAPABILITY_FIELDS = ("can_select", "can_insert", "can_update", "can_delete")


@dataclass(frozen=True)
class Capabilities:
    can_select: bool = False
    can_insert: bool = False
    can_update: bool = False
    can_delete: bool = False

    @classmethod
    def of(cls, row: Any) -> "Capabilities":
        return cls(**{field: bool(getattr(row, field)) for field in CAPABILITY_FIELDS})

    def union(self, other: "Capabilities") -> "Capabilities":
        return Capabilities(
            **{field: getattr(self, field) or getattr(other, field) for field in CAPABILITY_FIELDS}
        )

    def allows(self, capability: str) -> bool:
        return bool(getattr(self, f"can_{capability}", False))

    def as_dict(self) -> Dict[str, bool]:
        return {field: getattr(self, field) for field in CAPABILITY_FIELDS}


class RoleService:
    """
    Service for managing roles and role grants.

    Deleted roles stay in the table (other rows reference them) and are
    excluded from every read.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============================================================
    # Roles
    # ============================================================

    async def get_all_roles(self) -> List[Role]:
        result = await self.db.execute(
            select(Role).where(Role.deleted.is_(False)).order_by(Role.name)
        )
        return list(result.scalars().all())

    async def get_role_by_id(self, role_id: int) -> Optional[Role]:
        """Get a live role by ID."""
        result = await self.db.execute(
            select(Role).where(Role.id == role_id, Role.deleted.is_(False))
        )
        return result.scalar_one_or_none()

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        result = await self.db.execute(
            select(Role).where(Role.name == name, Role.deleted.is_(False))
        )
        return result.scalars().first()

    async def create_role(self, name: str, created_by: str) -> Role:
        """
        Create a role.

        Raises:
            Conflict: If a live role already has this name
        """
        if await self.get_role_by_name(name):
            raise Conflict(f"Role '{name}' already exists")

        role = Role(name=name, created_by=created_by, deleted=False)
        self.db.add(role)
        await self.db.flush()
        return role

    async def update_role(self, role_id: int, changes: Dict[str, Any], updated_by: str) -> Optional[Role]:
        """
        Update a role.

        Returns:
            Updated role or None if not found
        """
        role = await self.get_role_by_id(role_id)
        if not role:
            return None

        name = changes.get("name")
        if name and name != role.name:
            existing = await self.get_role_by_name(name)
            if existing and existing.id != role_id:
                raise Conflict(f"Role '{name}' already exists")

        apply_changes(role, changes, ("name",), updated_by=updated_by)
        await self.db.flush()
        return role

    async def delete_role(self, role_id: int, deleted_by: str) -> bool:
        """
        Soft-delete a role. Role memberships referencing it are left untouched.

        Returns:
            True if deleted, False if no live role has this id
        """
        role = await self.get_role_by_id(role_id)
        if not role:
            return False

        role.deleted = True
        role.updated_by = deleted_by
        role.updated_at = utcnow()
        await self.db.flush()
        logger.info(f"Role {role_id} ('{role.name}') soft-deleted by {deleted_by}")
        return True

    async def seed_system_roles(self, created_by: str = "system") -> List[Role]:
        """Ensure every system role exists. Returns the roles that were created."""
        created = []
        for name in SYSTEM_ROLES:
            if not await self.get_role_by_name(name):
                created.append(await self.create_role(name, created_by=created_by))
        return created

    # ============================================================
    # Grants
    # ============================================================

    async def _require_role_and_action(self, role_id: int, action_id: int) -> None:
        if not await self.get_role_by_id(role_id):
            raise NotFound("Role", role_id)
        action = await self.db.get(Action, action_id)
        if not action:
            raise NotFound("Action", action_id)

    async def get_role_grants(self, role_id: int) -> List[RoleGrant]:
        result = await self.db.execute(
            select(RoleGrant)
            .where(RoleGrant.role_id == role_id, RoleGrant.deleted.is_(False))
            .order_by(RoleGrant.id)
        )
        return list(result.scalars().all())

    async def get_role_grant(self, role_id: int, grant_id: int) -> Optional[RoleGrant]:
        result = await self.db.execute(
            select(RoleGrant).where(
                RoleGrant.id == grant_id,
                RoleGrant.role_id == role_id,
                RoleGrant.deleted.is_(False),
            )
        )
        return result.scalar_one_or_none()

    async def add_role_grant(
        self,
        role_id: int,
        action_id: int,
        capabilities: Capabilities,
        created_by: str,
    ) -> RoleGrant:
        """
        Grant a role capabilities on an action.

        A previously removed grant for the same pair is revived with the new
        capabilities.

        Raises:
            NotFound: If the role or action does not exist
            Conflict: If a live grant already exists for the pair
        """
        await self._require_role_and_action(role_id, action_id)

        result = await self.db.execute(
            select(RoleGrant).where(
                RoleGrant.role_id == role_id,
                RoleGrant.action_id == action_id,
            )
        )
        grant = result.scalar_one_or_none()

        if grant is not None and not grant.deleted:
            raise Conflict(f"Role {role_id} already has a grant for action {action_id}")

        if grant is None:
            grant = RoleGrant(
                role_id=role_id,
                action_id=action_id,
                created_by=created_by,
                deleted=False,
                **capabilities.as_dict(),
            )
            self.db.add(grant)
        else:
            grant.deleted = False
            for field, value in capabilities.as_dict().items():
                setattr(grant, field, value)
            grant.updated_by = created_by
            grant.updated_at = utcnow()

        await self.db.flush()
        return grant

    async def update_role_grant(
        self,
        role_id: int,
        grant_id: int,
        changes: Dict[str, Any],
        updated_by: str,
    ) -> Optional[RoleGrant]:
        grant = await self.get_role_grant(role_id, grant_id)
        if not grant:
            return None
        apply_changes(grant, changes, CAPABILITY_FIELDS, updated_by=updated_by)
        await self.db.flush()
        return grant

    async def remove_role_grant(self, role_id: int, grant_id: int, removed_by: str) -> bool:
        grant = await self.get_role_grant(role_id, grant_id)
        if not grant:
            return False
        grant.deleted = True
        grant.updated_by = removed_by
        grant.updated_at = utcnow()
        await self.db.flush()
        return True

    async def effective_capabilities(self, role_id: int) -> List[Tuple[Action, Capabilities]]:
        """
        Expand a role into the actions it grants.

        A deleted role expands to nothing.
        """
        result = await self.db.execute(
            select(Action, RoleGrant)
            .join(RoleGrant, RoleGrant.action_id == Action.id)
            .join(Role, Role.id == RoleGrant.role_id)
            .where(
                RoleGrant.role_id == role_id,
                RoleGrant.deleted.is_(False),
                Role.deleted.is_(False),
            )
            .order_by(Action.id)
        )
        return [(action, Capabilities.of(grant)) for action, grant in result.all()]
