"""
Membership Service - binds users to owners and computes what they may do

A membership is active while it is not decommissioned and its valid_until is
either unset or not yet passed. "Expired" is never stored; every read that
cares about activity evaluates the predicate at query time.

Effective permissions of a membership are the union of its direct action
grants and the grants of each live role assigned to it. When the same action
arrives from several sources the capability flags are OR-ed together, so the
most permissive combination wins and each action appears once.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable, Union

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.core.clock import utcnow
from security_api.core.exceptions import Conflict, NotFound, ValidationError
from security_api.models.membership import (
    ActionMembership,
    Membership,
    MembershipKind,
    MembershipStatus,
    RoleMembership,
    active_membership_clause,
)
from security_api.models.owner import Owner
from security_api.models.role import Role
from security_api.models.user import User
from security_api.services.action_service import ActionService
from security_api.services.base import apply_changes
from security_api.services.role_service import Capabilities, RoleService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectivePermission:
    action_id: int
    action_name: str
    type_code: str
    capabilities: Capabilities


def parse_kind(kind: Union[str, MembershipKind]) -> MembershipKind:
    """
    Coerce a membership kind.

    Raises:
        ValidationError: If the kind is not one of the recognised values
    """
    if isinstance(kind, MembershipKind):
        return kind
    try:
        return MembershipKind(str(kind).strip().lower())
    except ValueError:
        allowed = ", ".join(k.value for k in MembershipKind)
        raise ValidationError(
            f"Invalid membership kind '{kind}'. Expected one of: {allowed}",
            details={"field": "kind"},
        )


def is_active(membership: Membership, now: Optional[datetime] = None) -> bool:
    """Pure activity predicate; see module docstring."""
    return membership.is_active_at(now)


class MembershipService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ============================================================
    # Reads
    # ============================================================

    async def get_by_id(self, membership_id: int) -> Optional[Membership]:
        result = await self.db.execute(select(Membership).where(Membership.id == membership_id))
        return result.scalar_one_or_none()

    async def _require(self, membership_id: int) -> Membership:
        membership = await self.get_by_id(membership_id)
        if not membership:
            raise NotFound("Membership", membership_id)
        return membership

    async def list_memberships(self) -> List[Membership]:
        result = await self.db.execute(select(Membership).order_by(Membership.id))
        return list(result.scalars().all())

    async def list_active(self, now: Optional[datetime] = None) -> List[Membership]:
        result = await self.db.execute(
            select(Membership).where(active_membership_clause(now)).order_by(Membership.id)
        )
        return list(result.scalars().all())

    async def get_by_user(self, user_id: int) -> List[Membership]:
        result = await self.db.execute(
            select(Membership).where(Membership.user_id == user_id).order_by(Membership.id)
        )
        return list(result.scalars().all())

    async def get_by_owner(self, owner_id: int) -> List[Membership]:
        result = await self.db.execute(
            select(Membership).where(Membership.owner_id == owner_id).order_by(Membership.id)
        )
        return list(result.scalars().all())

    async def get_active_for_user(
        self,
        user_id: int,
        owner_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[Membership]:
        query = (
            select(Membership)
            .where(Membership.user_id == user_id)
            .where(active_membership_clause(now))
        )
        if owner_id is not None:
            query = query.where(Membership.owner_id == owner_id)
        result = await self.db.execute(query.order_by(Membership.id))
        return list(result.scalars().all())

    # ============================================================
    # Lifecycle
    # ============================================================

    async def create(
        self,
        user_id: int,
        owner_id: int,
        kind: Union[str, MembershipKind],
        created_by: str,
        valid_until: Optional[datetime] = None,
        role_ids: Iterable[int] = (),
    ) -> Membership:
        """
        Create a membership and, optionally, its initial roles.

        The identifier comes from the insert itself; the membership and its
        roles are written in the caller's transaction.

        Raises:
            ValidationError: If kind is not recognised
            NotFound: If the user, owner or any initial role does not exist
        """
        membership_kind = parse_kind(kind)

        if not await self.db.get(User, user_id):
            raise NotFound("User", user_id)
        if not await self.db.get(Owner, owner_id):
            raise NotFound("Owner", owner_id)

        membership = Membership(
            user_id=user_id,
            owner_id=owner_id,
            kind=membership_kind,
            valid_until=valid_until,
            status=MembershipStatus.ACTIVE,
            created_by=created_by,
        )
        self.db.add(membership)
        await self.db.flush()

        for role_id in dict.fromkeys(role_ids):
            await self.add_role(membership.id, role_id, created_by)

        logger.info(
            f"Membership {membership.id} created: user={user_id} owner={owner_id} kind={membership_kind.value}"
        )
        return membership

    async def update(
        self,
        membership_id: int,
        changes: Dict[str, Any],
        updated_by: str,
    ) -> Optional[Membership]:
        """
        Partial update. Keys that are absent or None keep their stored value.

        Returns:
            Updated membership or None if not found
        """
        membership = await self.get_by_id(membership_id)
        if not membership:
            return None

        changes = dict(changes)
        if changes.get("kind") is not None:
            changes["kind"] = parse_kind(changes["kind"])
        if changes.get("user_id") is not None and not await self.db.get(User, changes["user_id"]):
            raise NotFound("User", changes["user_id"])
        if changes.get("owner_id") is not None and not await self.db.get(Owner, changes["owner_id"]):
            raise NotFound("Owner", changes["owner_id"])

        apply_changes(
            membership,
            changes,
            ("user_id", "owner_id", "kind", "valid_until"),
            updated_by=updated_by,
        )
        await self.db.flush()
        return membership

    async def decommission(self, membership_id: int, updated_by: str) -> bool:
        """
        Soft-delete a membership. valid_until is left as it was.

        Returns:
            True if the status changed, False if it was already decommissioned

        Raises:
            NotFound: If the membership does not exist
        """
        membership = await self._require(membership_id)
        if membership.status == MembershipStatus.DECOMMISSIONED:
            return False

        membership.status = MembershipStatus.DECOMMISSIONED
        membership.updated_by = updated_by
        membership.updated_at = utcnow()
        await self.db.flush()
        logger.info(f"Membership {membership_id} decommissioned by {updated_by}")
        return True

    # ============================================================
    # Roles under a membership
    # ============================================================

    async def get_roles(self, membership_id: int) -> List[Role]:
        """Live roles assigned to the membership."""
        result = await self.db.execute(
            select(Role)
            .join(RoleMembership, RoleMembership.role_id == Role.id)
            .where(RoleMembership.membership_id == membership_id)
            .where(Role.deleted.is_(False))
            .order_by(Role.name)
        )
        return list(result.scalars().all())

    async def add_role(self, membership_id: int, role_id: int, created_by: str) -> RoleMembership:
        """
        Raises:
            NotFound: If the membership or role does not exist
            Conflict: If the role is already assigned
        """
        await self._require(membership_id)
        if not await RoleService(self.db).get_role_by_id(role_id):
            raise NotFound("Role", role_id)

        if await self.db.get(RoleMembership, (membership_id, role_id)):
            raise Conflict(f"Role {role_id} is already assigned to membership {membership_id}")

        link = RoleMembership(membership_id=membership_id, role_id=role_id, created_by=created_by)
        self.db.add(link)
        await self.db.flush()
        return link

    async def remove_role(self, membership_id: int, role_id: int) -> bool:
        result = await self.db.execute(
            delete(RoleMembership).where(
                RoleMembership.membership_id == membership_id,
                RoleMembership.role_id == role_id,
            )
        )
        return result.rowcount > 0

    # ============================================================
    # Permissions
    # ============================================================

    async def effective_permissions(self, membership_id: int) -> List[EffectivePermission]:
        """
        Union of direct action grants and role-derived grants, one entry per
        action, flags OR-ed across sources.

        Raises:
            NotFound: If the membership does not exist
        """
        await self._require(membership_id)

        merged: Dict[int, EffectivePermission] = {}

        def merge(action, capabilities: Capabilities) -> None:
            current = merged.get(action.id)
            if current is not None:
                capabilities = current.capabilities.union(capabilities)
            merged[action.id] = EffectivePermission(
                action_id=action.id,
                action_name=action.name,
                type_code=action.type_code,
                capabilities=capabilities,
            )

        for link in await ActionService(self.db).get_actions_by_membership(membership_id):
            merge(link.action, Capabilities.of(link))

        role_service = RoleService(self.db)
        for role in await self.get_roles(membership_id):
            for action, capabilities in await role_service.effective_capabilities(role.id):
                merge(action, capabilities)

        return sorted(merged.values(), key=lambda p: p.action_name)
