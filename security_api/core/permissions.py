"""
Permission checks

Two layers:
- Role gates: a route may require the caller to hold a named role through
  one of their active memberships (e.g. "admin" for catalog mutations).
- Capability checks: whether the caller may perform an action with a given
  CRUD capability within a specific owner, resolved from the effective
  permissions of their active memberships for that owner.

Nothing is cached across requests; every check reads the store.
"""
from typing import Dict, Set

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.core.config import settings
from security_api.core.database import get_db
from security_api.core.exceptions import Forbidden, ValidationError
from security_api.models.user import User

CAPABILITIES = ("select", "insert", "update", "delete")


def require_role(*role_names: str):
    """
    Dependency that requires the caller to hold any of the given roles.

    Usage:
        @router.post("")
        async def create_role(
            current_user: User = Depends(require_role("admin"))
        ):
            ...
    """
    from security_api.api.deps import get_current_user
    from security_api.services.user_service import UserService

    async def role_checker(
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        roles = await UserService(db).list_roles(current_user.id)
        if not roles.intersection(role_names):
            raise Forbidden(f"Requires role: {', '.join(role_names)}")
        return current_user

    return role_checker


def require_admin():
    return require_role(settings.ADMIN_ROLE_NAME)


class PermissionChecker:
    """
    Owner-scoped capability checker.

    Usage:
        checker = PermissionChecker(db, user_id)
        if await checker.can(owner_id, "invoice.create", "insert"):
            ...
    """

    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id
        self._by_owner: Dict[int, Dict[str, Set[str]]] = {}

    async def load(self, owner_id: int) -> Dict[str, Set[str]]:
        """Map action name -> granted capabilities, over every active membership for the owner."""
        from security_api.services.membership_service import MembershipService

        service = MembershipService(self.db)
        granted: Dict[str, Set[str]] = {}
        for membership in await service.get_active_for_user(self.user_id, owner_id):
            for permission in await service.effective_permissions(membership.id):
                caps = granted.setdefault(permission.action_name, set())
                caps.update(c for c in CAPABILITIES if permission.capabilities.allows(c))
        self._by_owner[owner_id] = granted
        return granted

    async def _granted(self, owner_id: int) -> Dict[str, Set[str]]:
        if owner_id not in self._by_owner:
            await self.load(owner_id)
        return self._by_owner[owner_id]

    async def can(self, owner_id: int, action_name: str, capability: str = "select") -> bool:
        if capability not in CAPABILITIES:
            raise ValidationError(
                f"Unknown capability '{capability}'. Expected one of: {', '.join(CAPABILITIES)}"
            )
        granted = await self._granted(owner_id)
        return capability in granted.get(action_name, set())
