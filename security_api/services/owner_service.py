"""
Owner Service - tenants that memberships scope access to
"""
import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.core.clock import utcnow
from security_api.models.membership import Membership
from security_api.models.owner import Owner, OwnerStatus
from security_api.services.base import LIKE_ESCAPE, apply_changes, contains_pattern

logger = logging.getLogger(__name__)

OWNER_FIELDS = ("tax_id", "legal_id", "name", "last_name", "email", "phone", "address")


class OwnerService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_all_owners(self, include_inactive: bool = False) -> List[Owner]:
        query = select(Owner).order_by(Owner.name)
        if not include_inactive:
            query = query.where(Owner.status == OwnerStatus.ACTIVE)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_owner_by_id(self, owner_id: int) -> Optional[Owner]:
        result = await self.db.execute(select(Owner).where(Owner.id == owner_id))
        return result.scalar_one_or_none()

    async def search_owners(self, name: str) -> List[Owner]:
        """Case-insensitive substring search over active owners, ordered by name."""
        pattern = contains_pattern(name)
        result = await self.db.execute(
            select(Owner)
            .where(Owner.status == OwnerStatus.ACTIVE)
            .where(func.lower(Owner.name).like(pattern, escape=LIKE_ESCAPE))
            .order_by(Owner.name)
        )
        return list(result.scalars().all())

    async def get_owners_by_membership(self, membership_id: int) -> List[Owner]:
        result = await self.db.execute(
            select(Owner)
            .join(Membership, Membership.owner_id == Owner.id)
            .where(Membership.id == membership_id)
        )
        return list(result.scalars().all())

    async def create_owner(self, fields: Dict[str, Any], created_by: str) -> Owner:
        owner = Owner(
            **{key: fields.get(key) for key in OWNER_FIELDS},
            status=OwnerStatus.ACTIVE,
            created_by=created_by,
        )
        self.db.add(owner)
        await self.db.flush()
        logger.info(f"Owner created: id={owner.id} name={owner.name}")
        return owner

    async def update_owner(self, owner_id: int, changes: Dict[str, Any], updated_by: str) -> Optional[Owner]:
        owner = await self.get_owner_by_id(owner_id)
        if not owner:
            return None
        apply_changes(owner, changes, OWNER_FIELDS + ("status",), updated_by=updated_by)
        await self.db.flush()
        return owner

    async def deactivate_owner(self, owner_id: int, updated_by: str) -> bool:
        """Soft delete: status flips to INACTIVE."""
        owner = await self.get_owner_by_id(owner_id)
        if not owner or owner.status == OwnerStatus.INACTIVE:
            return False
        owner.status = OwnerStatus.INACTIVE
        owner.updated_by = updated_by
        owner.updated_at = utcnow()
        await self.db.flush()
        return True
