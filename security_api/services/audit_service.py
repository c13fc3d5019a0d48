"""
Audit Service

Append-only record of mutating operations. A failed audit write propagates
to the caller and aborts the surrounding transaction.
"""
import json
import logging
from datetime import datetime
from typing import Optional, Dict, Any, List, Union

from sqlalchemy import select, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.core.clock import as_utc, utcnow
from security_api.models.audit_record import AuditRecord
from security_api.services.base import LIKE_ESCAPE, contains_pattern

logger = logging.getLogger(__name__)
# Mirror of every record written, for log shipping
audit_logger = logging.getLogger("audit")

AuditState = Union[Dict[str, Any], str, None]


def _serialize(state: AuditState) -> Optional[str]:
    if state is None or isinstance(state, str):
        return state
    return json.dumps(state, default=str, sort_keys=True)


class AuditService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        user_id: Optional[int],
        action_name: str,
        table_name: str,
        record_id: Any = None,
        before: AuditState = None,
        after: AuditState = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditRecord:
        """
        Append an audit record in the caller's transaction.

        Args:
            user_id: Acting user
            action_name: What happened (see AuditAction)
            table_name: Affected table
            record_id: Affected row; composite keys are passed pre-joined
            before: State before the change (dict is stored as JSON)
            after: State after the change
            ip_address: Client IP
            user_agent: Client user agent

        Returns:
            Created audit record
        """
        entry = AuditRecord(
            user_id=user_id,
            action_name=action_name,
            table_name=table_name,
            record_id=None if record_id is None else str(record_id),
            before_json=_serialize(before),
            after_json=_serialize(after),
            ip_address=ip_address,
            user_agent=(user_agent or "")[:500] or None,
            at=utcnow(),
        )
        self.db.add(entry)
        await self.db.flush()

        audit_logger.info(
            f"{action_name} table={table_name} record={entry.record_id} user={user_id} ip={ip_address}"
        )
        return entry

    # ============================================================
    # Queries (newest first)
    # ============================================================

    async def _query(self, *conditions, limit: int = 100, offset: int = 0) -> List[AuditRecord]:
        result = await self.db.execute(
            select(AuditRecord)
            .where(*conditions)
            .order_by(AuditRecord.at.desc(), AuditRecord.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def get_by_id(self, audit_id: int) -> Optional[AuditRecord]:
        result = await self.db.execute(select(AuditRecord).where(AuditRecord.id == audit_id))
        return result.scalar_one_or_none()

    async def get_by_user(self, user_id: int, limit: int = 100, offset: int = 0) -> List[AuditRecord]:
        return await self._query(AuditRecord.user_id == user_id, limit=limit, offset=offset)

    async def get_by_table(self, table_name: str, limit: int = 100, offset: int = 0) -> List[AuditRecord]:
        return await self._query(AuditRecord.table_name == table_name, limit=limit, offset=offset)

    async def get_by_action(self, action_name: str, limit: int = 100, offset: int = 0) -> List[AuditRecord]:
        return await self._query(AuditRecord.action_name == action_name, limit=limit, offset=offset)

    async def get_by_record(self, table_name: str, record_id: Any, limit: int = 100, offset: int = 0) -> List[AuditRecord]:
        return await self._query(
            AuditRecord.table_name == table_name,
            AuditRecord.record_id == str(record_id),
            limit=limit,
            offset=offset,
        )

    async def get_by_date_range(
        self,
        start: datetime,
        end: datetime,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditRecord]:
        """Records with start <= at <= end. Naive bounds are read as UTC."""
        return await self._query(
            AuditRecord.at >= as_utc(start),
            AuditRecord.at <= as_utc(end),
            limit=limit,
            offset=offset,
        )

    async def search(self, term: str, limit: int = 100, offset: int = 0) -> List[AuditRecord]:
        """Case-insensitive substring match on action, table, before and after."""
        pattern = contains_pattern(term)
        return await self._query(
            or_(
                func.lower(AuditRecord.action_name).like(pattern, escape=LIKE_ESCAPE),
                func.lower(AuditRecord.table_name).like(pattern, escape=LIKE_ESCAPE),
                func.lower(AuditRecord.before_json).like(pattern, escape=LIKE_ESCAPE),
                func.lower(AuditRecord.after_json).like(pattern, escape=LIKE_ESCAPE),
            ),
            limit=limit,
            offset=offset,
        )
