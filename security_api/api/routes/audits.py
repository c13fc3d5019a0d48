"""
Audit routes (admin only)

Records are append-only: there is no update or delete endpoint.
"""
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.api.deps import RequestContext, get_request_context
from security_api.core.clock import as_utc
from security_api.core.database import get_db
from security_api.core.exceptions import NotFound, ValidationError
from security_api.core.permissions import require_admin
from security_api.models.user import User
from security_api.schemas.audit import AuditCreate, AuditResponse
from security_api.services.audit_service import AuditService

router = APIRouter()


@router.post("", response_model=AuditResponse, status_code=status.HTTP_201_CREATED)
async def create_audit(
    payload: AuditCreate,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditService(db).record(
        user_id=current_user.id,
        action_name=payload.action_name,
        table_name=payload.table_name,
        record_id=payload.record_id,
        before=payload.before,
        after=payload.after,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )


@router.get("/search", response_model=List[AuditResponse])
async def search_audits(
    q: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    return await AuditService(db).search(q, limit=limit, offset=offset)


@router.get("/date-range", response_model=List[AuditResponse])
async def get_audits_by_date_range(
    start: datetime = Query(...),
    end: datetime = Query(...),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    # Naive query values are read as UTC
    start, end = as_utc(start), as_utc(end)
    if start > end:
        raise ValidationError("start must not be after end")
    return await AuditService(db).get_by_date_range(start, end, limit=limit, offset=offset)


@router.get("/user/{user_id}", response_model=List[AuditResponse])
async def get_audits_by_user(
    user_id: int,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    return await AuditService(db).get_by_user(user_id, limit=limit, offset=offset)


@router.get("/table/{table_name}", response_model=List[AuditResponse])
async def get_audits_by_table(
    table_name: str,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    return await AuditService(db).get_by_table(table_name, limit=limit, offset=offset)


@router.get("/action/{action_name}", response_model=List[AuditResponse])
async def get_audits_by_action(
    action_name: str,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    return await AuditService(db).get_by_action(action_name, limit=limit, offset=offset)


@router.get("/record/{table_name}/{record_id}", response_model=List[AuditResponse])
async def get_audits_by_record(
    table_name: str,
    record_id: str,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    return await AuditService(db).get_by_record(table_name, record_id, limit=limit, offset=offset)


@router.get("/{audit_id}", response_model=AuditResponse)
async def get_audit(
    audit_id: int,
    current_user: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_db),
):
    entry = await AuditService(db).get_by_id(audit_id)
    if not entry:
        raise NotFound("Audit record", audit_id)
    return entry
