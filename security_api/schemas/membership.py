from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from security_api.models.membership import MembershipStatus


class MembershipCreate(BaseModel):
    user_id: int
    owner_id: int
    # Validated by the service so unknown kinds report as validation_error
    kind: str = Field(min_length=1, max_length=20)
    valid_until: Optional[datetime] = None
    role_ids: List[int] = []


class MembershipUpdate(BaseModel):
    user_id: Optional[int] = None
    owner_id: Optional[int] = None
    kind: Optional[str] = Field(default=None, min_length=1, max_length=20)
    valid_until: Optional[datetime] = None


class MembershipResponse(BaseModel):
    id: int
    user_id: int
    owner_id: int
    kind: str
    valid_until: Optional[datetime] = None
    status: MembershipStatus
    is_active: bool
    created_by: str
    created_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None


class MembershipRoleAdd(BaseModel):
    role_id: int


class EffectivePermissionResponse(BaseModel):
    action_id: int
    action_name: str
    type_code: str
    can_select: bool
    can_insert: bool
    can_update: bool
    can_delete: bool
