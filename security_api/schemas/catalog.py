from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from security_api.services.role_service import Capabilities


# ============================================================================
# ROLE SCHEMAS
# ============================================================================
class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)


class RoleResponse(BaseModel):
    id: int
    name: str
    created_by: str
    created_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# CAPABILITY SCHEMAS
# ============================================================================
class CapabilityFlags(BaseModel):
    can_select: bool = False
    can_insert: bool = False
    can_update: bool = False
    can_delete: bool = False

    def to_capabilities(self) -> Capabilities:
        return Capabilities(
            can_select=self.can_select,
            can_insert=self.can_insert,
            can_update=self.can_update,
            can_delete=self.can_delete,
        )


class CapabilityFlagsUpdate(BaseModel):
    can_select: Optional[bool] = None
    can_insert: Optional[bool] = None
    can_update: Optional[bool] = None
    can_delete: Optional[bool] = None


class RoleGrantCreate(CapabilityFlags):
    action_id: int


class RoleGrantResponse(BaseModel):
    id: int
    role_id: int
    action_id: int
    can_select: bool
    can_insert: bool
    can_update: bool
    can_delete: bool
    created_by: str
    created_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# ACTION SCHEMAS
# ============================================================================
class ActionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    type_code: str = Field(min_length=1, max_length=20)
    ui_hint: Optional[str] = Field(default=None, max_length=500)


class ActionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type_code: Optional[str] = Field(default=None, min_length=1, max_length=20)
    ui_hint: Optional[str] = Field(default=None, max_length=500)


class ActionResponse(BaseModel):
    id: int
    name: str
    type_code: str
    ui_hint: Optional[str] = None
    created_by: str
    created_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActionMembershipCreate(CapabilityFlags):
    membership_id: int
    action_id: int
    can_select: bool = True


class ActionMembershipResponse(BaseModel):
    membership_id: int
    action_id: int
    action_name: str
    type_code: str
    can_select: bool
    can_insert: bool
    can_update: bool
    can_delete: bool
    created_by: str
    created_at: Optional[datetime] = None
