from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from security_api.models.user import UserStatus


# ============================================================================
# USER SCHEMAS
# ============================================================================
class UserBase(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    display_name: str = Field(min_length=3, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=30)


class UserCreate(UserBase):
    password: str = Field(min_length=6, max_length=128)


class UserUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=50)
    display_name: Optional[str] = Field(default=None, min_length=3, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=30)
    status: Optional[UserStatus] = None


class PasswordChange(BaseModel):
    password: str = Field(min_length=6, max_length=128)


class UserResponse(BaseModel):
    id: int
    username: str
    display_name: str
    email: str
    phone: Optional[str] = None
    status: UserStatus
    created_by: str
    created_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    last_access_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
    limit: int
    offset: int


class UserRolesResponse(BaseModel):
    user_id: int
    roles: List[str]
