from datetime import datetime

from pydantic import BaseModel, Field

from security_api.schemas.user import UserResponse


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=128)


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse


class RefreshResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_at: datetime


class AuthorizeRequest(BaseModel):
    """Ask whether the caller may perform an action within an owner."""
    owner_id: int
    action: str = Field(min_length=1, max_length=100)
    capability: str = Field(default="select", pattern="^(select|insert|update|delete)$")


class AuthorizeResponse(BaseModel):
    allowed: bool
    owner_id: int
    action: str
    capability: str
