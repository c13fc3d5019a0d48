from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TokenCreate(BaseModel):
    user_id: int
    expires_at: Optional[datetime] = None
    value: Optional[str] = Field(default=None, min_length=16, max_length=255)


class TokenUpdate(BaseModel):
    expires_at: Optional[datetime] = None
    validated: Optional[bool] = None
    validated_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    id: int
    user_id: int
    value: str
    issued_at: datetime
    expires_at: datetime
    validated_at: Optional[datetime] = None
    validated: bool
    created_by: str
    created_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenValidationResponse(BaseModel):
    value: str
    valid: bool


class SweepResponse(BaseModel):
    deleted: int
