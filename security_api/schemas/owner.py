from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from security_api.models.owner import OwnerStatus


class OwnerBase(BaseModel):
    tax_id: str = Field(min_length=1, max_length=20)
    legal_id: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=30)
    address: Optional[str] = Field(default=None, max_length=255)


class OwnerCreate(OwnerBase):
    pass


class OwnerUpdate(BaseModel):
    tax_id: Optional[str] = Field(default=None, min_length=1, max_length=20)
    legal_id: Optional[str] = Field(default=None, min_length=1, max_length=20)
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=30)
    address: Optional[str] = Field(default=None, max_length=255)
    status: Optional[OwnerStatus] = None


class OwnerResponse(BaseModel):
    id: int
    tax_id: str
    legal_id: str
    name: str
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    status: OwnerStatus
    created_by: str
    created_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
