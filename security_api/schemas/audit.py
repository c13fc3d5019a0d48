from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field


class AuditCreate(BaseModel):
    action_name: str = Field(min_length=1, max_length=100)
    table_name: str = Field(min_length=1, max_length=100)
    record_id: Optional[str] = Field(default=None, max_length=100)
    before: Optional[Union[Dict[str, Any], str]] = None
    after: Optional[Union[Dict[str, Any], str]] = None


class AuditResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    action_name: str
    table_name: str
    record_id: Optional[str] = None
    before_json: Optional[str] = None
    after_json: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    at: datetime

    class Config:
        from_attributes = True
