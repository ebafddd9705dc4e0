"""Audit log schemas."""

from pydantic import AliasChoices, BaseModel, Field
from typing import Optional, List, Any
from datetime import datetime


class AuditLogItem(BaseModel):
    """Single audit log entry."""
    id: int
    created_at: datetime
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    action: str
    module: str
    before: Optional[Any] = None
    after: Optional[Any] = None
    reason: Optional[str] = None
    status: str
    metadata: Optional[Any] = Field(default=None, validation_alias=AliasChoices("extra_metadata", "metadata"))
    ip: Optional[str] = None

    class Config:
        from_attributes = True


class AuditLogResponse(BaseModel):
    """Response for audit log query."""
    total: int
    page: int
    page_size: int
    total_pages: int
    logs: List[AuditLogItem]
