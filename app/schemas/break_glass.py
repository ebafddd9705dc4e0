"""Break-glass request/response schemas."""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class ActivateRequest(BaseModel):
    """Academic Head escalates a Faculty member."""
    user_id: str = Field(..., alias="userId", min_length=1)
    reason: str = Field(..., min_length=1, max_length=2000)

    class Config:
        populate_by_name = True


class ActivateResponse(BaseModel):
    """Codes are returned once; the promotion code is shown to the Academic Head."""
    success: bool = True
    message: str
    secret_code: str = Field(..., alias="secretCode")
    promotion_code: str = Field(..., alias="promotionCode")

    class Config:
        populate_by_name = True


class DeactivateRequest(BaseModel):
    user_id: str = Field(..., alias="userId", min_length=1)

    class Config:
        populate_by_name = True


class PromoteRequest(BaseModel):
    """Permanent Admin converts a temporary Admin."""
    user_id: str = Field(..., alias="userId", min_length=1)
    promotion_code: str = Field(..., alias="promotionCode", min_length=1)
    secret_code: Optional[str] = Field(default=None, alias="secretCode")

    class Config:
        populate_by_name = True


class SelfPromoteRequest(BaseModel):
    """Temporary Admin redeems their own promotion code."""
    promotion_code: str = Field(..., alias="promotionCode", min_length=1)
    secret_code: Optional[str] = Field(default=None, alias="secretCode")

    class Config:
        populate_by_name = True


class ActionResponse(BaseModel):
    success: bool = True
    message: str


class SessionUser(BaseModel):
    id: str
    name: str
    email: str
    roles: List[str]


class BreakGlassSessionInfo(BaseModel):
    """Session as exposed over the API. Hashes and the display copy are never included."""
    user_id: str = Field(..., alias="userId")
    reason: str
    activated_at: Optional[datetime] = Field(default=None, alias="activatedAt")
    activated_by: Optional[str] = Field(default=None, alias="activatedBy")
    original_role: str = Field(..., alias="originalRole")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")
    user: Optional[SessionUser] = None

    class Config:
        populate_by_name = True


class StatusResponse(BaseModel):
    is_active: bool = Field(..., alias="isActive")
    session: Optional[BreakGlassSessionInfo] = None
    sessions: Optional[List[BreakGlassSessionInfo]] = None

    class Config:
        populate_by_name = True


class PromotionCodeResponse(BaseModel):
    user_id: str = Field(..., alias="userId")
    promotion_code: str = Field(..., alias="promotionCode")

    class Config:
        populate_by_name = True


class CleanupResponse(BaseModel):
    success: bool = True
    expired_sessions: int = Field(..., alias="expiredSessions")
    timestamp: datetime

    class Config:
        populate_by_name = True
