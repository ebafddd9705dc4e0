"""Pydantic schemas for request/response validation."""

from app.schemas.break_glass import (
    ActivateRequest,
    ActivateResponse,
    DeactivateRequest,
    PromoteRequest,
    SelfPromoteRequest,
    ActionResponse,
    BreakGlassSessionInfo,
    StatusResponse,
    PromotionCodeResponse,
    CleanupResponse,
)
from app.schemas.audit import AuditLogItem, AuditLogResponse
from app.schemas.user import UserInfo, LogoutResponse

__all__ = [
    "ActivateRequest",
    "ActivateResponse",
    "DeactivateRequest",
    "PromoteRequest",
    "SelfPromoteRequest",
    "ActionResponse",
    "BreakGlassSessionInfo",
    "StatusResponse",
    "PromotionCodeResponse",
    "CleanupResponse",
    "AuditLogItem",
    "AuditLogResponse",
    "UserInfo",
    "LogoutResponse",
]
