"""Database models for the Campus LMS break-glass service."""

from app.models.user import User, UserRole, Role
from app.models.audit_log import AuditLog
from app.models.break_glass_session import BreakGlassSession

__all__ = [
    "User",
    "UserRole",
    "Role",
    "AuditLog",
    "BreakGlassSession",
]
