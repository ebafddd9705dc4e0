"""Business logic services for the Campus LMS break-glass service."""

from app.services.audit_service import AuditService
from app.services.credential_service import CredentialService
from app.services.encryption_service import EncryptionService
from app.services.role_service import RoleService
from app.services.break_glass_service import BreakGlassService, ActivationResult
from app.services.auth_service import AuthService

__all__ = [
    "AuditService",
    "CredentialService",
    "EncryptionService",
    "RoleService",
    "BreakGlassService",
    "ActivationResult",
    "AuthService",
]
