"""Authorization policy.

Decision functions over a caller's role set. They either return or raise;
the only I/O is the single session-existence read in require_break_glass.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional
from sqlalchemy.orm import Session
import logging

from app.config import ROLES
from app.exceptions import ForbiddenError, UnauthenticatedError
from app.models.user import Role
from app.services.audit_service import can_view_module

logger = logging.getLogger(__name__)


class Permission(str, Enum):
    MANAGE_USERS = "MANAGE_USERS"
    MANAGE_ADMINS = "MANAGE_ADMINS"
    MANAGE_FACULTY = "MANAGE_FACULTY"
    VIEW_USERS = "VIEW_USERS"
    MANAGE_COURSES = "MANAGE_COURSES"
    VIEW_COURSES = "VIEW_COURSES"
    VIEW_ALL_LOGS = "VIEW_ALL_LOGS"
    VIEW_LIMITED_LOGS = "VIEW_LIMITED_LOGS"
    USE_BREAK_GLASS = "USE_BREAK_GLASS"
    ACTIVATE_BREAK_GLASS = "ACTIVATE_BREAK_GLASS"


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller as yielded by the identity provider."""

    id: str
    email: str
    roles: frozenset = field(default_factory=frozenset)
    full_name: str = ""

    def has_role(self, role: Role) -> bool:
        return role in self.roles


def _require_authenticated(user: Optional[CurrentUser]) -> CurrentUser:
    if user is None or not user.roles:
        raise UnauthenticatedError("Authentication required")
    return user


def require_role(user: Optional[CurrentUser], allowed_roles: Iterable[Role]) -> None:
    """Caller must hold at least one of `allowed_roles`."""
    user = _require_authenticated(user)
    allowed = set(allowed_roles)
    if not user.roles & allowed:
        required = " or ".join(sorted(r.value for r in allowed))
        held = ", ".join(sorted(r.value for r in user.roles))
        raise ForbiddenError(f"Access denied. Required role: {required}. Your roles: {held}")


def require_admin(user: Optional[CurrentUser]) -> None:
    user = _require_authenticated(user)
    if Role.ADMIN not in user.roles:
        raise ForbiddenError("Access denied. Required role: ADMIN")


def require_academic_head(user: Optional[CurrentUser]) -> None:
    """ADMIN or ACADEMIC_HEAD."""
    require_role(user, [Role.ADMIN, Role.ACADEMIC_HEAD])


def require_break_glass(user: Optional[CurrentUser], db: Session) -> None:
    """Elevated access: ADMIN always, ACADEMIC_HEAD only with their own live session.

    An Academic Head escalating a Faculty member does not give the Academic
    Head a session of their own.
    """
    user = _require_authenticated(user)

    if Role.ADMIN in user.roles:
        return

    if Role.ACADEMIC_HEAD in user.roles:
        from app.services.break_glass_service import BreakGlassService

        if not BreakGlassService(db).is_break_glass_active(user.id):
            raise ForbiddenError("Break-glass override required")
        return

    raise ForbiddenError("Requires elevated privileges")


def can_manage_user(actor: Optional[CurrentUser], target) -> bool:
    """ADMIN manages anyone; ACADEMIC_HEAD manages FACULTY; nothing else.

    `target` is anything with a `roles` set (User or CurrentUser).
    """
    if actor is None or not actor.roles or target is None:
        return False
    if Role.ADMIN in actor.roles:
        return True
    if Role.ACADEMIC_HEAD in actor.roles and Role.FACULTY in set(target.roles or ()):
        return True
    return False


def has_permission(user: Optional[CurrentUser], permission: Permission, db: Session = None) -> bool:
    """Union of the caller's role permissions from config.ROLES."""
    if user is None or not user.roles:
        return False

    if Role.ADMIN in user.roles:
        return True

    if permission == Permission.USE_BREAK_GLASS and Role.ACADEMIC_HEAD in user.roles:
        if db is None:
            return False
        from app.services.break_glass_service import BreakGlassService

        return BreakGlassService(db).is_break_glass_active(user.id)

    for role in user.roles:
        if permission.value in ROLES.get(role.value, {}).get("permissions", []):
            return True
    return False


def require_permission(user: Optional[CurrentUser], permission: Permission, db: Session = None) -> None:
    _require_authenticated(user)
    if not has_permission(user, permission, db):
        raise ForbiddenError(f"Permission denied: {permission.value}")


def can_view_log(roles: Iterable[Role], module: str) -> bool:
    return can_view_module(roles, module)
