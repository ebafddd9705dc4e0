"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session
from typing import Optional
import logging

from app.database import get_db
from app.exceptions import BreakGlassError
from app.schemas.user import LogoutResponse, UserInfo
from app.services.audit_service import AuditService
from app.services.auth_service import get_current_user, get_optional_user, get_client_ip
from app.services.authorization import CurrentUser
from app.services.break_glass_service import BreakGlassService

router = APIRouter()
logger = logging.getLogger(__name__)

AUTH_COOKIES = ("access_token", "user_info", "last_activity")


@router.post("/logout", response_model=LogoutResponse)
def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    """Logout user. A temporary admin's break-glass session ends with the login session."""
    for cookie in AUTH_COOKIES:
        response.delete_cookie(cookie, path="/")

    if current_user is None:
        logger.info("Anonymous logout, cookies cleared")
        return LogoutResponse(message="Successfully logged out", session_terminated=True)

    ip = get_client_ip(request)
    break_glass_deactivated = False

    try:
        break_glass_deactivated = BreakGlassService(db).deactivate_break_glass(
            current_user.id, current_user.id, ip=ip
        )
    except BreakGlassError as e:
        # Logout still succeeds; the session stays until an Academic Head or the sweep ends it
        logger.error(f"Break-glass deactivation on logout failed for {current_user.email}: {e}")

    if break_glass_deactivated:
        logger.info(f"Break-glass session for {current_user.email} ended at logout")

    AuditService(db).log_action(
        action="USER_LOGOUT",
        module="User",
        user_id=current_user.id,
        user_email=current_user.email,
        metadata={"breakGlassDeactivated": break_glass_deactivated},
        ip=ip,
    )

    logger.info(f"User {current_user.email} logged out, cookies cleared")

    return LogoutResponse(
        message="Successfully logged out",
        session_terminated=True,
        break_glass_deactivated=break_glass_deactivated,
    )


@router.get("/me", response_model=UserInfo)
def me(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Get current authenticated user information."""
    return UserInfo(
        id=current_user.id,
        email=current_user.email,
        full_name=current_user.full_name,
        roles=sorted(r.value for r in current_user.roles),
        is_temporary_admin=BreakGlassService(db).is_temporary_admin(current_user.id),
    )
