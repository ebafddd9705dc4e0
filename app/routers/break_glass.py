"""Break-glass API endpoints.

Handlers validate input, apply the authorization policy and hand off to
BreakGlassService. Domain errors propagate to the handler in app.main.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional
import logging

from app.database import get_db
from app.exceptions import ForbiddenError, NotFoundError
from app.models.break_glass_session import BreakGlassSession
from app.models.user import Role
from app.schemas.break_glass import (
    ActivateRequest,
    ActivateResponse,
    DeactivateRequest,
    PromoteRequest,
    SelfPromoteRequest,
    ActionResponse,
    BreakGlassSessionInfo,
    SessionUser,
    StatusResponse,
    PromotionCodeResponse,
)
from app.services.auth_service import get_current_user, get_client_ip
from app.services.authorization import (
    CurrentUser,
    Permission,
    can_manage_user,
    require_academic_head,
    require_admin,
    require_permission,
)
from app.services.break_glass_service import BreakGlassService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_break_glass_service(db: Session = Depends(get_db)) -> BreakGlassService:
    return BreakGlassService(db)


def _session_info(session: BreakGlassSession) -> BreakGlassSessionInfo:
    user = session.user
    return BreakGlassSessionInfo(
        user_id=session.user_id,
        reason=session.reason,
        activated_at=session.activated_at,
        activated_by=session.activated_by,
        original_role=session.original_role,
        expires_at=session.expires_at,
        user=SessionUser(
            id=user.id,
            name=user.full_name,
            email=user.email,
            roles=sorted(r.value for r in user.roles),
        ) if user else None,
    )


def _managed_target(service: BreakGlassService, user_id: str) -> CurrentUser:
    """The target as the policy should see it.

    While escalated, the target is judged by the role it will return to, so an
    Academic Head keeps authority over a Faculty member made temporary Admin.
    """
    user = service.roles.get_user(user_id)
    session = service.get_break_glass_session(user_id)
    roles = frozenset({Role(session.original_role)}) if session else user.roles
    return CurrentUser(id=user.id, email=user.email, roles=roles, full_name=user.full_name)


@router.post("/activate", response_model=ActivateResponse)
def activate(
    body: ActivateRequest,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    service: BreakGlassService = Depends(get_break_glass_service),
):
    """Temporarily promote a Faculty member to Admin."""
    require_permission(current_user, Permission.ACTIVATE_BREAK_GLASS)

    if service.is_temporary_admin(current_user.id):
        raise ForbiddenError("Temporary admins cannot activate break-glass")

    target = _managed_target(service, body.user_id)
    if not can_manage_user(current_user, target):
        logger.warning(f"{current_user.email} attempted break-glass activation for unmanaged user {body.user_id}")
        raise ForbiddenError("You cannot manage this user")

    result = service.activate_break_glass(
        body.user_id,
        body.reason,
        current_user.id,
        ip=get_client_ip(request),
    )

    return ActivateResponse(
        success=True,
        message="Break-glass override activated",
        secret_code=result.secret_code,
        promotion_code=result.promotion_code,
    )


@router.post("/deactivate", response_model=ActionResponse)
def deactivate(
    body: DeactivateRequest,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    service: BreakGlassService = Depends(get_break_glass_service),
):
    """End a break-glass session and restore the original role. Idempotent."""
    require_academic_head(current_user)

    if not service.is_break_glass_active(body.user_id):
        return ActionResponse(success=True, message="No active break-glass session")

    target = _managed_target(service, body.user_id)
    if not can_manage_user(current_user, target):
        raise ForbiddenError("You cannot manage this user")

    deactivated = service.deactivate_break_glass(
        body.user_id,
        current_user.id,
        ip=get_client_ip(request),
    )

    return ActionResponse(
        success=True,
        message="Break-glass override deactivated" if deactivated else "No active break-glass session",
    )


@router.post("/promote", response_model=ActionResponse)
def promote(
    body: PromoteRequest,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    service: BreakGlassService = Depends(get_break_glass_service),
):
    """Permanent Admin converts a temporary Admin using the promotion code."""
    require_admin(current_user)

    if service.is_temporary_admin(current_user.id):
        raise ForbiddenError("Temporary admins cannot promote other users to permanent admin")

    service.promote_to_permanent_admin(
        body.user_id,
        body.promotion_code,
        current_user.id,
        secret_code=body.secret_code,
        ip=get_client_ip(request),
    )

    return ActionResponse(success=True, message="User has been promoted to permanent Admin")


@router.post("/self-promote", response_model=ActionResponse)
def self_promote(
    body: SelfPromoteRequest,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    service: BreakGlassService = Depends(get_break_glass_service),
):
    """Temporary Admin redeems their promotion code."""
    service.promote_to_permanent_admin(
        current_user.id,
        body.promotion_code,
        current_user.id,
        secret_code=body.secret_code,
        ip=get_client_ip(request),
    )

    return ActionResponse(success=True, message="You have been promoted to permanent Admin")


@router.get("/status", response_model=StatusResponse)
def status(
    userId: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user),
    service: BreakGlassService = Depends(get_break_glass_service),
):
    """Break-glass state for one user, or every session for an Academic Head."""
    if userId is None and current_user.has_role(Role.ACADEMIC_HEAD) and not current_user.has_role(Role.ADMIN):
        sessions = [_session_info(s) for s in service.list_active_sessions()]
        return StatusResponse(
            is_active=len(sessions) > 0,
            session=sessions[0] if sessions else None,
            sessions=sessions,
        )

    target_id = userId or current_user.id
    if target_id != current_user.id:
        require_academic_head(current_user)

    session = service.get_break_glass_session(target_id)
    return StatusResponse(
        is_active=session is not None,
        session=_session_info(session) if session else None,
    )


@router.get("/sessions", response_model=StatusResponse)
def list_sessions(
    current_user: CurrentUser = Depends(get_current_user),
    service: BreakGlassService = Depends(get_break_glass_service),
):
    """Every active break-glass session."""
    require_academic_head(current_user)
    sessions = [_session_info(s) for s in service.list_active_sessions()]
    return StatusResponse(is_active=len(sessions) > 0, sessions=sessions)


@router.get("/sessions/{user_id}/promotion-code", response_model=PromotionCodeResponse)
def get_promotion_code(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: BreakGlassService = Depends(get_break_glass_service),
):
    """Show the promotion code again to the Academic Head who activated the session."""
    session = service.get_break_glass_session(user_id)
    if session is None:
        raise NotFoundError(f"No break-glass session for {user_id}", detail="Break-glass session not found")

    is_activator = session.activated_by == current_user.id
    is_permanent_admin = (
        current_user.has_role(Role.ADMIN) and not service.is_temporary_admin(current_user.id)
    )
    if not (is_activator or is_permanent_admin):
        raise ForbiddenError("Only the activating Academic Head or a permanent Admin can view this code")

    logger.info(f"Promotion code for {user_id} viewed by {current_user.email}")
    return PromotionCodeResponse(user_id=user_id, promotion_code=service.reveal_promotion_code(user_id))
