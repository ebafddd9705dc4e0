"""Audit log API endpoints."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional
import logging

from app.database import get_db
from app.exceptions import ForbiddenError
from app.models.user import Role
from app.schemas.audit import AuditLogItem, AuditLogResponse
from app.services.audit_service import AuditService, MAX_PAGE_SIZE
from app.services.auth_service import get_current_user
from app.services.authorization import (
    CurrentUser,
    Permission,
    can_view_log,
    require_break_glass,
    require_permission,
)
from app.utils.timezone import utc_now

router = APIRouter()
logger = logging.getLogger(__name__)


def _split(value: Optional[str]):
    if not value:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


@router.get("", response_model=AuditLogResponse)
def get_logs(
    p: Optional[int] = Query(default=None, ge=1),
    page: Optional[int] = Query(default=None, ge=1),
    actions: Optional[str] = None,
    action: Optional[str] = None,
    modules: Optional[str] = None,
    module: Optional[str] = None,
    faculty: Optional[str] = None,
    userId: Optional[str] = None,
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Audit entries. Academic Heads only see course and faculty modules."""
    require_permission(current_user, Permission.VIEW_LIMITED_LOGS)

    requested_modules = _split(modules) or ([module] if module else [])
    for name in requested_modules:
        if not can_view_log(current_user.roles, name):
            raise ForbiddenError(f"You cannot view {name} logs")

    user_ids = _split(faculty) or ([userId] if userId else None)

    result = AuditService(db).query_logs(
        viewer_roles=current_user.roles,
        actions=_split(actions),
        action=action,
        modules=_split(modules),
        module=module,
        user_ids=user_ids,
        start_date=startDate,
        end_date=endDate,
        page=p or page,
    )

    return AuditLogResponse(
        total=result["total"],
        page=result["page"],
        page_size=result["page_size"],
        total_pages=result["total_pages"],
        logs=[AuditLogItem.model_validate(log) for log in result["logs"]],
    )


@router.get("/export")
def export_logs(
    modules: Optional[str] = None,
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Unscoped CSV export. Needs Admin, or an Academic Head under their own break-glass override."""
    require_break_glass(current_user, db)

    audit_service = AuditService(db)
    logs = audit_service.query_logs(
        viewer_roles={Role.ADMIN},
        modules=_split(modules),
        start_date=startDate,
        end_date=endDate,
        limit=MAX_PAGE_SIZE,
    )["logs"]
    logger.info(f"Audit log export ({len(logs)} rows) by {current_user.email}")

    filename = f"audit-logs-{utc_now().strftime('%Y%m%d-%H%M%S')}.csv"
    return Response(
        content=audit_service.export_csv(logs),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
