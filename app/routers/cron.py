"""Scheduled job endpoints, called by an external scheduler."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import logging
import secrets

from app.config import settings
from app.database import get_db
from app.exceptions import UnauthenticatedError
from app.schemas.break_glass import CleanupResponse
from app.services.break_glass_service import BreakGlassService
from app.utils.timezone import utc_now

router = APIRouter()
logger = logging.getLogger(__name__)


def verify_cron_secret(request: Request) -> None:
    """Require `Authorization: Bearer <CRON_SECRET>`.

    With no secret configured the endpoint is open in development and test
    only.
    """
    if not settings.CRON_SECRET:
        if settings.ENVIRONMENT in ("development", "test"):
            return
        logger.warning("Cron call rejected: CRON_SECRET is not configured")
        raise UnauthenticatedError("CRON_SECRET not configured", detail="Unauthorized")

    auth_header = request.headers.get("Authorization") or ""
    expected = f"Bearer {settings.CRON_SECRET}"
    if not secrets.compare_digest(auth_header.encode(), expected.encode()):
        logger.warning("Cron call rejected: bad bearer secret")
        raise UnauthenticatedError("Invalid cron secret", detail="Unauthorized")


@router.post("/cleanup-break-glass", response_model=CleanupResponse)
def cleanup_break_glass(
    db: Session = Depends(get_db),
    _: None = Depends(verify_cron_secret),
):
    """End every break-glass session past its expiry."""
    expired = BreakGlassService(db).cleanup_expired_sessions()
    logger.info(f"Cron break-glass cleanup ended {expired} session(s)")
    return CleanupResponse(success=True, expired_sessions=expired, timestamp=utc_now())
