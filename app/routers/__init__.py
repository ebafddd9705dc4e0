"""API routers for the campus LMS break-glass service."""

from app.routers import auth, break_glass, cron, logs

__all__ = ["auth", "break_glass", "cron", "logs"]
