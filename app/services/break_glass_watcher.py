"""Periodic sweep that expires break-glass sessions carrying an expires_at."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from app.database import SessionLocal
from app.config import settings
from app.services.break_glass_service import BreakGlassService
from app.utils.timezone import utc_now

logger = logging.getLogger(__name__)


class BreakGlassExpiryWatcher:
    """Runs BreakGlassService.cleanup_expired_sessions on an interval."""

    def __init__(self, interval_seconds: int = None, session_factory=SessionLocal):
        self.running = False
        self.interval_seconds = interval_seconds or settings.BREAK_GLASS_CLEANUP_INTERVAL_SECONDS
        self.session_factory = session_factory
        self.last_run_at: Optional[datetime] = None
        self.last_expired_count = 0

    def sweep_once(self) -> int:
        """One sweep in its own database session."""
        db = self.session_factory()
        try:
            count = BreakGlassService(db).cleanup_expired_sessions()
        finally:
            db.close()
        self.last_run_at = utc_now()
        self.last_expired_count = count
        return count

    async def start(self):
        """Start the sweep loop."""
        if self.running:
            logger.warning("Break-glass expiry watcher already running")
            return

        self.running = True
        logger.info(f"Break-glass expiry watcher started (every {self.interval_seconds}s)")

        while self.running:
            try:
                await asyncio.to_thread(self.sweep_once)
            except Exception as e:
                logger.error(f"Break-glass expiry sweep failed: {e}", exc_info=True)

            await asyncio.sleep(self.interval_seconds)

    def stop(self):
        """Stop the sweep loop."""
        self.running = False
        logger.info("Break-glass expiry watcher stopped")


# Global watcher instance
_watcher_instance: Optional[BreakGlassExpiryWatcher] = None
_watcher_task: Optional[asyncio.Task] = None


async def start_break_glass_watcher():
    """Start the global watcher. Only meaningful when sessions get an expiry."""
    global _watcher_instance, _watcher_task

    if settings.BREAK_GLASS_SESSION_TTL_MINUTES <= 0:
        logger.info("Break-glass sessions have no expiry; expiry watcher not started")
        return

    if _watcher_instance is None:
        _watcher_instance = BreakGlassExpiryWatcher()

    if _watcher_task is None or _watcher_task.done():
        _watcher_task = asyncio.create_task(_watcher_instance.start())
        logger.info("Break-glass expiry watcher task started")


def stop_break_glass_watcher():
    """Stop the global watcher."""
    global _watcher_instance, _watcher_task

    if _watcher_instance:
        _watcher_instance.stop()

    if _watcher_task and not _watcher_task.done():
        _watcher_task.cancel()

    _watcher_task = None


def get_break_glass_watcher_status() -> dict:
    """Status of the expiry watcher."""
    if _watcher_instance is None:
        return {"running": False, "last_run_at": None, "last_expired_count": 0}
    return {
        "running": _watcher_instance.running,
        "last_run_at": _watcher_instance.last_run_at.isoformat() if _watcher_instance.last_run_at else None,
        "last_expired_count": _watcher_instance.last_expired_count,
    }
