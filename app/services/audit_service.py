"""Audit logging service for role and security transitions."""

from datetime import datetime, time
from typing import Optional, List, Iterable
from sqlalchemy.orm import Session
import csv
import io
import json
import logging

from app.config import settings, ACADEMIC_HEAD_LOG_MODULES
from app.models.audit_log import AuditLog
from app.models.user import Role

logger = logging.getLogger(__name__)

# Receives the full entry when the database write fails
fallback_logger = logging.getLogger("app.audit.fallback")

STATUS_SUCCESS = "SUCCESS"
STATUS_FAILED = "FAILED"

MAX_ACTION_LENGTH = 100
MAX_MODULE_LENGTH = 100
MAX_IP_LENGTH = 45

DEFAULT_PAGE_SIZE = 100
UI_PAGE_SIZE = 9
MAX_PAGE_SIZE = 1000

SENSITIVE_KEYS = {
    "password",
    "token",
    "secret",
    "secretcode",
    "secretcodehash",
    "promotioncode",
    "promotioncodehash",
    "promotioncodeplain",
    "promotioncodeencrypted",
}


def _normalize_key(key) -> str:
    return str(key).replace("_", "").lower()


def redact_secrets(value):
    """Replace values stored under secret-looking keys, recursively."""
    if isinstance(value, dict):
        return {
            k: "[REDACTED]" if _normalize_key(k) in SENSITIVE_KEYS else redact_secrets(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_secrets(v) for v in value]
    return value


def sanitize_snapshot(obj, max_bytes: int = None):
    """Redact secrets and cap the serialized size of a before/after snapshot."""
    if obj is None:
        return None

    if max_bytes is None:
        max_bytes = settings.AUDIT_MAX_FIELD_BYTES

    try:
        redacted = redact_secrets(obj)
        encoded = json.dumps(redacted, default=str)
    except (TypeError, ValueError):
        return {
            "_error": True,
            "_message": "Failed to serialize object",
        }

    size = len(encoded.encode("utf-8"))
    if size > max_bytes:
        return {
            "_truncated": True,
            "_size": size,
            "_message": "Object exceeded maximum size limit and was truncated",
        }

    # Round-trip so datetimes and other non-JSON values are stored as strings
    return json.loads(encoded)


def get_changed_fields(before: Optional[dict], after: Optional[dict]) -> dict:
    """Return only the keys whose values differ between two snapshots."""
    if not before and not after:
        return {"before": None, "after": None}
    if not before:
        return {"before": None, "after": after}
    if not after:
        return {"before": before, "after": None}

    changed_before, changed_after = {}, {}
    for key in set(before) | set(after):
        old, new = before.get(key), after.get(key)
        if json.dumps(old, sort_keys=True, default=str) != json.dumps(new, sort_keys=True, default=str):
            changed_before[key] = old
            changed_after[key] = new

    if not changed_before and not changed_after:
        return {"before": None, "after": None}
    return {"before": changed_before, "after": changed_after}


def can_view_module(roles: Iterable[Role], module: str) -> bool:
    """ADMIN reads every module, ACADEMIC_HEAD a fixed subset, FACULTY none."""
    roles = set(roles or ())
    if Role.ADMIN in roles:
        return True
    if Role.ACADEMIC_HEAD in roles:
        module_lower = (module or "").lower()
        return any(allowed.lower() in module_lower for allowed in ACADEMIC_HEAD_LOG_MODULES)
    return False


class AuditService:
    """Service for appending and querying audit entries."""

    def __init__(self, db: Session):
        self.db = db

    def log_action(
        self,
        action: str,
        module: str,
        user_id: str = None,
        user_email: str = None,
        before: dict = None,
        after: dict = None,
        reason: str = None,
        status: str = STATUS_SUCCESS,
        metadata: dict = None,
        ip: str = None,
    ) -> Optional[AuditLog]:
        """Append one audit entry in its own commit.

        Never raises. A failed write is rolled back and the entry is sent to
        the fallback logger so the transition it describes is not lost.
        """
        if not action or not module:
            fallback_logger.critical(
                f"Audit entry rejected, action and module are required: action={action!r} module={module!r}"
            )
            return None

        entry = {
            "user_id": user_id,
            "user_email": user_email,
            "action": action[:MAX_ACTION_LENGTH],
            "module": module[:MAX_MODULE_LENGTH],
            "before": sanitize_snapshot(before),
            "after": sanitize_snapshot(after),
            "reason": reason or None,
            "status": status,
            "extra_metadata": sanitize_snapshot(metadata),
            "ip": ip[:MAX_IP_LENGTH] if ip else None,
        }

        try:
            audit_log = AuditLog(**entry)
            self.db.add(audit_log)
            self.db.commit()
            self.db.refresh(audit_log)
        except Exception as e:
            self.db.rollback()
            entry["metadata"] = entry.pop("extra_metadata")
            fallback_logger.critical(
                f"AUDIT WRITE FAILED ({type(e).__name__}: {e}); entry not persisted: "
                f"{json.dumps(entry, default=str)}"
            )
            return None

        logger.info(
            f"Audit log: {user_id or 'SYSTEM'} {entry['action']} [{entry['module']}] - {status}"
        )
        return audit_log

    def get_user_activity(self, user_id: str, limit: int = 100) -> List[AuditLog]:
        """Get recent entries recorded for an actor."""
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.user_id == user_id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
            .all()
        )

    def query_logs(
        self,
        viewer_roles: Iterable[Role],
        actions: List[str] = None,
        action: str = None,
        modules: List[str] = None,
        module: str = None,
        user_ids: List[str] = None,
        start_date: datetime = None,
        end_date: datetime = None,
        page: int = None,
        limit: int = None,
    ) -> dict:
        """Filtered, paginated audit entries visible to the viewer.

        An Academic Head only ever sees ACADEMIC_HEAD_LOG_MODULES; requested
        module filters are narrowed to that set rather than replacing it.
        Without a page, up to ``limit`` (default 100, max 1000) newest entries
        are returned.
        """
        viewer_roles = set(viewer_roles or ())
        query = self.db.query(AuditLog)

        if Role.ADMIN not in viewer_roles:
            query = query.filter(AuditLog.module.in_(ACADEMIC_HEAD_LOG_MODULES))

        if actions:
            query = query.filter(AuditLog.action.in_(actions))
        elif action:
            query = query.filter(AuditLog.action.ilike(f"%{action}%"))

        if modules:
            query = query.filter(AuditLog.module.in_(modules))
        elif module:
            query = query.filter(AuditLog.module.ilike(f"%{module}%"))

        if user_ids:
            query = query.filter(AuditLog.user_id.in_(user_ids))

        if start_date:
            query = query.filter(AuditLog.created_at >= start_date)
        if end_date:
            if end_date.time() == time.min:
                end_date = datetime.combine(end_date.date(), time.max)
            query = query.filter(AuditLog.created_at <= end_date)

        total = query.count()

        if page:
            page = max(page, 1)
            page_size = UI_PAGE_SIZE
            offset = (page - 1) * page_size
        else:
            page = 1
            page_size = limit or DEFAULT_PAGE_SIZE
            offset = 0
        page_size = min(page_size, MAX_PAGE_SIZE)

        logs = (
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset(offset)
            .limit(page_size)
            .all()
        )

        return {
            "logs": logs,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": (total + page_size - 1) // page_size,
        }

    def export_csv(self, logs: List[AuditLog]) -> str:
        """Render entries as CSV text."""
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow([
            "id", "created_at", "user_id", "user_email", "action", "module",
            "status", "reason", "before", "after", "metadata", "ip",
        ])
        for log in logs:
            writer.writerow([
                log.id,
                log.created_at.isoformat() if log.created_at else "",
                log.user_id or "",
                log.user_email or "",
                log.action,
                log.module,
                log.status,
                log.reason or "",
                json.dumps(log.before) if log.before is not None else "",
                json.dumps(log.after) if log.after is not None else "",
                json.dumps(log.extra_metadata) if log.extra_metadata is not None else "",
                log.ip or "",
            ])
        return buffer.getvalue()
