"""Break-glass session manager.

Per user the states are:

    NORMAL     no session row
    ESCALATED  session row exists, roles == {ADMIN}, original role recorded
    PROMOTED   no session row, roles == {ADMIN} permanently

activate:   NORMAL -> ESCALATED (or ESCALATED -> ESCALATED, refreshing codes)
deactivate: ESCALATED -> NORMAL (original role restored); no-op from NORMAL
promote:    ESCALATED -> PROMOTED, gated by the promotion code

Role mutation and the session upsert/delete commit together. The audit entry
is written afterwards in its own commit; see AuditService.log_action.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging
import uuid

from app.config import settings
from app.exceptions import (
    BreakGlassError,
    CredentialError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
)
from app.models.break_glass_session import BreakGlassSession
from app.models.user import Role
from app.services.audit_service import AuditService, STATUS_SUCCESS
from app.services.credential_service import CredentialService
from app.services.encryption_service import EncryptionService
from app.services.role_service import RoleService
from app.utils.secure_codes import generate_secure_code
from app.utils.timezone import utc_now, minutes_from_now

logger = logging.getLogger(__name__)

AUDIT_MODULE = "Security"
ACTION_ACTIVATED = "BreakGlass Activated"
ACTION_DEACTIVATE = "BreakGlass Deactivate"
ACTION_PROMOTE = "BreakGlass Promote"

SYSTEM_ACTOR = "SYSTEM"


@dataclass(frozen=True)
class ActivationResult:
    """Plaintext codes, handed to the caller exactly once."""

    secret_code: str
    promotion_code: str

    def __repr__(self):
        return "ActivationResult(secret_code='***', promotion_code='***')"


class BreakGlassService:
    """Activate, deactivate and promote break-glass escalations."""

    def __init__(
        self,
        db: Session,
        credentials: CredentialService = None,
        encryption: EncryptionService = None,
        audit: AuditService = None,
    ):
        self.db = db
        self.roles = RoleService(db)
        self.credentials = credentials or CredentialService()
        self.encryption = encryption or EncryptionService()
        self.audit = audit or AuditService(db)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_break_glass_session(self, user_id: str) -> Optional[BreakGlassSession]:
        """The user's session row, or None."""
        if not user_id:
            return None
        return (
            self.db.query(BreakGlassSession)
            .filter(BreakGlassSession.user_id == user_id)
            .first()
        )

    def is_break_glass_active(self, user_id: str) -> bool:
        """True while a session row exists. Expiry is enforced by the sweep, not here."""
        if not user_id:
            return False
        return (
            self.db.query(BreakGlassSession.id)
            .filter(BreakGlassSession.user_id == user_id)
            .first()
            is not None
        )

    # A temporary admin is exactly a user with a live session
    is_temporary_admin = is_break_glass_active

    def list_active_sessions(self) -> List[BreakGlassSession]:
        return (
            self.db.query(BreakGlassSession)
            .order_by(BreakGlassSession.activated_at.desc())
            .all()
        )

    def reveal_promotion_code(self, user_id: str) -> str:
        """Decrypt the display copy of the promotion code."""
        session = self.get_break_glass_session(user_id)
        if session is None:
            raise NotFoundError(f"No break-glass session for {user_id}", detail="Break-glass session not found")
        if not session.promotion_code_encrypted:
            raise NotFoundError(
                f"Break-glass session for {user_id} has no display copy",
                detail="Promotion code is not available",
            )
        return self.encryption.decrypt_string(session.promotion_code_encrypted)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def activate_break_glass(
        self,
        faculty_user_id: str,
        reason: str,
        activated_by: str,
        ip: str = None,
    ) -> ActivationResult:
        """Temporarily promote a Faculty user to Admin.

        Re-activating a user who already has a session refreshes reason,
        timestamp and both codes, keeping the recorded original role.

        Raises:
            NotFoundError: target or activator does not exist
            InvalidStateError: empty reason, or target is not FACULTY
            PersistenceError: the role + session write failed
        """
        reason = (reason or "").strip()
        if not reason:
            raise InvalidStateError("Break-glass reason is required", detail="A reason is required")

        activator = self.roles.find_user(activated_by)
        if activator is None:
            raise NotFoundError(f"Activating user {activated_by} not found", detail="Activating user not found")
        activator_email = activator.email

        # Hash before taking row locks; bcrypt is the slow part
        secret_code = generate_secure_code()
        promotion_code = generate_secure_code()
        secret_code_hash = self.credentials.hash(secret_code)
        promotion_code_hash = self.credentials.hash(promotion_code)
        promotion_code_encrypted = self.encryption.encrypt_string(promotion_code)

        expires_at = None
        if settings.BREAK_GLASS_SESSION_TTL_MINUTES > 0:
            expires_at = minutes_from_now(settings.BREAK_GLASS_SESSION_TTL_MINUTES)

        with self._transaction(f"activate break-glass for {faculty_user_id}"):
            target = self.roles.get_user_for_update(faculty_user_id)
            session = self._get_session_for_update(faculty_user_id)
            reactivated = session is not None

            if not reactivated and target.roles != frozenset({Role.FACULTY}):
                logger.warning(
                    f"Break-glass activation refused for {faculty_user_id}: "
                    f"roles {sorted(r.value for r in target.roles)} are not exactly FACULTY"
                )
                raise InvalidStateError(
                    f"User {faculty_user_id} is not a Faculty member",
                    detail="Break-glass can only be activated for Faculty members",
                )

            before = self.roles.snapshot(target, isTemporary=reactivated)

            self.roles.set_user_role(target, Role.ADMIN)

            if session is None:
                session = BreakGlassSession(
                    id=str(uuid.uuid4()),
                    user_id=faculty_user_id,
                    original_role=Role.FACULTY.value,
                )
                self.db.add(session)

            session.reason = reason
            session.activated_at = utc_now()
            session.activated_by = activated_by
            session.expires_at = expires_at
            session.secret_code_hash = secret_code_hash
            session.promotion_code_hash = promotion_code_hash
            session.promotion_code_encrypted = promotion_code_encrypted

            after = self.roles.snapshot(target, isTemporary=True)

        logger.info(
            f"Break-glass {'refreshed' if reactivated else 'activated'} "
            f"for {faculty_user_id} by {activated_by}"
        )

        self.audit.log_action(
            user_id=activated_by,
            user_email=activator_email,
            action=ACTION_ACTIVATED,
            module=AUDIT_MODULE,
            reason=reason,
            before=before,
            after=after,
            status=STATUS_SUCCESS,
            metadata={
                "facultyUserId": faculty_user_id,
                "academicHeadId": activated_by,
                "reactivated": reactivated,
                "expiresAt": expires_at.isoformat() if expires_at else None,
            },
            ip=ip,
        )

        return ActivationResult(secret_code=secret_code, promotion_code=promotion_code)

    def deactivate_break_glass(
        self,
        user_id: str,
        deactivated_by: Optional[str],
        ip: str = None,
        expired_before: datetime = None,
    ) -> bool:
        """Restore the user's original role and end the session.

        Returns False, writing nothing, when no session exists. With
        `expired_before`, also returns False unless the locked session still
        expires before that instant.
        `deactivated_by=None` marks system-initiated cleanup.
        """
        with self._transaction(f"deactivate break-glass for {user_id}"):
            # User row first, then session row, in every transition
            user = self.roles.find_user_for_update(user_id)
            session = self._get_session_for_update(user_id) if user else None
            if session is None:
                logger.info(f"Break-glass deactivation for {user_id}: no active session")
                return False

            if expired_before is not None and (
                session.expires_at is None or session.expires_at >= expired_before
            ):
                logger.info(f"Break-glass session for {user_id} was refreshed; not expiring it")
                return False

            original_role = Role(session.original_role)
            reason = session.reason
            activated_by = session.activated_by
            before = self.roles.snapshot(user, isTemporary=True, activatedBy=activated_by)

            self.roles.set_user_role(user, original_role)
            self.db.delete(session)
            after = self.roles.snapshot(user, isTemporary=False)

        logger.info(f"Break-glass deactivated for {user_id} by {deactivated_by or SYSTEM_ACTOR}")

        actor = self.roles.find_user(deactivated_by)
        self.audit.log_action(
            user_id=deactivated_by,
            user_email=actor.email if actor else None,
            action=ACTION_DEACTIVATE,
            module=AUDIT_MODULE,
            reason=reason,
            before=before,
            after=after,
            status=STATUS_SUCCESS,
            metadata={
                "targetUserId": user_id,
                "originalRole": original_role.value,
                "initiatedBy": deactivated_by or SYSTEM_ACTOR,
            },
            ip=ip,
        )
        return True

    def promote_to_permanent_admin(
        self,
        user_id: str,
        promotion_code: str,
        promoted_by: str,
        secret_code: str = None,
        ip: str = None,
    ) -> None:
        """Turn a temporary Admin into a permanent one.

        A missing session and a wrong code both raise CredentialError with the
        same public detail, after the same amount of hashing work.
        """
        with self._transaction(f"promote {user_id} to permanent admin"):
            user = self.roles.find_user_for_update(user_id)
            session = self._get_session_for_update(user_id) if user else None

            if session is None:
                # One dummy per hash the real path checks
                self.credentials.dummy_verify()
                if settings.BREAK_GLASS_REQUIRE_SECRET_CODE:
                    self.credentials.dummy_verify()
                logger.warning(f"Break-glass promotion refused for {user_id}: not a temporary admin")
                raise CredentialError(f"User {user_id} is not a temporary admin")

            code_ok = self.credentials.verify(promotion_code or "", session.promotion_code_hash)
            secret_ok = True
            if settings.BREAK_GLASS_REQUIRE_SECRET_CODE:
                secret_ok = self.credentials.verify(secret_code or "", session.secret_code_hash)

            if not (code_ok and secret_ok):
                logger.warning(f"Break-glass promotion refused for {user_id}: code verification failed")
                raise CredentialError(f"Promotion code verification failed for {user_id}")

            reason = session.reason
            activated_by = session.activated_by
            before = self.roles.snapshot(user, isTemporary=True)

            # Already ADMIN since activation; set again in case that write was lost
            self.roles.set_user_role(user, Role.ADMIN)
            self.db.delete(session)
            after = self.roles.snapshot(user, isTemporary=False)

        logger.info(f"Break-glass user {user_id} promoted to permanent admin by {promoted_by}")

        actor = self.roles.find_user(promoted_by)
        self.audit.log_action(
            user_id=promoted_by,
            user_email=actor.email if actor else None,
            action=ACTION_PROMOTE,
            module=AUDIT_MODULE,
            reason="Temporary admin promoted to permanent Admin",
            before=before,
            after=after,
            status=STATUS_SUCCESS,
            metadata={
                "targetUserId": user_id,
                "activatedBy": activated_by,
                "activationReason": reason,
                "selfPromotion": promoted_by == user_id,
            },
            ip=ip,
        )

    def cleanup_expired_sessions(self, now: datetime = None) -> int:
        """Deactivate every session whose expiry has passed, as the system actor."""
        now = now or utc_now()
        expired_user_ids = [
            row.user_id
            for row in self.db.query(BreakGlassSession.user_id)
            .filter(BreakGlassSession.expires_at.isnot(None))
            .filter(BreakGlassSession.expires_at < now)
            .all()
        ]

        count = 0
        for user_id in expired_user_ids:
            try:
                if self.deactivate_break_glass(user_id, None, expired_before=now):
                    count += 1
            except BreakGlassError as e:
                logger.error(f"Failed to expire break-glass session for {user_id}: {e}")

        if count:
            logger.info(f"Expired {count} break-glass session(s)")
        return count

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_session_for_update(self, user_id: str) -> Optional[BreakGlassSession]:
        return (
            self.db.query(BreakGlassSession)
            .filter(BreakGlassSession.user_id == user_id)
            .with_for_update()
            .first()
        )

    @contextmanager
    def _transaction(self, what: str):
        """Commit everything in the block, or roll all of it back."""
        try:
            yield
            self.db.commit()
        except BreakGlassError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {what}: {type(e).__name__}: {e}")
            raise PersistenceError(f"Failed to {what}") from e
