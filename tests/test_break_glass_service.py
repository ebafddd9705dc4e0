"""Tests for the break-glass session manager."""

import logging
import pytest
from datetime import timedelta
from sqlalchemy.exc import OperationalError

from app.config import settings
from app.exceptions import CredentialError, InvalidStateError, NotFoundError, PersistenceError
from app.models.audit_log import AuditLog
from app.models.break_glass_session import BreakGlassSession
from app.models.user import Role
from app.services.break_glass_service import (
    BreakGlassService,
    ACTION_ACTIVATED,
    ACTION_DEACTIVATE,
    ACTION_PROMOTE,
)
from app.utils.secure_codes import CODE_ALPHABET
from app.utils.timezone import utc_now


@pytest.fixture
def service(db):
    return BreakGlassService(db)


def _entries(db, action=None):
    query = db.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.id).all()


def _failing_commit():
    raise OperationalError("COMMIT", {}, Exception("database is locked"))


class _CountingContext:
    """Wraps a CryptContext and counts hash checks, real or dummy."""

    def __init__(self, context):
        self.context = context
        self.checks = 0

    def hash(self, secret):
        return self.context.hash(secret)

    def verify(self, secret, hashed):
        self.checks += 1
        return self.context.verify(secret, hashed)

    def dummy_verify(self):
        self.checks += 1
        return self.context.dummy_verify()


class TestActivation:
    """Activation of a temporary Admin."""

    def test_urgent_enrollment_fix(self, db, service, academic_head, faculty):
        """AH1 escalates F1 for an urgent enrollment fix."""
        result = service.activate_break_glass("F1", "Urgent enrollment fix", "AH1", ip="10.0.0.5")

        assert len(result.secret_code) == 32
        assert len(result.promotion_code) == 32
        assert set(result.secret_code) <= set(CODE_ALPHABET)
        assert set(result.promotion_code) <= set(CODE_ALPHABET)

        assert faculty.roles == frozenset({Role.ADMIN})
        assert service.is_break_glass_active("F1") is True
        assert service.is_temporary_admin("F1") is True

        session = service.get_break_glass_session("F1")
        assert session.original_role == "FACULTY"
        assert session.reason == "Urgent enrollment fix"
        assert session.activated_by == "AH1"
        assert session.expires_at is None
        assert session.promotion_code_hash != result.promotion_code
        assert service.credentials.verify(result.promotion_code, session.promotion_code_hash)
        assert service.credentials.verify(result.secret_code, session.secret_code_hash)

        entries = _entries(db)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == ACTION_ACTIVATED
        assert entry.module == "Security"
        assert entry.status == "SUCCESS"
        assert entry.user_id == "AH1"
        assert entry.user_email == "ah1@campus.edu"
        assert entry.reason == "Urgent enrollment fix"
        assert entry.ip == "10.0.0.5"
        assert entry.before["roles"] == ["FACULTY"]
        assert entry.before["isTemporary"] is False
        assert entry.after["roles"] == ["ADMIN"]
        assert entry.after["isTemporary"] is True
        assert entry.extra_metadata["facultyUserId"] == "F1"
        assert entry.extra_metadata["academicHeadId"] == "AH1"

    def test_codes_never_reach_audit_log(self, db, service, academic_head, faculty):
        result = service.activate_break_glass("F1", "Grade upload outage", "AH1")

        entry = _entries(db)[0]
        stored = f"{entry.before}{entry.after}{entry.extra_metadata}"
        assert result.secret_code not in stored
        assert result.promotion_code not in stored

    def test_activation_result_repr_is_masked(self, service, academic_head, faculty):
        result = service.activate_break_glass("F1", "Exam window", "AH1")
        assert result.promotion_code not in repr(result)
        assert result.secret_code not in repr(result)

    def test_activate_non_faculty_rejected_without_writes(self, db, service, academic_head, admin):
        with pytest.raises(InvalidStateError) as exc_info:
            service.activate_break_glass("ADM1", "Misdirected request", "AH1")

        assert exc_info.value.detail == "Break-glass can only be activated for Faculty members"
        assert service.get_break_glass_session("ADM1") is None
        assert admin.roles == frozenset({Role.ADMIN})
        assert _entries(db) == []

    def test_activate_mixed_roles_rejected(self, db, service, academic_head, make_user):
        make_user("F2", Role.FACULTY, Role.ACADEMIC_HEAD)

        with pytest.raises(InvalidStateError):
            service.activate_break_glass("F2", "Urgent enrollment fix", "AH1")
        assert _entries(db) == []

    def test_activate_requires_reason(self, db, service, academic_head, faculty):
        with pytest.raises(InvalidStateError):
            service.activate_break_glass("F1", "   ", "AH1")
        assert faculty.roles == frozenset({Role.FACULTY})
        assert _entries(db) == []

    def test_activate_unknown_target(self, service, academic_head):
        with pytest.raises(NotFoundError) as exc_info:
            service.activate_break_glass("NOPE", "Urgent enrollment fix", "AH1")
        assert exc_info.value.status_code == 404

    def test_activate_unknown_activator(self, service, faculty):
        with pytest.raises(NotFoundError):
            service.activate_break_glass("F1", "Urgent enrollment fix", "GHOST")
        assert service.is_break_glass_active("F1") is False

    def test_reactivation_refreshes_codes(self, db, service, academic_head, faculty):
        first = service.activate_break_glass("F1", "First incident", "AH1")
        second = service.activate_break_glass("F1", "Second incident", "AH1")

        assert db.query(BreakGlassSession).count() == 1
        session = service.get_break_glass_session("F1")
        assert session.reason == "Second incident"
        assert session.original_role == "FACULTY"
        assert not service.credentials.verify(first.promotion_code, session.promotion_code_hash)
        assert service.credentials.verify(second.promotion_code, session.promotion_code_hash)

        entries = _entries(db, ACTION_ACTIVATED)
        assert len(entries) == 2
        assert entries[1].extra_metadata["reactivated"] is True
        assert entries[1].before["isTemporary"] is True

    def test_ttl_sets_expiry(self, monkeypatch, service, academic_head, faculty):
        monkeypatch.setattr(settings, "BREAK_GLASS_SESSION_TTL_MINUTES", 60)
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        session = service.get_break_glass_session("F1")
        assert session.expires_at is not None
        assert session.expires_at > utc_now() + timedelta(minutes=59)

    def test_reveal_promotion_code(self, service, academic_head, faculty):
        result = service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")
        assert service.reveal_promotion_code("F1") == result.promotion_code

    def test_reveal_promotion_code_without_session(self, service, faculty):
        with pytest.raises(NotFoundError):
            service.reveal_promotion_code("F1")


class TestDeactivation:
    """Ending a session restores the original role."""

    def test_deactivate_restores_faculty(self, db, service, academic_head, faculty):
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        assert service.deactivate_break_glass("F1", "AH1") is True

        assert faculty.roles == frozenset({Role.FACULTY})
        assert service.is_break_glass_active("F1") is False

        entries = _entries(db, ACTION_DEACTIVATE)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.status == "SUCCESS"
        assert entry.user_id == "AH1"
        assert entry.reason == "Urgent enrollment fix"
        assert entry.before["roles"] == ["ADMIN"]
        assert entry.after["roles"] == ["FACULTY"]
        assert entry.extra_metadata["originalRole"] == "FACULTY"
        assert entry.extra_metadata["initiatedBy"] == "AH1"

    def test_deactivate_is_idempotent(self, db, service, academic_head, faculty):
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")
        service.deactivate_break_glass("F1", "AH1")

        assert service.deactivate_break_glass("F1", "AH1") is False
        assert faculty.roles == frozenset({Role.FACULTY})
        assert len(_entries(db, ACTION_DEACTIVATE)) == 1

    def test_deactivate_without_session_writes_nothing(self, db, service, faculty):
        assert service.deactivate_break_glass("F1", "AH1") is False
        assert _entries(db) == []

    def test_cleanup_expires_sessions_as_system(self, db, monkeypatch, service, academic_head, faculty, make_user):
        monkeypatch.setattr(settings, "BREAK_GLASS_SESSION_TTL_MINUTES", 30)
        make_user("F2", Role.FACULTY)
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        monkeypatch.setattr(settings, "BREAK_GLASS_SESSION_TTL_MINUTES", 120)
        service.activate_break_glass("F2", "Attendance backfill", "AH1")

        expired = service.cleanup_expired_sessions(now=utc_now() + timedelta(minutes=31))

        assert expired == 1
        assert faculty.roles == frozenset({Role.FACULTY})
        assert service.is_break_glass_active("F2") is True

        entry = _entries(db, ACTION_DEACTIVATE)[0]
        assert entry.user_id is None
        assert entry.extra_metadata["initiatedBy"] == "SYSTEM"

    def test_cleanup_ignores_sessions_without_expiry(self, service, academic_head, faculty):
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")
        assert service.cleanup_expired_sessions(now=utc_now() + timedelta(days=365)) == 0
        assert service.is_break_glass_active("F1") is True

    def test_cleanup_skips_session_refreshed_after_listing(self, db, monkeypatch, service, academic_head, faculty):
        monkeypatch.setattr(settings, "BREAK_GLASS_SESSION_TTL_MINUTES", 30)
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        deactivate = service.deactivate_break_glass

        def refresh_then_deactivate(user_id, *args, **kwargs):
            # AH1 re-activates F1 between the expiry listing and the row lock
            monkeypatch.setattr(settings, "BREAK_GLASS_SESSION_TTL_MINUTES", 120)
            service.activate_break_glass(user_id, "Still fixing enrollment", "AH1")
            return deactivate(user_id, *args, **kwargs)

        monkeypatch.setattr(service, "deactivate_break_glass", refresh_then_deactivate)

        assert service.cleanup_expired_sessions(now=utc_now() + timedelta(minutes=31)) == 0
        assert faculty.roles == frozenset({Role.ADMIN})
        assert service.get_break_glass_session("F1").reason == "Still fixing enrollment"
        assert _entries(db, ACTION_DEACTIVATE) == []

    def test_deactivate_expired_before_leaves_live_session(self, monkeypatch, service, academic_head, faculty):
        monkeypatch.setattr(settings, "BREAK_GLASS_SESSION_TTL_MINUTES", 30)
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        assert service.deactivate_break_glass("F1", None, expired_before=utc_now()) is False
        assert service.is_break_glass_active("F1") is True

        assert service.deactivate_break_glass(
            "F1", None, expired_before=utc_now() + timedelta(minutes=31)
        ) is True
        assert faculty.roles == frozenset({Role.FACULTY})

    def test_deactivate_unknown_user(self, db, service):
        assert service.deactivate_break_glass("GHOST", "AH1") is False
        assert _entries(db) == []


class TestLockOrder:
    """Every transition locks the user row before the session row."""

    @pytest.fixture
    def lock_calls(self, monkeypatch, service):
        calls = []
        find_user = service.roles.find_user_for_update
        get_session = service._get_session_for_update

        def locked_user(user_id):
            calls.append("user")
            return find_user(user_id)

        def locked_session(user_id):
            calls.append("session")
            return get_session(user_id)

        monkeypatch.setattr(service.roles, "find_user_for_update", locked_user)
        monkeypatch.setattr(service, "_get_session_for_update", locked_session)
        return calls

    def test_activate(self, service, lock_calls, academic_head, faculty):
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")
        assert lock_calls == ["user", "session"]

    def test_deactivate(self, service, lock_calls, academic_head, faculty):
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")
        del lock_calls[:]

        service.deactivate_break_glass("F1", "AH1")
        assert lock_calls == ["user", "session"]

    def test_promote(self, service, lock_calls, academic_head, faculty):
        result = service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")
        del lock_calls[:]

        service.promote_to_permanent_admin("F1", result.promotion_code, "F1")
        assert lock_calls == ["user", "session"]


class TestPromotion:
    """Promotion of a temporary Admin to permanent Admin."""

    def test_promote_with_valid_code(self, db, service, academic_head, faculty, admin):
        result = service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        service.promote_to_permanent_admin("F1", result.promotion_code, "ADM1")

        assert faculty.roles == frozenset({Role.ADMIN})
        assert service.is_break_glass_active("F1") is False

        entries = _entries(db, ACTION_PROMOTE)
        assert len(entries) == 1
        assert entries[0].user_id == "ADM1"
        assert entries[0].reason == "Temporary admin promoted to permanent Admin"
        assert entries[0].before["isTemporary"] is True
        assert entries[0].after["isTemporary"] is False
        assert entries[0].extra_metadata["selfPromotion"] is False

    def test_promotion_is_one_shot(self, service, academic_head, faculty):
        result = service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")
        service.promote_to_permanent_admin("F1", result.promotion_code, "F1")

        with pytest.raises(CredentialError):
            service.promote_to_permanent_admin("F1", result.promotion_code, "F1")

    def test_deactivate_after_promotion_is_noop(self, service, academic_head, faculty):
        result = service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")
        service.promote_to_permanent_admin("F1", result.promotion_code, "F1")

        assert service.deactivate_break_glass("F1", "AH1") is False
        assert faculty.roles == frozenset({Role.ADMIN})

    def test_wrong_code_keeps_session(self, db, service, academic_head, faculty):
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        with pytest.raises(CredentialError) as exc_info:
            service.promote_to_permanent_admin("F1", "wrong-code", "F1")

        assert exc_info.value.detail == "Invalid promotion code"
        assert exc_info.value.status_code == 400
        assert service.is_break_glass_active("F1") is True
        assert _entries(db, ACTION_PROMOTE) == []

    def test_missing_session_and_wrong_code_look_the_same(self, service, academic_head, faculty, make_user):
        make_user("F2", Role.FACULTY)
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        with pytest.raises(CredentialError) as wrong_code:
            service.promote_to_permanent_admin("F1", "wrong-code", "F1")
        with pytest.raises(CredentialError) as no_session:
            service.promote_to_permanent_admin("F2", "wrong-code", "F2")

        assert wrong_code.value.detail == no_session.value.detail

    @pytest.mark.parametrize("require_secret, expected_checks", [(False, 1), (True, 2)])
    def test_missing_session_and_wrong_code_hash_the_same(
        self, monkeypatch, service, academic_head, faculty, make_user, require_secret, expected_checks
    ):
        monkeypatch.setattr(settings, "BREAK_GLASS_REQUIRE_SECRET_CODE", require_secret)
        make_user("F2", Role.FACULTY)
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        counter = _CountingContext(service.credentials.pwd_context)
        service.credentials.pwd_context = counter

        with pytest.raises(CredentialError):
            service.promote_to_permanent_admin("F1", "wrong-code", "F1", secret_code="wrong-secret")
        wrong_code_checks = counter.checks

        counter.checks = 0
        with pytest.raises(CredentialError):
            service.promote_to_permanent_admin("F2", "wrong-code", "F2", secret_code="wrong-secret")
        no_session_checks = counter.checks

        counter.checks = 0
        with pytest.raises(CredentialError):
            service.promote_to_permanent_admin("GHOST", "wrong-code", "GHOST", secret_code="wrong-secret")
        unknown_user_checks = counter.checks

        assert wrong_code_checks == expected_checks
        assert no_session_checks == expected_checks
        assert unknown_user_checks == expected_checks

    def test_secret_code_required_when_configured(self, monkeypatch, service, academic_head, faculty):
        monkeypatch.setattr(settings, "BREAK_GLASS_REQUIRE_SECRET_CODE", True)
        result = service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        with pytest.raises(CredentialError):
            service.promote_to_permanent_admin("F1", result.promotion_code, "F1")
        with pytest.raises(CredentialError):
            service.promote_to_permanent_admin("F1", result.promotion_code, "F1", secret_code="nope")

        service.promote_to_permanent_admin(
            "F1", result.promotion_code, "F1", secret_code=result.secret_code
        )
        assert service.is_break_glass_active("F1") is False

    def test_malformed_stored_hash(self, db, service, academic_head, faculty):
        service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")
        session = service.get_break_glass_session("F1")
        session.promotion_code_hash = "not-a-bcrypt-hash"
        db.commit()

        with pytest.raises(InvalidStateError) as exc_info:
            service.promote_to_permanent_admin("F1", "anything", "F1")

        assert exc_info.value.detail == "Invalid session state"
        assert service.is_break_glass_active("F1") is True


class TestPersistenceFailure:
    """A failed commit rolls back both the role change and the session write."""

    def test_failed_activation_leaves_faculty(self, db, monkeypatch, service, academic_head, faculty):
        monkeypatch.setattr(db, "commit", _failing_commit)

        with pytest.raises(PersistenceError) as exc_info:
            service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        assert exc_info.value.status_code == 500
        assert exc_info.value.detail == "Internal server error"

        monkeypatch.undo()
        db.expire_all()
        assert faculty.roles == frozenset({Role.FACULTY})
        assert db.query(BreakGlassSession).count() == 0
        assert _entries(db) == []

    def test_failed_deactivation_keeps_escalation(self, db, monkeypatch, service, academic_head, faculty):
        result = service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")
        session = service.get_break_glass_session("F1")
        session_id, promotion_code_hash = session.id, session.promotion_code_hash

        monkeypatch.setattr(db, "commit", _failing_commit)
        with pytest.raises(PersistenceError):
            service.deactivate_break_glass("F1", "AH1")

        monkeypatch.undo()
        db.expire_all()
        assert faculty.roles == frozenset({Role.ADMIN})
        session = service.get_break_glass_session("F1")
        assert session is not None
        assert session.id == session_id
        assert session.original_role == "FACULTY"
        assert session.promotion_code_hash == promotion_code_hash
        assert service.credentials.verify(result.promotion_code, session.promotion_code_hash)
        assert _entries(db, ACTION_DEACTIVATE) == []

    def test_failed_promotion_keeps_session(self, db, monkeypatch, service, academic_head, faculty):
        result = service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        monkeypatch.setattr(db, "commit", _failing_commit)
        with pytest.raises(PersistenceError):
            service.promote_to_permanent_admin("F1", result.promotion_code, "F1")

        monkeypatch.undo()
        db.expire_all()
        assert service.is_break_glass_active("F1") is True
        assert _entries(db, ACTION_PROMOTE) == []


class TestAuditFailure:
    """A lost audit write never undoes a committed transition."""

    def test_audit_failure_goes_to_fallback_log(self, db, monkeypatch, caplog, service, academic_head, faculty):
        def broken_audit_log(**kwargs):
            raise RuntimeError("audit table unavailable")

        monkeypatch.setattr("app.services.audit_service.AuditLog", broken_audit_log)

        with caplog.at_level(logging.CRITICAL, logger="app.audit.fallback"):
            result = service.activate_break_glass("F1", "Urgent enrollment fix", "AH1")

        assert faculty.roles == frozenset({Role.ADMIN})
        assert service.is_break_glass_active("F1") is True

        fallback = [r for r in caplog.records if r.name == "app.audit.fallback"]
        assert len(fallback) == 1
        assert fallback[0].levelno == logging.CRITICAL
        assert ACTION_ACTIVATED in fallback[0].getMessage()
        assert result.promotion_code not in caplog.text
        assert result.secret_code not in caplog.text
