"""Audit log model for role and security transitions."""

from sqlalchemy import Column, String, DateTime, Integer, Text, JSON, Index
from sqlalchemy.sql import func
from app.database import Base


class AuditLog(Base):
    """Append-only audit record.

    user_id references the actor by value only; no foreign key, so entries
    outlive the users and break-glass sessions they describe.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    # Actor
    user_id = Column(String(100), nullable=True)
    user_email = Column(String(255), nullable=True)
    ip = Column(String(45), nullable=True)

    # Action details
    action = Column(String(100), nullable=False)
    module = Column(String(100), nullable=False)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="SUCCESS")
    extra_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("idx_audit_created_at", "created_at"),
        Index("idx_audit_user_id", "user_id"),
        Index("idx_audit_module", "module"),
        Index("idx_audit_action", "action"),
    )
