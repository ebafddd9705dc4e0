"""Break-glass session model: one active escalation per user."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class BreakGlassSession(Base):
    """Temporary Admin escalation of a Faculty user.

    The row existing is the only signal that the user is escalated.
    """

    __tablename__ = "break_glass_sessions"

    id = Column(String(36), primary_key=True)
    user_id = Column(
        String(100),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    reason = Column(Text, nullable=False)
    activated_at = Column(DateTime, server_default=func.now(), nullable=False)
    activated_by = Column(String(100), nullable=True)  # Null only for system-initiated rows
    original_role = Column(String(50), nullable=False)
    expires_at = Column(DateTime, nullable=True)

    # bcrypt hashes
    secret_code_hash = Column(String(255), nullable=False)
    promotion_code_hash = Column(String(255), nullable=False)

    # Display copy of the promotion code for the activating Academic Head.
    # Fernet ciphertext, never logged and never copied into audit snapshots.
    promotion_code_encrypted = Column(Text, nullable=True)

    user = relationship("User")

    __table_args__ = (
        Index("idx_break_glass_expires_at", "expires_at"),
        Index("idx_break_glass_activated_by", "activated_by"),
    )
