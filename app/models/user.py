"""User model for authentication and authorization."""

import enum

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class Role(str, enum.Enum):
    """Roles a campus user can hold."""

    FACULTY = "FACULTY"
    ACADEMIC_HEAD = "ACADEMIC_HEAD"
    ADMIN = "ADMIN"


class User(Base):
    """User model for system users."""

    __tablename__ = "users"

    id = Column(String(100), primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(255), nullable=False)

    # Status
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime, nullable=True)

    # Audit
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    role_assignments = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_users_email", "email"),
        Index("idx_users_is_active", "is_active"),
    )

    @property
    def roles(self) -> frozenset:
        """Current role set."""
        return frozenset(Role(a.role) for a in self.role_assignments)


class UserRole(Base):
    """One role held by one user."""

    __tablename__ = "user_roles"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(100), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(50), nullable=False)
    granted_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="role_assignments")

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        Index("idx_user_roles_role", "role"),
    )
