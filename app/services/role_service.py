"""Role store: reads and mutates a user's role set.

Never commits. Callers wrap role changes and the break-glass session write in
one transaction.
"""

from typing import Iterable
from sqlalchemy.orm import Session
import logging
import uuid

from app.exceptions import NotFoundError
from app.models.user import User, UserRole, Role

logger = logging.getLogger(__name__)


class RoleService:
    """Role set access for users."""

    def __init__(self, db: Session):
        self.db = db

    def find_user(self, user_id: str):
        """Get user by ID, or None."""
        if not user_id:
            return None
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user(self, user_id: str) -> User:
        """Get user by ID or raise NotFoundError."""
        user = self.find_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", detail="User not found")
        return user

    def find_user_for_update(self, user_id: str):
        """Get user by ID holding a row lock until the transaction ends, or None."""
        if not user_id:
            return None
        return (
            self.db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .first()
        )

    def get_user_for_update(self, user_id: str) -> User:
        """Locked read that raises NotFoundError."""
        user = self.find_user_for_update(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", detail="User not found")
        return user

    def set_user_roles(self, user: User, roles: Iterable[Role]) -> None:
        """Replace the user's role set."""
        wanted = {Role(r) for r in roles}
        current = {Role(a.role): a for a in user.role_assignments}

        for role, assignment in current.items():
            if role not in wanted:
                user.role_assignments.remove(assignment)
        for role in wanted - set(current):
            user.role_assignments.append(
                UserRole(id=str(uuid.uuid4()), user_id=user.id, role=role.value)
            )
        self.db.flush()

    def set_user_role(self, user: User, role: Role) -> None:
        """Make `role` the user's only role."""
        self.set_user_roles(user, [role])

    @staticmethod
    def snapshot(user: User, **extra) -> dict:
        """Audit snapshot of a user's identity and roles."""
        data = {
            "userId": user.id,
            "roles": sorted(r.value for r in user.roles),
            "name": user.full_name,
            "email": user.email,
        }
        data.update(extra)
        return data
