"""Seed script to create sample users for development.

Creates one Admin, one Academic Head and two Faculty members, and prints a
bearer token for each so the break-glass API can be exercised locally.
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import SessionLocal, init_db
from app.models.user import User, Role
from app.services.auth_service import AuthService
from app.services.role_service import RoleService

SAMPLE_USERS = [
    ("dev-admin-001", "admin@campus.edu", "Campus Administrator", Role.ADMIN),
    ("dev-head-001", "head@campus.edu", "Academic Head", Role.ACADEMIC_HEAD),
    ("dev-faculty-001", "faculty1@campus.edu", "Faculty Member One", Role.FACULTY),
    ("dev-faculty-002", "faculty2@campus.edu", "Faculty Member Two", Role.FACULTY),
]


def seed_users():
    """Create the sample users if they do not exist."""
    init_db()
    db = SessionLocal()

    try:
        roles = RoleService(db)
        auth = AuthService(db)

        print("=" * 70)
        for user_id, email, full_name, role in SAMPLE_USERS:
            user = roles.find_user(user_id)
            if user:
                print(f"NOTICE: User already exists: {email} ({', '.join(sorted(r.value for r in user.roles))})")
            else:
                user = User(id=user_id, email=email, full_name=full_name, is_active=True)
                db.add(user)
                db.flush()
                roles.set_user_role(user, role)
                print(f"Created {role.value:<14} {email}")

            token, expires_in = auth.generate_token(user)
            print(f"  ID:    {user_id}")
            print(f"  Token: {token}")
        db.commit()
        print("=" * 70)
        print(f"Tokens expire in {expires_in // 60} minutes.")

    except Exception as e:
        print(f"ERROR: Failed to seed users: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_users()
