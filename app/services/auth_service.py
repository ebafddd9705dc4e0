"""Identity boundary: resolves the authenticated caller from a bearer token.

Login and session transport belong to the external identity provider; this
module only mints tokens for trusted tooling and turns a presented token into
a CurrentUser whose roles are read fresh from the database.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, Request
from sqlalchemy.orm import Session
import jwt
import logging

from app.config import settings
from app.database import get_db
from app.exceptions import UnauthenticatedError
from app.models.user import User
from app.services.authorization import CurrentUser

logger = logging.getLogger(__name__)


class AuthService:
    """Service for token handling and caller resolution."""

    def __init__(self, db: Session):
        self.db = db

    def generate_token(self, user: User, expires_minutes: int = None):
        """Generate JWT token for a user."""
        expires_in = (expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES) * 60
        expire = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

        payload = {
            "sub": user.id,
            "email": user.email,
            "exp": expire
        }

        token = jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
        return token, expires_in

    def verify_token(self, token: str) -> dict:
        """Verify and decode JWT token."""
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM]
            )
        except jwt.ExpiredSignatureError:
            raise UnauthenticatedError("Token has expired")
        except jwt.InvalidTokenError:
            raise UnauthenticatedError("Invalid token")

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        return self.db.query(User).filter(User.id == user_id).first()

    def resolve_user(self, token: str) -> CurrentUser:
        """Turn a token into the caller, with roles as they are right now."""
        payload = self.verify_token(token)
        user = self.get_user_by_id(payload.get("sub"))

        if user is None:
            logger.warning(f"Token presented for unknown user {payload.get('sub')}")
            raise UnauthenticatedError("Invalid token")
        if not user.is_active:
            logger.warning(f"Token presented for inactive user {user.email}")
            raise UnauthenticatedError("Account is deactivated")

        return CurrentUser(
            id=user.id,
            email=user.email,
            roles=user.roles,
            full_name=user.full_name,
        )


def get_token_from_request(request: Request) -> Optional[str]:
    """Bearer header first, then the access_token cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):]
    return request.cookies.get("access_token")


def get_client_ip(request: Request) -> Optional[str]:
    """Client IP, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_current_user(request: Request, db: Session = Depends(get_db)) -> CurrentUser:
    """Dependency that requires an authenticated caller."""
    token = get_token_from_request(request)
    if not token:
        raise UnauthenticatedError("Authentication required")
    return AuthService(db).resolve_user(token)


def get_optional_user(request: Request, db: Session = Depends(get_db)) -> Optional[CurrentUser]:
    """Dependency that resolves the caller when a valid token is present."""
    token = get_token_from_request(request)
    if not token:
        return None
    try:
        return AuthService(db).resolve_user(token)
    except UnauthenticatedError:
        return None
