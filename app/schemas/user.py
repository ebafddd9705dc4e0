"""User schemas."""

from pydantic import BaseModel
from typing import List


class UserInfo(BaseModel):
    """Authenticated caller."""
    id: str
    email: str
    full_name: str
    roles: List[str]
    is_temporary_admin: bool = False


class LogoutResponse(BaseModel):
    """Logout response schema."""
    message: str
    session_terminated: bool
    break_glass_deactivated: bool = False
