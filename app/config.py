"""
Application Configuration Settings
Campus LMS Break-Glass Emergency Access Service
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Application
    APP_NAME: str = "Campus LMS Break-Glass Service"
    APP_VERSION: str = "1.0.0"
    SECRET_KEY: str = "change-this-in-production"

    # Database
    DATABASE_URL: str = "sqlite:///./campus_lms.db"

    # Authentication (tokens are minted by the identity provider)
    JWT_SECRET_KEY: str = "change-this-jwt-secret"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Security
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    # Break-glass
    BREAK_GLASS_CODE_LENGTH: int = 32
    BREAK_GLASS_BCRYPT_ROUNDS: int = 12
    BREAK_GLASS_SESSION_TTL_MINUTES: int = 0  # 0 = manual deactivation only
    BREAK_GLASS_CLEANUP_INTERVAL_SECONDS: int = 300
    BREAK_GLASS_REQUIRE_SECRET_CODE: bool = False  # Secret code as second factor on promotion
    PROMOTION_CODE_ENCRYPTION_KEY: str = ""  # Fernet key for the promotion code display copy

    # Scheduled jobs
    CRON_SECRET: str = ""

    # Audit
    AUDIT_MAX_FIELD_BYTES: int = 50 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

ROLES = {
    "ADMIN": {
        "name": "Administrator",
        "permissions": [
            "MANAGE_USERS",
            "MANAGE_ADMINS",
            "MANAGE_FACULTY",
            "VIEW_USERS",
            "MANAGE_COURSES",
            "VIEW_COURSES",
            "VIEW_ALL_LOGS",
            "VIEW_LIMITED_LOGS",
            "USE_BREAK_GLASS",
            "ACTIVATE_BREAK_GLASS",
        ]
    },
    "ACADEMIC_HEAD": {
        "name": "Academic Head",
        "permissions": [
            "MANAGE_FACULTY",
            "VIEW_USERS",
            "MANAGE_COURSES",
            "VIEW_COURSES",
            "VIEW_LIMITED_LOGS",
            "USE_BREAK_GLASS",  # Only while their own break-glass session is active
            "ACTIVATE_BREAK_GLASS",
        ]
    },
    "FACULTY": {
        "name": "Faculty",
        "permissions": ["VIEW_COURSES", "MANAGE_COURSES"]
    },
}

# Audit modules an Academic Head may read
ACADEMIC_HEAD_LOG_MODULES = [
    "Course Management",
    "Course",
    "Courses",
    "Class Management",
    "Faculty",
    "Attendance",
    "Enrollment",
]
