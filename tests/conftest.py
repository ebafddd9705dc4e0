"""Pytest configuration and fixtures."""

import os

# Settings are read at import time
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("BREAK_GLASS_BCRYPT_ROUNDS", "4")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.database import Base, get_db
from app.models.user import User, Role
from app.services.auth_service import AuthService
from app.services.role_service import RoleService


# Create test database
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """Create a test client with overridden database dependency."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Factory that creates a committed user holding the given roles."""
    def _make_user(user_id, *roles, email=None, full_name=None):
        user = User(
            id=user_id,
            email=email or f"{user_id.lower()}@campus.edu",
            full_name=full_name or user_id,
            is_active=True,
        )
        db.add(user)
        db.flush()
        RoleService(db).set_user_roles(user, roles)
        db.commit()
        return user
    return _make_user


@pytest.fixture
def academic_head(make_user):
    return make_user("AH1", Role.ACADEMIC_HEAD, full_name="Academic Head One")


@pytest.fixture
def faculty(make_user):
    return make_user("F1", Role.FACULTY, full_name="Faculty One")


@pytest.fixture
def admin(make_user):
    return make_user("ADM1", Role.ADMIN, full_name="Permanent Admin")


@pytest.fixture
def auth_headers(db):
    """Build bearer headers for a user."""
    def _auth_headers(user):
        token, _ = AuthService(db).generate_token(user)
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json"
        }
    return _auth_headers


@pytest.fixture
def session_factory(db):
    """Session factory bound to the test database, for code that opens its own sessions."""
    return TestingSessionLocal
