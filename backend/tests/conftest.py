"""
Pytest fixtures for SOW approval backend tests.

Provides test database setup, one user per workflow role, approvers with
signature authority limits, a SOW factory and the test client.
"""

import pytest
from app import create_app
from app.config import Config
from app.extensions import db
from app.models import SignatureAuthorityLimit, User, Vendor
from app.services import session_service, sow_service
from app.services.auth_service import hash_password


PASSWORD = "Password123!"


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BCRYPT_ROUNDS = 4
    LOG_LEVEL = "DEBUG"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(config_object=TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(session, name, email, role, *, is_active=True):
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(PASSWORD),
        role=role,
        is_active=is_active,
    )
    session.add(user)
    session.commit()
    return user


def _set_limit(session, user, limit_cents):
    session.add(SignatureAuthorityLimit(user_id=user.id, limit_cents=limit_cents))
    session.commit()


@pytest.fixture(scope='function')
def hiring_manager(db_session):
    return _make_user(db_session, "Alex Hiring", "hm@test.local", "HIRING_MANAGER")


@pytest.fixture(scope='function')
def ops_user(db_session):
    return _make_user(db_session, "Sam Ops", "ops@test.local", "OPS_TEAM")


@pytest.fixture(scope='function')
def supplier_user(db_session):
    return _make_user(db_session, "Taylor Supplier", "supplier@test.local", "SUPPLIER")


@pytest.fixture(scope='function')
def approver_50k(db_session):
    """APPROVER with a $50,000 signature authority limit."""
    user = _make_user(db_session, "Jordan Approver", "approver50@test.local", "APPROVER")
    _set_limit(db_session, user, 5_000_000)
    return user


@pytest.fixture(scope='function')
def approver_200k(db_session):
    """APPROVER with a $200,000 signature authority limit."""
    user = _make_user(db_session, "Morgan Senior", "approver200@test.local", "APPROVER")
    _set_limit(db_session, user, 20_000_000)
    return user


@pytest.fixture(scope='function')
def vendor(db_session):
    v = Vendor(name="Acme Staffing Inc.", code="SUP-001", email="contracts@acme.example.com")
    db_session.add(v)
    db_session.commit()
    return v


@pytest.fixture(scope='function')
def make_sow(db_session, hiring_manager):
    """Factory: make_sow(*amounts_cents, **header) -> DRAFT SOW owned by hiring_manager."""
    def _make(*amounts, **header):
        payload = {"title": header.pop("title", "Test SOW"), **header}
        if amounts:
            payload["milestones"] = [
                {"title": f"Milestone {i + 1}", "amount_cents": amount}
                for i, amount in enumerate(amounts)
            ]
        return sow_service.create_sow(payload, created_by_user_id=hiring_manager.id)

    return _make


@pytest.fixture(scope='function')
def token_for(db_session):
    """Factory: token_for(user) -> plaintext bearer token."""
    def _token(user):
        _, token = session_service.create_session(user_id=user.id)
        return token

    return _token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_for(token_for):
    """Factory: headers_for(user) -> Authorization headers for a fresh session."""
    def _headers(user):
        return auth_headers(token_for(user))

    return _headers
