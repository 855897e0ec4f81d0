import pytest
import os

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("APP_TIMEZONE", "UTC")

from app.database import Database, get_db
from app.main import create_app
from app.models.user import User, UserRole
from app.schemas.auth import Principal
from fastapi.testclient import TestClient


@pytest.fixture(scope="function")
def database():
    """A fresh in-memory database per test (one shared connection via StaticPool)."""
    db = Database("sqlite://").open()
    db.create_all()
    yield db
    db.drop_all()
    db.close()


@pytest.fixture(scope="function")
def db_session(database):
    session = database.session()
    yield session
    session.close()


def _make_user(db_session, email, role, full_name):
    user = User(email=email, role=role, full_name=full_name, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope="function")
def employee(db_session):
    return _make_user(db_session, "employee@acme.test", UserRole.EMPLOYEE, "Eve Employee")


@pytest.fixture(scope="function")
def other_employee(db_session):
    return _make_user(db_session, "other@acme.test", UserRole.EMPLOYEE, "Oscar Other")


@pytest.fixture(scope="function")
def hr_user(db_session):
    return _make_user(db_session, "hr@acme.test", UserRole.HR, "Hana HR")


@pytest.fixture(scope="function")
def admin_user(db_session):
    return _make_user(db_session, "admin@acme.test", UserRole.ADMIN, "Ada Admin")


@pytest.fixture(scope="function")
def principal_for():
    """Build the Principal a token for this user would carry."""
    def _principal(user):
        return Principal(employee_id=user.id, role=user.role)
    return _principal


@pytest.fixture(scope="function")
def get_token():
    """Helper fixture to mint principal tokens like the identity service does."""
    from app.core.security import create_access_token

    def _get_token(user):
        return create_access_token(data={
            "sub": str(user.id),
            "role": user.role.value,
            "type": "access"
        })
    return _get_token


@pytest.fixture(scope="function")
def auth_headers(get_token):
    def _headers(user):
        return {"Authorization": f"Bearer {get_token(user)}"}
    return _headers


@pytest.fixture(scope="function")
def client(database, db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    app = create_app(database)

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
