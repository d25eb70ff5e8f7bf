import pytest
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from app.database import Base, get_db
from app.main import app
from app.core.config import settings
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

MANAGER_ID = 100
EMPLOYEE_ID = 7
HR_ID = 1


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Get a clean database session for each test function with rollback safety."""
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def actor_headers():
    """Builds the identity headers an upstream gateway would forward."""
    def _headers(role: str, actor_id: int):
        return {
            settings.actor_id_header: str(actor_id),
            settings.actor_role_header: role,
        }
    return _headers


@pytest.fixture(scope="function")
def manager_headers(actor_headers):
    return actor_headers("manager", MANAGER_ID)


@pytest.fixture(scope="function")
def employee_headers(actor_headers):
    return actor_headers("employee", EMPLOYEE_ID)


@pytest.fixture(scope="function")
def hr_headers(actor_headers):
    return actor_headers("hr", HR_ID)


@pytest.fixture(scope="function")
def kpi_payload():
    """A valid quarterly KPI with three unweighted items."""
    def _payload(**overrides):
        payload = {
            "employee_id": EMPLOYEE_ID,
            "department_id": 10,
            "title": "Q1 2025 KPI",
            "period": "quarterly",
            "quarter": "Q1",
            "year": 2025,
            "manager_signature": "data:image/png;base64,manager",
            "items": [
                {"title": "Close tickets", "description": "Resolve support tickets", "target_value": "100"},
                {"title": "Write docs", "description": "Document the API", "target_value": "10"},
                {"title": "Mentor", "description": "Mentor one junior", "target_value": "1"},
            ],
        }
        payload.update(overrides)
        return payload
    return _payload


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
