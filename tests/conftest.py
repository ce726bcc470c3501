# tests/conftest.py
import os

# Settings are read at import time, so the test environment goes in first
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SQLALCHEMY_DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_EMAILS"] = "admin@example.com"
os.environ["ORDER_WEBHOOK_SECRET"] = "test-webhook-secret"

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from storefront.core.config import settings
from storefront.core.limiter import limiter
from storefront.core.milestones import MilestoneTable, load_milestone_table
from storefront.db.session import Base, enable_sqlite_savepoints
from storefront.dependencies import get_db, get_milestone_table
from storefront.main import app
from storefront.models import user, loyalty, coupon  # all models, so create_all sees every table
from storefront.models.user import User
from storefront.services import loyalty as loyalty_service
from storefront.models.loyalty import LoyaltyTransactionType

# In-memory SQLite shared by every session through a single connection
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_savepoints(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Session:
    """A clean database for every test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def milestones() -> MilestoneTable:
    return load_milestone_table(settings.MILESTONE_SETTINGS)


@pytest.fixture
def test_user(db_session) -> User:
    db_user = User(email="customer@example.com", name="Test Customer")
    db_session.add(db_user)
    db_session.commit()
    return db_user


@pytest.fixture
def admin_user(db_session) -> User:
    db_user = User(email="admin@example.com", name="Admin")
    db_session.add(db_user)
    db_session.commit()
    return db_user


@pytest.fixture
def give_points(db_session):
    """Credits points through the ledger, the same way an order webhook would."""
    def _give(db_user: User, points: int, description: str = "Test credit"):
        entry = loyalty_service.record_event(
            db_session,
            user_id=db_user.id,
            type=LoyaltyTransactionType.ADJUSTED,
            points_delta=points,
            description=description,
        )
        db_session.commit()
        return entry
    return _give


def make_token(db_user: User) -> str:
    return jwt.encode({"sub": str(db_user.id), "email": db_user.email}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


@pytest.fixture
def auth_headers(test_user) -> dict:
    return {"Authorization": f"Bearer {make_token(test_user)}"}


@pytest.fixture
def admin_auth_headers(admin_user) -> dict:
    return {"Authorization": f"Bearer {make_token(admin_user)}"}


@pytest.fixture
async def client(db_session, milestones):
    """HTTP client against the app, wired to the test database."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_milestone_table] = lambda: milestones
    limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
