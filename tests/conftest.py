"""
Pytest configuration and fixtures.

Every test gets a fresh in-memory SQLite database; the FastAPI app's
``get_db`` dependency is overridden to hand out sessions bound to it.
"""
import os
import sys
from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Set test environment variables before importing
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["REDIS_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

# Import after setting env vars
from eventhub.core.clock import utcnow
from eventhub.core.database import Base, get_db, init_db
from eventhub.main import app
from eventhub.models.event import Event
from eventhub.models.user import User


@pytest.fixture(scope="function")
def test_engine():
    """In-memory database shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_db(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Create a database session for each test"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    """Test client whose requests each get their own session on the test database."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def file_engine(tmp_path):
    """
    File-backed SQLite for tests that race real threads.

    Each transaction starts with BEGIN IMMEDIATE so writers queue on the
    database lock instead of failing the SHARED -> RESERVED upgrade.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    init_db(bind=engine)
    yield engine
    engine.dispose()


def make_user(db, email: str, role: str = "user", **kwargs) -> User:
    first, _, last = email.partition("@")[0].partition(".")
    user = User(
        first_name=first.title(),
        last_name=(last or "Tester").title(),
        email=email,
        role=role,
        **kwargs,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_event(db, organizer: User, **overrides) -> Event:
    start = utcnow() + timedelta(days=7)
    values = {
        "title": "Spring Meetup",
        "description": "Quarterly community meetup",
        "category": "Networking",
        "start_date": start,
        "end_date": start + timedelta(hours=3),
        "organizer_id": organizer.user_id,
        "registration_fee": Decimal("0"),
        "max_attendees": 50,
        "status": "published",
    }
    values.update(overrides)
    event = Event(**values)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


@pytest.fixture
def member(db_session) -> User:
    return make_user(db_session, "jane.doe@example.com")


@pytest.fixture
def other_member(db_session) -> User:
    return make_user(db_session, "bob.smith@example.com")


@pytest.fixture
def admin(db_session) -> User:
    return make_user(db_session, "john.admin@example.com", role="admin")


def auth(user: User) -> dict:
    """Identity header the upstream gateway would attach."""
    return {"X-User-Id": user.user_id}
