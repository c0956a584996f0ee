"""
Pytest configuration and shared fixtures
"""
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENABLE_EMAIL"] = "false"
os.environ["JWT_SECRET"] = "test-secret-key"

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.security import create_access_token
from app.db import Base, get_db
from app.main import app
from app.models.enums import UserRole
from app.models.models import Customer, User
from app.services.clock import get_clock
from app.services.notifications import AssignmentNotifier, get_notifier


# A Wednesday, before the clocks change in Europe/London
FIXED_NOW = datetime(2024, 3, 13, 12, 0, 0)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier(AssignmentNotifier):
    def __init__(self):
        self.sent = []

    def notify_assignment(self, db, **kwargs):
        self.sent.append(kwargs)
        return None


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def admin(db):
    user = User(
        id=1,
        username="admin",
        full_name="Workshop Admin",
        email="admin@example.com",
        role=UserRole.ADMIN,
        is_active=True,
        created_at=FIXED_NOW,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def mechanic(db):
    user = User(
        id=7,
        username="mike",
        full_name="Mike Mechanic",
        email="mike@example.com",
        role=UserRole.MECHANIC,
        is_active=True,
        created_at=FIXED_NOW,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def customer(db):
    customer = Customer(name="Jane Doe", email="jane@example.com", phone="555-1212", created_at=FIXED_NOW)
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture
def client(db, clock, notifier, admin, mechanic):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {create_access_token(admin.id, admin.role.value)}"}


@pytest.fixture
def staff_headers(mechanic):
    return {"Authorization": f"Bearer {create_access_token(mechanic.id, mechanic.role.value)}"}
