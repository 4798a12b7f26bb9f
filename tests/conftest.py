"""
Pytest configuration and shared fixtures.
Every test gets its own SQLite file, a fixed clock and a recording notifier.
"""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from slotswap.auth import hash_password
from slotswap.config import Settings
from slotswap.database import Base, create_db_engine, create_session_factory
from slotswap.domain.events.schemas import EventCreate, EventUpdate
from slotswap.domain.events.service import EventService
from slotswap.domain.swaps.service import SwapService
from slotswap.main import create_app
from slotswap.models import EventStatus, User
from slotswap.services.notification_service import NotificationDispatcher

NOW = datetime(2026, 3, 2, 9, 0, 0)
PASSWORD = "secret123"


class FixedClock:
    """Clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, user_id, event_kind, payload):
        self.sent.append((user_id, event_kind, payload))

    def kinds_for(self, user_id):
        return [kind for recipient, kind, _ in self.sent if recipient == user_id]


def hours(n: float) -> datetime:
    return NOW + timedelta(hours=n)


# ==================== Infrastructure ====================


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'slotswap-test.db'}",
        secret_key="test-secret-key",
        db_log_slow_queries=False,
        allowed_origins=["http://localhost:5173"],
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


# ==================== Domain fixtures ====================


@pytest.fixture
def make_user(db):
    def _make(name: str) -> User:
        user = User(
            name=name,
            email=f"{name.lower()}@example.com",
            password_hash=hash_password(PASSWORD),
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def alice(make_user):
    return make_user("Alice")


@pytest.fixture
def bob(make_user):
    return make_user("Bob")


@pytest.fixture
def carol(make_user):
    return make_user("Carol")


@pytest.fixture
def event_service(db, clock):
    return EventService(db, clock=clock)


@pytest.fixture
def swap_service(db, notifier):
    return SwapService(db, NotificationDispatcher(notifier))


@pytest.fixture
def make_event(event_service):
    def _make(user, title, start_hours, end_hours, swappable=False):
        event = event_service.create_event(
            EventCreate(title=title, startTime=hours(start_hours), endTime=hours(end_hours)),
            user,
        )
        if swappable:
            event = event_service.update_event(
                event.id, EventUpdate(status=EventStatus.SWAPPABLE), user
            )
        return event

    return _make


# ==================== HTTP fixtures ====================


@pytest.fixture
def app(settings, clock, notifier):
    return create_app(settings, clock=clock, notifier=notifier)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client):
    """Register a user over HTTP; returns (user json, auth headers)"""

    def _register(name: str):
        response = client.post(
            "/api/auth/register",
            json={"name": name, "email": f"{name.lower()}@example.com", "password": PASSWORD},
        )
        assert response.status_code == 201, response.text
        body = response.json()
        return body["user"], {"Authorization": f"Bearer {body['token']}"}

    return _register
