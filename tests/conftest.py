import os

# Keep the app module off the on-disk database and away from OpenAI
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["AUTO_CATEGORIZE_AI"] = "0"

import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db import Base
from models import Category, User
from budgetview.services import goals as goal_service
from budgetview.services.live import ChangeFeed, LiveSnapshots


@pytest.fixture
def engine():
    """
    Fresh in-memory SQLite engine per test.

    StaticPool keeps one shared connection so every session sees the same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


def make_user(session, email="alice@example.com"):
    user = User(email=email, display_name=email.split("@")[0], provider="password")
    session.add(user)
    session.commit()
    return user


def make_goal(session, user, name="Emergency fund", goal_type="saving", target=1_000_000):
    return goal_service.create_goal(
        session,
        user.id,
        goal_service.GoalDraft(goal_name=name, target_amount=Decimal(target), goal_type=goal_type),
    )


@pytest.fixture
def user(session):
    return make_user(session)


@pytest.fixture
def other_user(session):
    return make_user(session, "bob@example.com")


@pytest.fixture
def food(session, user):
    cat = Category(user_id=user.id, name="Food")
    session.add(cat)
    session.commit()
    return cat


@pytest.fixture
def salary(session, user):
    cat = Category(user_id=user.id, name="Salary")
    session.add(cat)
    session.commit()
    return cat


@pytest.fixture
def today():
    return datetime.date(2024, 3, 15)


@pytest.fixture
def live_feed(session_factory):
    feed = ChangeFeed(session_factory)
    feed.install()
    yield feed
    feed.uninstall()


@pytest.fixture
def client(session_factory, live_feed, monkeypatch):
    from fastapi.testclient import TestClient

    from main import app
    from budgetview import deps
    from budgetview.deps import get_db

    # Pushes follow commits made through the test sessions
    monkeypatch.setattr(deps, "live_snapshots", LiveSnapshots(live_feed))

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def signed_in_client(client):
    response = client.post(
        "/signup",
        data={
            "email": "carol@example.com",
            "password": "secret123",
            "confirm_password": "secret123",
            "display_name": "Carol",
        },
    )
    assert response.status_code == 200
    return client
