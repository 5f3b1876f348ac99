import os

# the app module builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta
from itertools import count

import pytest
from fastapi import HTTPException, Request
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from studentpool import models as m
from studentpool.auth import get_current_user_id
from studentpool.database import get_session
from studentpool.joins import JoinWorkflow
from studentpool.main import app
from studentpool.notifications import NotificationDispatcher
from studentpool.rides import RideRegistry

_emails = count(1)


def next_week(days: int = 7, hour: int = 9) -> datetime:
    d = datetime.utcnow() + timedelta(days=days)
    return d.replace(hour=hour, minute=0, second=0, microsecond=0)


def header_user_id(request: Request) -> int:
    # test auth stub: identity from the X-User-Id header
    uid = request.headers.get("X-User-Id")
    if not uid:
        raise HTTPException(401, "Missing X-User-Id header")
    try:
        return int(uid)
    except ValueError:
        raise HTTPException(400, "Invalid X-User-Id")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_user(session):
    def _make(name: str = "Student") -> m.User:
        user = m.User(name=name, email=f"{name.lower()}{next(_emails)}@college.edu")
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def rides(session):
    return RideRegistry(session)


@pytest.fixture
def joins(session):
    return JoinWorkflow(session)


@pytest.fixture
def dispatcher(session):
    return NotificationDispatcher(session)


@pytest.fixture
def make_ride(rides):
    def _make(creator: m.User, seats: int = 3, destination: str = "Airport", **kwargs) -> m.Ride:
        return rides.create(
            creator_id=creator.id,
            destination=destination,
            source=kwargs.pop("source", "Campus Gate"),
            date_time=kwargs.pop("date_time", next_week()),
            seats_total=seats,
            **kwargs,
        )

    return _make


@pytest.fixture
def join_notification(session):
    """The creator's join_request notification for a (ride, requester) pair."""

    def _find(ride: m.Ride, requester: m.User) -> m.Notification:
        return session.exec(
            select(m.Notification).where(
                (m.Notification.ride_id == ride.id)
                & (m.Notification.requester_id == requester.id)
                & (m.Notification.type == m.NotificationType.join_request)
            )
        ).one()

    return _find


@pytest.fixture
def client(engine):
    def _session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_current_user_id] = header_user_id
    yield TestClient(app)
    app.dependency_overrides.clear()


def as_user(user: m.User) -> dict:
    return {"X-User-Id": str(user.id)}
