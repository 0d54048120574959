"""Pytest configuration and shared fixtures."""

from datetime import datetime

import pytest

from app import create_app
from config import TestConfig
from models import db
from models.user import Role, User
from models.venue import Venue
from security.session import create_session
from services.settings import BookingSettings
from tests.fakes import FROZEN_NOW, FakeGateway
from utils.seed import seed_roles


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now


@pytest.fixture(autouse=True)
def clock(monkeypatch) -> Clock:
    c = Clock(FROZEN_NOW)
    monkeypatch.setattr(BookingSettings, "local_now", lambda self: c.now)
    return c


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def app(tmp_path, gateway):
    class Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "booking.db")

    app = create_app(Config, payment_gateway=gateway)
    with app.app_context():
        db.create_all()
        seed_roles()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(email, *roles):
        with app.app_context():
            user = User(email=email, full_name=email.split("@")[0])
            for name in roles or ("PLAYER",):
                user.roles.append(Role.query.filter_by(name=name).one())
            db.session.add(user)
            db.session.commit()
            return user.id
    return _make


@pytest.fixture
def token_for(app):
    def _token(user_id):
        with app.app_context():
            return {"Authorization": f"Bearer {create_session(user_id)}"}
    return _token


@pytest.fixture
def player(make_user):
    return make_user("player@example.com", "PLAYER")


@pytest.fixture
def other_player(make_user):
    return make_user("other@example.com", "PLAYER")


@pytest.fixture
def owner(make_user):
    return make_user("owner@example.com", "OWNER")


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", "ADMIN")


@pytest.fixture
def make_venue(app, owner):
    def _make(hourly_rate=100000, verified=True, active=True, owner_id=None):
        with app.app_context():
            venue = Venue(
                name="Green Turf",
                location="Koramangala",
                sport="football",
                hourly_rate=hourly_rate,
                owner_user_id=owner_id or owner,
                is_verified=verified,
                is_active=active,
            )
            db.session.add(venue)
            db.session.commit()
            return venue.id
    return _make


@pytest.fixture
def venue(make_venue):
    return make_venue()
