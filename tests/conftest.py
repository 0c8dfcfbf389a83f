from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from models import db


class FakeClock:
    """Callable clock for the app; advance it to move between UTC days."""

    def __init__(self, moment):
        self.moment = moment

    def __call__(self):
        return self.moment

    def advance(self, **kwargs):
        self.moment += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def app(clock):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "CLOCK": clock,
        "STARTING_CURRENCY": 100,
        "EARN_RATE": 10,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ledger(app):
    """The app's RewardLedger with an app context pushed."""
    with app.app_context():
        yield app.extensions["reward_ledger"]


def register(client, username="alice", password="s3cret"):
    resp = client.post("/api/register", json={"username": username, "password": password})
    assert resp.status_code == 201
    return resp.get_json()


@pytest.fixture
def alice(client):
    return register(client)
