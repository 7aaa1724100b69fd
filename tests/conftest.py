"""
Pytest configuration and fixtures for the ballot token service tests.

This module provides:
- An application bound to an in-memory SQLite database
- Flask test client and CLI runner
- Operator accounts with JWT headers
- Voter, party and ballot token factories
- Election gates with a fixed clock
"""

from datetime import datetime, timezone

import pytest
from flask_jwt_extended import create_access_token

from ballotbox import create_app
from ballotbox.config import Config
from ballotbox.extensions import db
from ballotbox.models.ballot_token import BallotToken
from ballotbox.models.party import Party
from ballotbox.models.user import User
from ballotbox.models.voter import Voter
from ballotbox.services.election_gate import ElectionGate, ElectionSchedule, election_timezone

SAMPLE_CODE = "RSL-AB12-CD345678"

# 2026-02-01 08:00 at the default UTC+7 election offset
ELECTION_DAY = datetime(2026, 2, 1, 1, 0)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    JWT_SECRET_KEY = "test-jwt-secret-key-long-enough-for-hs256"
    LOG_LEVEL = "WARNING"
    ELECTION_UTC_OFFSET_HOURS = 7
    TOKEN_EXPIRY_MINUTES = 30
    TOKEN_BATCH_MAX = 120
    RATE_LIMIT_STORAGE = "database"
    RATE_LIMITS = {
        "login": (1000, 15),
        "activate": (1000, 1),
        "validate": (1000, 1),
        "vote": (1000, 1),
    }


@pytest.fixture
def app():
    """Application with a fresh schema per test."""
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def cli_runner(app):
    return app.test_cli_runner()


# ============================================
# OPERATORS
# ============================================


def _make_user(username: str, role: str, password: str = "Passw0rd123") -> User:
    user = User(username=username, role=role, display_name=username.title())
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def _headers(user: User) -> dict:
    token = create_access_token(identity=str(user.id), additional_claims={"role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_user(app):
    return _make_user("admin", User.ROLE_ADMIN)


@pytest.fixture
def worker_user(app):
    return _make_user("station1", User.ROLE_POLL_WORKER)


@pytest.fixture
def admin_headers(admin_user):
    return _headers(admin_user)


@pytest.fixture
def worker_headers(worker_user):
    return _headers(worker_user)


# ============================================
# ROSTER AND TOKENS
# ============================================


@pytest.fixture
def make_voter(app):
    def _make(voter_id="1001", level="L1", first_name="Somchai", last_name="Dee", vote_status=None):
        voter = Voter(
            voter_id=voter_id,
            first_name=first_name,
            last_name=last_name,
            level=level,
            room="1/1",
            vote_status=vote_status,
        )
        db.session.add(voter)
        db.session.commit()
        return voter
    return _make


@pytest.fixture
def make_token(app):
    def _make(code=SAMPLE_CODE, status=BallotToken.STATUS_INACTIVE, station_level=None, print_batch_id=None):
        token = BallotToken(
            code=code,
            status=status,
            station_level=station_level,
            print_batch_id=print_batch_id,
        )
        db.session.add(token)
        db.session.commit()
        return token
    return _make


@pytest.fixture
def party(app):
    p = Party(name="Progress Party", number=1)
    db.session.add(p)
    db.session.commit()
    return p


# ============================================
# ELECTION GATE
# ============================================


@pytest.fixture
def make_gate():
    """Build a gate without touching the store; `now` is naive or aware UTC."""
    def _make(status="open", now=None, open_time=None, close_time=None, offset_hours=7):
        tz = election_timezone(offset_hours)
        clock = None
        if now is not None:
            aware = now if now.tzinfo else now.replace(tzinfo=timezone.utc)
            clock = lambda: aware  # noqa: E731
        schedule = ElectionSchedule(status=status, open_time=open_time, close_time=close_time)
        return ElectionGate(schedule, tz, clock=clock)
    return _make


@pytest.fixture
def open_gate(make_gate):
    return make_gate("open", now=ELECTION_DAY)
