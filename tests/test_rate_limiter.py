"""Tests for the attempt counters."""

from datetime import datetime, timedelta

import pytest

from ballotbox.extensions import db
from ballotbox.models.rate_limit_counter import RateLimitCounter
from ballotbox.services.exceptions import RateLimitedError
from ballotbox.services.rate_limiter import (
    DatabaseRateLimiter,
    InMemoryRateLimiter,
    check_rate_limit,
    get_rate_limiter,
    init_rate_limiter,
)

T0 = datetime(2026, 2, 1, 1, 0)


@pytest.fixture(params=["memory", "database"])
def limiter(request, app):
    if request.param == "memory":
        return InMemoryRateLimiter()
    return DatabaseRateLimiter()


def test_allows_up_to_max_then_refuses(limiter):
    decisions = [limiter.allow("10.0.0.1", "login", 3, 15, now=T0 + timedelta(seconds=i)) for i in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]


def test_window_expiry_allows_again(limiter):
    for i in range(2):
        assert limiter.allow("10.0.0.1", "validate", 2, 1, now=T0 + timedelta(seconds=i)).allowed
    assert not limiter.allow("10.0.0.1", "validate", 2, 1, now=T0 + timedelta(seconds=30)).allowed

    later = T0 + timedelta(minutes=2)
    assert limiter.allow("10.0.0.1", "validate", 2, 1, now=later).allowed


def test_identifiers_and_actions_are_independent(limiter):
    assert limiter.allow("a", "vote", 1, 1, now=T0).allowed
    assert not limiter.allow("a", "vote", 1, 1, now=T0).allowed

    assert limiter.allow("b", "vote", 1, 1, now=T0).allowed
    assert limiter.allow("a", "login", 1, 1, now=T0).allowed


def test_reset_clears_counter(limiter):
    limiter.allow("a", "login", 1, 15, now=T0)
    limiter.reset("a", "login")
    assert limiter.allow("a", "login", 1, 15, now=T0).allowed


def test_cleanup_drops_stale_entries(limiter):
    limiter.allow("old", "login", 5, 15, now=T0)
    limiter.allow("fresh", "login", 5, 15, now=T0 + timedelta(minutes=90))

    removed = limiter.cleanup(max_age_minutes=60, now=T0 + timedelta(minutes=100))

    assert removed == 1


def test_in_memory_window_is_exact():
    limiter = InMemoryRateLimiter()
    limiter.allow("a", "vote", 2, 1, now=T0)
    limiter.allow("a", "vote", 2, 1, now=T0 + timedelta(seconds=40))

    # The first attempt has left the window, the second has not
    assert limiter.allow("a", "vote", 2, 1, now=T0 + timedelta(seconds=61)).allowed
    assert not limiter.allow("a", "vote", 2, 1, now=T0 + timedelta(seconds=62)).allowed


def test_database_counter_row(app):
    limiter = DatabaseRateLimiter()
    limiter.allow("user:1", "activate", 5, 1, now=T0)
    limiter.allow("user:1", "activate", 5, 1, now=T0 + timedelta(seconds=5))

    row = RateLimitCounter.query.filter_by(identifier="user:1", action="activate").one()
    assert row.count == 2
    assert row.window_start == T0

    limiter.allow("user:1", "activate", 5, 1, now=T0 + timedelta(minutes=3))
    db.session.refresh(row)
    assert row.count == 1
    assert row.window_start == T0 + timedelta(minutes=3)


# ============================================
# CONFIGURED LIMITS
# ============================================


def test_check_rate_limit_uses_configured_limits(app):
    app.config["RATE_LIMITS"] = dict(app.config["RATE_LIMITS"], login=(2, 15))

    check_rate_limit("10.0.0.9", "login", now=T0)
    decision = check_rate_limit("10.0.0.9", "login", now=T0)
    assert decision.remaining == 0

    with pytest.raises(RateLimitedError) as exc:
        check_rate_limit("10.0.0.9", "login", now=T0)
    assert exc.value.http_status == 429


def test_init_rate_limiter_picks_backend(app):
    app.config["RATE_LIMIT_STORAGE"] = "memory"
    init_rate_limiter(app)
    assert isinstance(get_rate_limiter(), InMemoryRateLimiter)

    app.config["RATE_LIMIT_STORAGE"] = "redis"
    with pytest.raises(ValueError):
        init_rate_limiter(app)
