"""Attempt counters in front of login, token activation, scanning and voting."""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
import threading

from flask import current_app
from sqlalchemy import update, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models.rate_limit_counter import RateLimitCounter
from ..utils.clock import utcnow
from .exceptions import RateLimitedError

# Conditional updates that lose a race are retried this many times, then
# the attempt is refused.
_MAX_RACE_RETRIES = 3


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int


class InMemoryRateLimiter:
    """
    Exact sliding window kept in process memory.

    Counts are lost on restart and are not shared between workers.
    """

    def __init__(self) -> None:
        self._attempts: dict[tuple[str, str], list] = defaultdict(list)
        self._lock = threading.Lock()

    def allow(
        self,
        identifier: str,
        action: str,
        max_attempts: int,
        window_minutes: int,
        now: datetime | None = None,
    ) -> RateLimitDecision:
        now = now or utcnow()
        cutoff = now - timedelta(minutes=window_minutes)
        key = (identifier, action)

        with self._lock:
            attempts = [ts for ts in self._attempts[key] if ts > cutoff]
            if len(attempts) >= max_attempts:
                self._attempts[key] = attempts
                return RateLimitDecision(allowed=False, remaining=0)

            attempts.append(now)
            self._attempts[key] = attempts
            return RateLimitDecision(allowed=True, remaining=max_attempts - len(attempts))

    def reset(self, identifier: str, action: str) -> None:
        with self._lock:
            self._attempts.pop((identifier, action), None)

    def cleanup(self, max_age_minutes: int = 60, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - timedelta(minutes=max_age_minutes)
        with self._lock:
            stale = [
                key for key, attempts in self._attempts.items()
                if not any(ts > cutoff for ts in attempts)
            ]
            for key in stale:
                del self._attempts[key]
        return len(stale)


class DatabaseRateLimiter:
    """
    One counter row per (identifier, action) with a rolling window start.

    When the window has passed the row is restarted; otherwise the count is
    bumped with a conditional `count < max_attempts` update, so concurrent
    callers can at worst be refused early, never admitted past the limit.
    """

    def allow(
        self,
        identifier: str,
        action: str,
        max_attempts: int,
        window_minutes: int,
        now: datetime | None = None,
    ) -> RateLimitDecision:
        now = now or utcnow()
        cutoff = now - timedelta(minutes=window_minutes)

        for _ in range(_MAX_RACE_RETRIES):
            row = RateLimitCounter.query.filter_by(identifier=identifier, action=action).first()

            if row is None:
                if max_attempts < 1:
                    return RateLimitDecision(allowed=False, remaining=0)
                try:
                    db.session.add(RateLimitCounter(
                        identifier=identifier, action=action, count=1, window_start=now,
                    ))
                    db.session.commit()
                    return RateLimitDecision(allowed=True, remaining=max_attempts - 1)
                except IntegrityError:
                    # Another request created the row first
                    db.session.rollback()
                    continue

            if row.window_start <= cutoff:
                result = db.session.execute(
                    update(RateLimitCounter)
                    .where(
                        RateLimitCounter.id == row.id,
                        RateLimitCounter.window_start == row.window_start,
                    )
                    .values(count=1, window_start=now)
                    .execution_options(synchronize_session=False)
                )
                db.session.commit()
                if result.rowcount == 1:
                    return RateLimitDecision(allowed=True, remaining=max_attempts - 1)
                continue

            seen = row.count
            result = db.session.execute(
                update(RateLimitCounter)
                .where(
                    RateLimitCounter.id == row.id,
                    RateLimitCounter.window_start > cutoff,
                    RateLimitCounter.count < max_attempts,
                )
                .values(count=RateLimitCounter.count + 1)
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
            if result.rowcount == 1:
                return RateLimitDecision(allowed=True, remaining=max(max_attempts - seen - 1, 0))
            return RateLimitDecision(allowed=False, remaining=0)

        return RateLimitDecision(allowed=False, remaining=0)

    def reset(self, identifier: str, action: str) -> None:
        db.session.execute(
            delete(RateLimitCounter).where(
                RateLimitCounter.identifier == identifier,
                RateLimitCounter.action == action,
            )
        )
        db.session.commit()

    def cleanup(self, max_age_minutes: int = 60, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - timedelta(minutes=max_age_minutes)
        result = db.session.execute(
            delete(RateLimitCounter).where(RateLimitCounter.window_start < cutoff)
        )
        db.session.commit()
        return result.rowcount


def init_rate_limiter(app) -> None:
    storage = app.config.get("RATE_LIMIT_STORAGE", "database")
    if storage == "memory":
        app.extensions["rate_limiter"] = InMemoryRateLimiter()
    elif storage == "database":
        app.extensions["rate_limiter"] = DatabaseRateLimiter()
    else:
        raise ValueError(f"Unknown RATE_LIMIT_STORAGE: {storage}")


def get_rate_limiter():
    return current_app.extensions["rate_limiter"]


def check_rate_limit(identifier: str, action: str, now: datetime | None = None) -> RateLimitDecision:
    """
    Count one attempt for `identifier` on `action` using the configured limits.

    Raises RateLimitedError when the attempt is refused.
    """
    max_attempts, window_minutes = current_app.config["RATE_LIMITS"][action]
    try:
        decision = get_rate_limiter().allow(identifier, action, max_attempts, window_minutes, now=now)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("DB error checking rate limit action=%s", action)
        # Fail closed
        decision = RateLimitDecision(allowed=False, remaining=0)

    if not decision.allowed:
        current_app.logger.info("Rate limit hit action=%s", action)
        raise RateLimitedError()
    return decision
