"""
Election clock gate.

The persisted election status is one of `open`, `closed` or `scheduled`.
`scheduled` is resolved against the wall clock at a fixed UTC offset taken
from configuration, so the result does not depend on the host's local zone.

Every token transition receives an `ElectionGate` and calls `require_open()`
before touching the store. Tests build a gate directly with a fixed clock.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models.election_setting import ElectionSetting
from .exceptions import ElectionClosedError, StorageFailureError

STATUS_OPEN = "open"
STATUS_CLOSED = "closed"
STATUS_SCHEDULED = "scheduled"
VALID_STATUSES = (STATUS_OPEN, STATUS_CLOSED, STATUS_SCHEDULED)

_UNSET = object()


def election_timezone(offset_hours: float | None = None) -> timezone:
    if offset_hours is None:
        offset_hours = current_app.config["ELECTION_UTC_OFFSET_HOURS"]
    return timezone(timedelta(hours=offset_hours))


def parse_schedule_time(value: str | None, tz: timezone) -> Optional[datetime]:
    """Naive values are wall-clock times at the election offset."""
    if not value:
        return None
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


@dataclass
class ElectionSchedule:
    status: str = STATUS_CLOSED
    open_time: Optional[datetime] = None
    close_time: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "scheduled_open": self.open_time.isoformat() if self.open_time else None,
            "scheduled_close": self.close_time.isoformat() if self.close_time else None,
        }


def load_schedule(tz: timezone | None = None) -> ElectionSchedule:
    tz = tz or election_timezone()
    values = ElectionSetting.as_dict()
    status = values.get(ElectionSetting.KEY_STATUS) or STATUS_CLOSED
    if status not in VALID_STATUSES:
        current_app.logger.warning("Unknown election status %r stored; treating as closed", status)
        status = STATUS_CLOSED
    return ElectionSchedule(
        status=status,
        open_time=parse_schedule_time(values.get(ElectionSetting.KEY_OPEN_TIME), tz),
        close_time=parse_schedule_time(values.get(ElectionSetting.KEY_CLOSE_TIME), tz),
    )


def save_schedule(status=None, open_time=_UNSET, close_time=_UNSET, updated_by=None) -> ElectionSchedule:
    """
    Update any subset of the election settings. Passing `None` for a time
    clears it; leaving it out keeps the stored value.
    """
    tz = election_timezone()
    changes = {}
    if status is not None:
        if status not in VALID_STATUSES:
            raise ValueError(f"Invalid election status: {status}")
        changes[ElectionSetting.KEY_STATUS] = status
    if open_time is not _UNSET:
        changes[ElectionSetting.KEY_OPEN_TIME] = _format_time(open_time, tz)
    if close_time is not _UNSET:
        changes[ElectionSetting.KEY_CLOSE_TIME] = _format_time(close_time, tz)

    try:
        for key, value in changes.items():
            row = db.session.get(ElectionSetting, key)
            if row is None:
                row = ElectionSetting(key=key)
                db.session.add(row)
            row.value = value
            row.updated_by = updated_by
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("DB error saving election settings")
        raise StorageFailureError()

    return load_schedule(tz)


def _format_time(value, tz: timezone) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        value = parse_schedule_time(value, tz)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(tz).isoformat()


class ElectionGate:
    def __init__(
        self,
        schedule: ElectionSchedule,
        tz: timezone,
        clock: Callable[[], datetime] | None = None,
    ):
        self.schedule = schedule
        self.tz = tz
        self._clock = clock

    @classmethod
    def from_store(cls, clock: Callable[[], datetime] | None = None) -> "ElectionGate":
        tz = election_timezone()
        return cls(load_schedule(tz), tz, clock=clock)

    def now(self) -> datetime:
        if self._clock is not None:
            return self._clock().astimezone(self.tz)
        return datetime.now(self.tz)

    def effective_status(self) -> str:
        schedule = self.schedule
        if schedule.status != STATUS_SCHEDULED:
            return schedule.status

        if schedule.open_time is None:
            return STATUS_CLOSED

        now = self.now()
        if schedule.open_time <= now and (schedule.close_time is None or now < schedule.close_time):
            return STATUS_OPEN
        return STATUS_CLOSED

    def is_open(self) -> bool:
        return self.effective_status() == STATUS_OPEN

    def reopens_at(self) -> Optional[datetime]:
        schedule = self.schedule
        if schedule.status == STATUS_SCHEDULED and schedule.open_time and self.now() < schedule.open_time:
            return schedule.open_time
        return None

    def require_open(self) -> None:
        if not self.is_open():
            raise ElectionClosedError(reopens_at=self.reopens_at())

    def describe(self) -> dict:
        data = self.schedule.to_dict()
        data["raw_status"] = data.pop("status")
        data["status"] = self.effective_status()
        data["server_time"] = self.now().isoformat()
        return data
