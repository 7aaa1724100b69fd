"""
Ballot token state machine.

    inactive --activate--> activated --scan--> voting --submit--> used
                               |
                               +--sweep--> expired

Every transition is one conditional UPDATE guarded by the expected prior
status. Exactly one of several concurrent callers sees a matched row; the
others re-read the token and get a typed error describing its current state.
No row locks are taken.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models.ballot_token import BallotToken
from ..models.voter import Voter
from ..utils.clock import utcnow
from ..utils.ids import as_uuid
from .election_gate import ElectionGate
from .exceptions import (
    AlreadyAbsentError,
    AlreadyVotedError,
    InvalidStateError,
    NotFoundError,
    StationMismatchError,
    StorageFailureError,
    VoterHasActiveTokenError,
)
from .token_batches import normalize_code


@dataclass
class ActivationResult:
    token: BallotToken
    voter: Voter
    expires_at: datetime
    warning: str


def compare_and_set(criteria, expected_status: str, values: dict) -> bool:
    """
    UPDATE ballot_tokens SET <values> WHERE <criteria> AND status = <expected>.

    Returns True only when exactly one row matched. Does not commit.
    """
    result = db.session.execute(
        update(BallotToken)
        .where(*criteria, BallotToken.status == expected_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def voter_link_matches(voter_id):
    """Criterion pinning the voter link read before a transition."""
    if voter_id is None:
        return BallotToken.voter_id.is_(None)
    return BallotToken.voter_id == voter_id


def load_token(code: str) -> BallotToken:
    token = BallotToken.query.filter_by(code=code).first()
    if token is None:
        raise NotFoundError()
    return token


def raise_for_current_state(code: str):
    """Called after a lost conditional update; always raises."""
    db.session.rollback()
    token = load_token(code)
    current_app.logger.debug("Lost token transition race; token now %s", token.status)
    raise InvalidStateError(token.status)


def claim_unmarked_voter(voter_pk) -> bool:
    """
    No-op UPDATE matching the voter only while `vote_status` is still null.

    Run in the activation transaction so the status check and the token
    update commit together. Does not commit.
    """
    result = db.session.execute(
        update(Voter)
        .where(Voter.id == voter_pk, Voter.vote_status.is_(None))
        .values(vote_status=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def raise_for_voter_status(voter_pk):
    """Called after the voter turned out to be already marked; always raises."""
    db.session.rollback()
    voter = db.session.get(Voter, voter_pk)
    current_app.logger.debug("Voter status changed during activation; now %s", voter and voter.vote_status)
    if voter is not None and voter.vote_status == Voter.STATUS_VOTED:
        raise AlreadyVotedError()
    raise AlreadyAbsentError()


def activate_token(
    code: str,
    voter_ref: str,
    operator_id,
    station_level: str | None,
    gate: ElectionGate,
    now: datetime | None = None,
    expiry_minutes: int | None = None,
) -> ActivationResult:
    """
    inactive -> activated, binding the token to one voter.

    The station level given here is the one the token is bound to; kiosks of
    other stations will refuse it.
    """
    gate.require_open()

    code = normalize_code(code)
    now = now or utcnow()
    expiry_minutes = expiry_minutes or current_app.config["TOKEN_EXPIRY_MINUTES"]

    voter = Voter.query.filter_by(voter_id=(voter_ref or "").strip()).first()
    if voter is None:
        raise NotFoundError("Voter not found")
    if voter.vote_status == Voter.STATUS_VOTED:
        raise AlreadyVotedError()
    if voter.vote_status == Voter.STATUS_ABSENT:
        raise AlreadyAbsentError()

    token = load_token(code)
    if token.status != BallotToken.STATUS_INACTIVE:
        raise InvalidStateError(token.status)

    if BallotToken.query.filter_by(voter_id=voter.id).first() is not None:
        raise VoterHasActiveTokenError()

    values = {
        "status": BallotToken.STATUS_ACTIVATED,
        "voter_id": voter.id,
        "activated_by": as_uuid(operator_id),
        "activated_at": now,
        "station_level": station_level or token.station_level,
    }

    try:
        # The sweep may have marked the voter absent since the read above
        if not claim_unmarked_voter(voter.id):
            raise_for_voter_status(voter.id)
        if not compare_and_set([BallotToken.code == code], BallotToken.STATUS_INACTIVE, values):
            raise_for_current_state(code)
        db.session.commit()
    except IntegrityError:
        # Unique voter link: another terminal activated a token for this voter first
        db.session.rollback()
        raise VoterHasActiveTokenError()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("DB error activating ballot token")
        raise StorageFailureError()

    expires_at = now + timedelta(minutes=expiry_minutes)
    local_expiry = expires_at.replace(tzinfo=timezone.utc).astimezone(gate.tz)
    warning = (
        f"This ballot token expires in {expiry_minutes} minutes "
        f"(at {local_expiry:%H:%M}) if it is not scanned at a voting kiosk."
    )
    return ActivationResult(token=token, voter=voter, expires_at=expires_at, warning=warning)


def scan_token(
    code: str,
    station_level: str | None,
    gate: ElectionGate,
    now: datetime | None = None,
) -> BallotToken:
    """activated -> voting when a voter presents the token at a kiosk."""
    gate.require_open()

    code = normalize_code(code)
    now = now or utcnow()

    token = load_token(code)
    if token.status != BallotToken.STATUS_ACTIVATED:
        raise InvalidStateError(token.status)

    if station_level and token.station_level and station_level != token.station_level:
        raise StationMismatchError()

    values = {
        "status": BallotToken.STATUS_VOTING,
        "voting_started_at": now,
    }

    try:
        if not compare_and_set([BallotToken.code == code], BallotToken.STATUS_ACTIVATED, values):
            raise_for_current_state(code)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("DB error starting ballot session")
        raise StorageFailureError()

    return token


def token_counts() -> dict:
    counts = {status: 0 for status in BallotToken.VALID_STATUSES}
    rows = (
        db.session.query(BallotToken.status, db.func.count(BallotToken.id))
        .group_by(BallotToken.status)
        .all()
    )
    for status, count in rows:
        counts[status] = int(count)
    return counts
