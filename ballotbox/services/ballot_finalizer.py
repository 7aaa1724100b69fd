"""
Casting a ballot: the point where the voter link is dropped.

`finalize_vote` runs in a single transaction:

1. voting -> used on the token, clearing `voter_id` in the same UPDATE.
   The UPDATE is pinned to the voter id read just before, so the id held in
   memory is exactly the one that was cleared.
2. The voter captured in step 1 is marked `voted`.
3. An anonymous Vote row is inserted with the token's station level.

After commit the Vote is reachable only through its token, and the token no
longer points at anyone.
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models.ballot_token import BallotToken
from ..models.party import Party
from ..models.vote import Vote
from ..models.voter import Voter
from ..utils.clock import utcnow
from .exceptions import InvalidStateError, NotFoundError, StorageFailureError
from .token_batches import normalize_code
from .token_lifecycle import compare_and_set, load_token, raise_for_current_state, voter_link_matches

UNKNOWN_STATION = "unknown"


def finalize_vote(
    code: str,
    party_id: int | None = None,
    abstain: bool = False,
    now: datetime | None = None,
) -> Vote:
    if abstain:
        party_id = None
    elif party_id is None:
        raise ValueError("party_id is required unless abstaining")

    code = normalize_code(code)
    now = now or utcnow()

    token = load_token(code)
    if token.status != BallotToken.STATUS_VOTING:
        raise InvalidStateError(token.status)

    if party_id is not None and db.session.get(Party, party_id) is None:
        raise NotFoundError("Party not found")

    token_id = token.id
    station_level = token.station_level or UNKNOWN_STATION
    voter_pk = token.voter_id

    try:
        severed = compare_and_set(
            [BallotToken.id == token_id, voter_link_matches(voter_pk)],
            BallotToken.STATUS_VOTING,
            {"status": BallotToken.STATUS_USED, "used_at": now, "voter_id": None},
        )
        if not severed:
            raise_for_current_state(code)

        if voter_pk is not None:
            marked = db.session.execute(
                update(Voter)
                .where(Voter.id == voter_pk, Voter.vote_status.is_(None))
                .values(vote_status=Voter.STATUS_VOTED, voted_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            if not marked:
                current_app.logger.warning("Ballot cast for a voter who already had a terminal status")

        vote = Vote(
            party_id=party_id,
            is_abstain=bool(abstain),
            station_level=station_level,
            token_id=token_id,
            created_at=now,
        )
        db.session.add(vote)
        db.session.commit()
    except IntegrityError:
        # A vote row for this token already exists
        db.session.rollback()
        raise InvalidStateError(BallotToken.STATUS_USED)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("DB error recording vote")
        raise StorageFailureError()

    return vote


def vote_results() -> dict:
    """Per-party totals including parties with no votes, plus abstentions."""
    counts = dict(
        db.session.query(Vote.party_id, db.func.count(Vote.id))
        .filter(Vote.is_abstain.is_(False))
        .group_by(Vote.party_id)
        .all()
    )
    abstain = db.session.query(db.func.count(Vote.id)).filter(Vote.is_abstain.is_(True)).scalar() or 0
    total = db.session.query(db.func.count(Vote.id)).scalar() or 0

    parties = Party.query.order_by(Party.number.asc()).all()
    return {
        "parties": [
            {
                "id": p.id,
                "name": p.name,
                "number": p.number,
                "votes": int(counts.get(p.id, 0)),
            }
            for p in parties
        ],
        "abstain": int(abstain),
        "total": int(total),
    }


def votes_by_station() -> dict:
    rows = (
        db.session.query(Vote.station_level, db.func.count(Vote.id))
        .group_by(Vote.station_level)
        .all()
    )
    return {station: int(count) for station, count in rows}
