from flask import current_app
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models.ballot_token import BallotToken
from ..models.party import Party
from ..models.print_batch import PrintBatch
from ..models.vote import Vote
from ..models.voter import Voter
from .exceptions import NotFoundError, StorageFailureError

RESET_VOTES = "votes"
RESET_ALL = "all"
RESET_MODES = (RESET_VOTES, RESET_ALL)

_ROSTER_FIELDS = ("prefix", "first_name", "last_name", "level", "room")


def get_voter(voter_ref: str) -> Voter:
    voter = Voter.query.filter_by(voter_id=(voter_ref or "").strip()).first()
    if voter is None:
        raise NotFoundError("Voter not found")
    return voter


def import_voters(records: list[dict]) -> dict:
    """
    Insert or update roster rows keyed by `voter_id`.

    Only roster fields are touched; `vote_status` is never changed here.
    """
    created = updated = 0
    existing = {
        v.voter_id: v
        for v in Voter.query.filter(Voter.voter_id.in_([r["voter_id"] for r in records])).all()
    }

    try:
        for record in records:
            voter = existing.get(record["voter_id"])
            if voter is None:
                voter = Voter(voter_id=record["voter_id"])
                db.session.add(voter)
                existing[voter.voter_id] = voter
                created += 1
            else:
                updated += 1
            for name in _ROSTER_FIELDS:
                if name in record:
                    setattr(voter, name, record[name])
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("DB error importing voters")
        raise StorageFailureError()

    return {"created": created, "updated": updated}


def create_party(name: str, number: int) -> Party:
    party = Party(name=name.strip(), number=number)
    try:
        db.session.add(party)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValueError(f"Party number {number} is already taken")
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("DB error creating party")
        raise StorageFailureError()
    return party


def voter_stats() -> dict:
    total = db.session.query(db.func.count(Voter.id)).scalar() or 0
    rows = (
        db.session.query(Voter.level, Voter.vote_status, db.func.count(Voter.id))
        .group_by(Voter.level, Voter.vote_status)
        .all()
    )

    by_level: dict = {}
    voted = absent = 0
    for level, status, count in rows:
        bucket = by_level.setdefault(level or "unassigned", {"total": 0, "voted": 0, "absent": 0})
        bucket["total"] += count
        if status == Voter.STATUS_VOTED:
            bucket["voted"] += count
            voted += count
        elif status == Voter.STATUS_ABSENT:
            bucket["absent"] += count
            absent += count

    return {
        "total": int(total),
        "voted": int(voted),
        "absent": int(absent),
        "by_level": by_level,
    }


def reset_system(mode: str) -> None:
    """
    Full reset. The only code path allowed to take a voter's status back
    to null.

    `votes`: delete votes, tokens and print logs; clear every voter's status.
    `all`: additionally delete the roster.
    """
    if mode not in RESET_MODES:
        raise ValueError(f"Invalid reset mode: {mode}")

    try:
        db.session.execute(delete(Vote))
        db.session.execute(delete(BallotToken))
        db.session.execute(delete(PrintBatch))
        if mode == RESET_ALL:
            db.session.execute(delete(Voter))
        else:
            db.session.execute(
                update(Voter)
                .values(vote_status=None, voted_at=None)
                .execution_options(synchronize_session=False)
            )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("DB error resetting system mode=%s", mode)
        raise StorageFailureError()
