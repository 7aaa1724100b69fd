"""
Expiry sweep for tokens activated but never scanned.

Run from a scheduler (`flask sweep-tokens` or POST /api/tokens/sweep). Each
timed-out token is handled in its own transaction, in this order:

1. capture the token's voter link,
2. mark that voter `absent`,
3. activated -> expired with the link cleared, pinned to the captured voter
   and to `activated_at` still being past the cutoff.

If step 3 matches no row a kiosk scan got there first; the transaction is
rolled back (undoing step 2) and the token is left to the voting flow.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models.ballot_token import BallotToken
from ..models.voter import Voter
from ..utils.clock import utcnow
from .exceptions import StorageFailureError
from .token_lifecycle import compare_and_set, voter_link_matches


@dataclass
class SweepResult:
    expired_count: int = 0
    skipped_count: int = 0
    absent_voter_ids: list[str] = field(default_factory=list)

    @property
    def absent_count(self) -> int:
        return len(self.absent_voter_ids)


def sweep_expired_tokens(timeout_minutes: int | None = None, now: datetime | None = None) -> SweepResult:
    if timeout_minutes is None:
        timeout_minutes = current_app.config["TOKEN_EXPIRY_MINUTES"]
    if timeout_minutes < 1:
        raise ValueError("timeout_minutes must be at least 1")

    now = now or utcnow()
    cutoff = now - timedelta(minutes=timeout_minutes)

    candidates = (
        db.session.query(BallotToken.id, BallotToken.voter_id, Voter.voter_id)
        .outerjoin(Voter, Voter.id == BallotToken.voter_id)
        .filter(
            BallotToken.status == BallotToken.STATUS_ACTIVATED,
            BallotToken.activated_at < cutoff,
        )
        .all()
    )
    db.session.rollback()

    result = SweepResult()
    for token_id, voter_pk, voter_ref in candidates:
        try:
            marked_absent = False
            if voter_pk is not None:
                marked_absent = db.session.execute(
                    update(Voter)
                    .where(Voter.id == voter_pk, Voter.vote_status.is_(None))
                    .values(vote_status=Voter.STATUS_ABSENT)
                    .execution_options(synchronize_session=False)
                ).rowcount == 1

            expired = compare_and_set(
                [
                    BallotToken.id == token_id,
                    voter_link_matches(voter_pk),
                    BallotToken.activated_at < cutoff,
                ],
                BallotToken.STATUS_ACTIVATED,
                {"status": BallotToken.STATUS_EXPIRED, "expired_at": now, "voter_id": None},
            )
            if not expired:
                db.session.rollback()
                result.skipped_count += 1
                current_app.logger.debug("Expiry sweep lost race for token %s", token_id)
                continue

            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("DB error expiring ballot token %s", token_id)
            raise StorageFailureError()

        result.expired_count += 1
        if marked_absent:
            result.absent_voter_ids.append(voter_ref)

    current_app.logger.info(
        "Expiry sweep timeout=%smin expired=%s absent=%s skipped=%s",
        timeout_minutes, result.expired_count, result.absent_count, result.skipped_count,
    )
    return result
