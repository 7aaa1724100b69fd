import secrets
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models.ballot_token import BallotToken
from ..models.print_batch import PrintBatch
from ..utils.clock import utcnow
from ..utils.ids import as_uuid
from .exceptions import BatchInUseError, NotFoundError, StorageFailureError

# No I, O, 0 or 1: codes are typed in by hand from the printed slip
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_token_code(prefix: str | None = None) -> str:
    prefix = prefix or current_app.config["TOKEN_CODE_PREFIX"]
    part1 = "".join(secrets.choice(CODE_ALPHABET) for _ in range(4))
    part2 = "".join(secrets.choice(CODE_ALPHABET) for _ in range(8))
    return f"{prefix}-{part1}-{part2}"


def normalize_code(raw_code: str) -> str:
    return (raw_code or "").strip().upper()



def generate_batch_id(now: datetime | None = None) -> str:
    now = now or utcnow()
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(4))
    return f"BATCH-{now:%Y%m%d}-{now:%H%M%S}-{suffix}"


def generate_codes(count: int, prefix: str | None = None) -> list[str]:
    codes: set[str] = set()
    while len(codes) < count:
        codes.add(generate_token_code(prefix))
    return sorted(codes)


@dataclass
class TokenBatch:
    batch_id: str
    codes: list[str] = field(default_factory=list)
    station_level: str | None = None

    @property
    def count(self) -> int:
        return len(self.codes)


def preview_batch(count: int) -> TokenBatch:
    """Codes for a print preview; nothing is stored."""
    _check_count(count)
    return TokenBatch(batch_id=generate_batch_id(), codes=generate_codes(count))


def create_batch(count: int, station_level: str | None = None, printed_by=None) -> TokenBatch:
    """Store `count` new inactive tokens plus a print-log row."""
    _check_count(count)
    batch = TokenBatch(batch_id=generate_batch_id(), station_level=station_level)

    for _ in range(3):
        codes = generate_codes(count)
        taken = {
            c for (c,) in db.session.query(BallotToken.code).filter(BallotToken.code.in_(codes)).all()
        }
        batch.codes = [c for c in codes if c not in taken]
        while len(batch.codes) < count:
            extra = generate_token_code()
            if extra not in taken and extra not in batch.codes:
                batch.codes.append(extra)

        try:
            for code in batch.codes:
                db.session.add(BallotToken(
                    code=code,
                    status=BallotToken.STATUS_INACTIVE,
                    print_batch_id=batch.batch_id,
                ))
            db.session.add(PrintBatch(
                batch_id=batch.batch_id,
                token_count=count,
                station_level=station_level,
                printed_by=as_uuid(printed_by),
            ))
            db.session.commit()
            return batch
        except IntegrityError:
            # A concurrent batch took one of the codes
            db.session.rollback()
            current_app.logger.warning("Token code collision creating batch %s; regenerating", batch.batch_id)
            batch.batch_id = generate_batch_id()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("DB error creating token batch")
            raise StorageFailureError()

    raise StorageFailureError()


def cancel_batch(batch_id: str) -> int:
    """
    Delete a printed batch. Only allowed while every token in it is still
    inactive, so no issued ballot or voter link can be discarded.
    """
    log = PrintBatch.query.filter_by(batch_id=batch_id).first()
    token_total = db.session.query(func.count(BallotToken.id)).filter_by(print_batch_id=batch_id).scalar() or 0
    if log is None and token_total == 0:
        raise NotFoundError("Print batch not found")

    issued = (
        db.session.query(func.count(BallotToken.id))
        .filter(BallotToken.print_batch_id == batch_id, BallotToken.status != BallotToken.STATUS_INACTIVE)
        .scalar()
        or 0
    )
    if issued:
        raise BatchInUseError()

    try:
        result = db.session.execute(
            delete(BallotToken).where(
                BallotToken.print_batch_id == batch_id,
                BallotToken.status == BallotToken.STATUS_INACTIVE,
            )
        )
        if result.rowcount != token_total:
            # A token was activated after the check above
            db.session.rollback()
            raise BatchInUseError()
        if log is not None:
            db.session.delete(log)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("DB error cancelling batch %s", batch_id)
        raise StorageFailureError()

    return result.rowcount


def list_batches() -> list[PrintBatch]:
    return PrintBatch.query.order_by(PrintBatch.printed_at.desc()).all()


def _check_count(count: int) -> None:
    limit = current_app.config["TOKEN_BATCH_MAX"]
    if count < 1 or count > limit:
        raise ValueError(f"count must be between 1 and {limit}")
