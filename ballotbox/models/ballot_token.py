import uuid
from ..utils.clock import utcnow
from ..extensions import db


class BallotToken(db.Model):
    __tablename__ = "ballot_tokens"

    STATUS_INACTIVE = "inactive"
    STATUS_ACTIVATED = "activated"
    STATUS_VOTING = "voting"
    STATUS_USED = "used"
    STATUS_EXPIRED = "expired"
    VALID_STATUSES = (STATUS_INACTIVE, STATUS_ACTIVATED, STATUS_VOTING, STATUS_USED, STATUS_EXPIRED)

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    status = db.Column(db.String(12), nullable=False, default=STATUS_INACTIVE, index=True)

    # Identity link; unique so one voter can hold at most one live token
    voter_id = db.Column(db.Uuid, db.ForeignKey("voters.id"), nullable=True, unique=True)

    station_level = db.Column(db.String(30), nullable=True)
    print_batch_id = db.Column(db.String(40), nullable=True, index=True)
    activated_by = db.Column(db.Uuid, nullable=True)

    activated_at = db.Column(db.DateTime, nullable=True)
    voting_started_at = db.Column(db.DateTime, nullable=True)
    used_at = db.Column(db.DateTime, nullable=True)
    expired_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('inactive', 'activated', 'voting', 'used', 'expired')",
            name="ck_ballot_tokens_status",
        ),
        db.CheckConstraint(
            "voter_id IS NULL OR status IN ('activated', 'voting')",
            name="ck_ballot_tokens_voter_link",
        ),
    )
