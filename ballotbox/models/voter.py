import uuid
from ..utils.clock import utcnow
from ..extensions import db


class Voter(db.Model):
    __tablename__ = "voters"

    STATUS_VOTED = "voted"
    STATUS_ABSENT = "absent"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)

    # Roster id printed on the voter's card
    voter_id = db.Column(db.String(32), nullable=False, unique=True, index=True)

    prefix = db.Column(db.String(30), nullable=True)
    first_name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=False)

    # Grouping used for result breakdowns
    level = db.Column(db.String(30), nullable=True, index=True)
    room = db.Column(db.String(30), nullable=True)

    # null until voted/absent; never goes back except through a full reset
    vote_status = db.Column(db.String(10), nullable=True, index=True)
    voted_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "vote_status IS NULL OR vote_status IN ('voted', 'absent')",
            name="ck_voters_vote_status",
        ),
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.prefix, self.first_name, self.last_name) if p)
