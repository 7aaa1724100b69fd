import uuid
from ..utils.clock import utcnow
from ..extensions import db


class Vote(db.Model):
    """
    One anonymous ballot. It has no voter column; the only reference is the
    token it was cast through, whose voter link is cleared in the same
    transaction that inserts this row.
    """
    __tablename__ = "votes"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)

    # null means abstain
    party_id = db.Column(db.Integer, db.ForeignKey("parties.id"), nullable=True, index=True)
    is_abstain = db.Column(db.Boolean, nullable=False, default=False)

    station_level = db.Column(db.String(30), nullable=False)
    token_id = db.Column(db.Uuid, db.ForeignKey("ballot_tokens.id"), nullable=False, unique=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "(is_abstain AND party_id IS NULL) OR (NOT is_abstain AND party_id IS NOT NULL)",
            name="ck_votes_choice",
        ),
        db.Index("ix_votes_station_level", "station_level"),
    )
