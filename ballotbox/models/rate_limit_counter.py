from ..utils.clock import utcnow
from ..extensions import db


class RateLimitCounter(db.Model):
    __tablename__ = "rate_limit_counters"

    id = db.Column(db.Integer, primary_key=True)
    identifier = db.Column(db.String(255), nullable=False)
    action = db.Column(db.String(40), nullable=False)

    count = db.Column(db.Integer, nullable=False, default=0)
    window_start = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        db.UniqueConstraint("identifier", "action", name="uq_rate_limit_identifier_action"),
    )
