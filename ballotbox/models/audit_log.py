import uuid
from ..utils.clock import utcnow
from sqlalchemy.dialects.postgresql import JSONB
from ..extensions import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)

    # Who performed the action (nullable for kiosk/system)
    actor_user_id = db.Column(db.Uuid, nullable=True, index=True)
    actor_role = db.Column(db.String(30), nullable=True)

    # What happened
    action = db.Column(db.String(80), nullable=False, index=True)  # e.g. TOKEN_BATCH_CREATED
    entity_type = db.Column(db.String(50), nullable=True, index=True)  # e.g. TOKEN_BATCH, VOTER, ELECTION
    entity_id = db.Column(db.String(64), nullable=True, index=True)

    # Request context
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    # Never put a token code next to a voter id here
    details = db.Column(db.JSON().with_variant(JSONB(), "postgresql"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
