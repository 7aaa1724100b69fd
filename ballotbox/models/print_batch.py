import uuid
from ..utils.clock import utcnow
from ..extensions import db


class PrintBatch(db.Model):
    __tablename__ = "print_batches"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    batch_id = db.Column(db.String(40), nullable=False, unique=True, index=True)
    token_count = db.Column(db.Integer, nullable=False)

    # Informational only; the binding station is recorded on activation
    station_level = db.Column(db.String(30), nullable=True)

    printed_by = db.Column(db.Uuid, nullable=True)
    printed_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
