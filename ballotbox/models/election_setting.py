from ..utils.clock import utcnow
from ..extensions import db


class ElectionSetting(db.Model):
    __tablename__ = "election_settings"

    KEY_STATUS = "status"
    KEY_OPEN_TIME = "open_time"
    KEY_CLOSE_TIME = "close_time"

    key = db.Column(db.String(40), primary_key=True)
    value = db.Column(db.Text, nullable=True)

    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    updated_by = db.Column(db.Uuid, nullable=True)

    @staticmethod
    def as_dict() -> dict:
        return {row.key: row.value for row in ElectionSetting.query.all()}
