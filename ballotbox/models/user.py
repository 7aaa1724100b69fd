import uuid
from ..utils.clock import utcnow
from ..extensions import db
from ..utils.security import hash_password, verify_password


class User(db.Model):
    """Poll worker or administrator account."""
    __tablename__ = "users"

    ROLE_ADMIN = "ADMIN"
    ROLE_POLL_WORKER = "POLL_WORKER"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    username = db.Column(db.String(80), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(120), nullable=True)

    role = db.Column(db.String(30), nullable=False, default=ROLE_POLL_WORKER)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_login_at = db.Column(db.DateTime, nullable=True)

    def set_password(self, raw_password: str) -> None:
        self.password_hash = hash_password(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return verify_password(raw_password, self.password_hash)
