from ..utils.clock import utcnow
from ..extensions import db


class TokenBlocklist(db.Model):
    """JWT ids revoked by operator logout."""
    __tablename__ = "token_blocklist"

    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(64), nullable=False, unique=True, index=True)
    token_type = db.Column(db.String(10), nullable=False, default="access")
    user_id = db.Column(db.Uuid, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @staticmethod
    def is_blocklisted(jti: str) -> bool:
        return db.session.query(TokenBlocklist.id).filter_by(jti=jti).scalar() is not None

    @staticmethod
    def revoke(jti: str, token_type: str, user_id=None) -> None:
        db.session.add(TokenBlocklist(jti=jti, token_type=token_type, user_id=user_id))
