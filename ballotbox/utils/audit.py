from typing import Optional, Dict, Any
from flask import current_app, request, has_request_context
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity, get_jwt

from ..extensions import db
from ..models.audit_log import AuditLog
from .ids import as_uuid


def _optional_actor():
    """
    Returns (user_id, role) or (None, None).
    Works for operator, kiosk and CLI calls.
    """
    if not has_request_context():
        return None, None
    try:
        verify_jwt_in_request(optional=True)
        claims = get_jwt()
        return get_jwt_identity(), claims.get("role")
    except Exception:
        return None, None


def audit_log(
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Stage an audit row on the current session; the caller commits.

    Callers must not put a ballot token code and a voter id in the same row.
    """
    user_id, role = _optional_actor()

    ip = ua = None
    if has_request_context():
        ip = request.remote_addr
        ua = request.headers.get("User-Agent")

    log = AuditLog(
        actor_user_id=as_uuid(user_id) if user_id else None,
        actor_role=role,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id else None,
        ip_address=ip,
        user_agent=ua[:255] if ua else None,
        details=details or None,
    )
    db.session.add(log)


def safe_audit(action: str, entity_type: str | None = None, entity_id: str | None = None, details: dict | None = None):
    """
    Best-effort audit committed on its own.
    Does not break the endpoint if auditing fails.
    """
    try:
        audit_log(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details or {},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Audit logging failed: %s", action)
