from datetime import datetime, timezone
from flask import Blueprint, request, current_app, abort
from flasgger import swag_from
from sqlalchemy.exc import SQLAlchemyError
from flask_jwt_extended import jwt_required, get_jwt_identity, get_jwt
from marshmallow import Schema, fields, validate

from ...utils.rbac import admin_required
from ...utils.audit import safe_audit
from ...utils.validation import validate_or_abort
from ...models.audit_log import AuditLog
from ...services import roster

admin_bp = Blueprint("admin", __name__)


class ResetSchema(Schema):
    mode = fields.Str(required=True, validate=validate.OneOf(roster.RESET_MODES))
    confirm = fields.Bool(required=True, validate=validate.Equal(True))


reset_schema = ResetSchema()


def _parse_iso(s: str) -> datetime:
    """
    Accepts:
      - 'YYYY-MM-DDTHH:MM:SS'
      - 'YYYY-MM-DDTHH:MM:SSZ'
      - 'YYYY-MM-DDTHH:MM:SS+07:00'
    Returns a naive UTC datetime to compare against stored timestamps.
    """
    s = (s or "").strip()
    if not s:
        raise ValueError("Empty datetime string")

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


@admin_bp.post("/reset")
@jwt_required()
@admin_required
@swag_from({
    "tags": ["Admin"],
    "security": [{"BearerAuth": []}],
    "summary": "Reset the election data (admin only)",
    "description": (
        "`votes`: delete votes, ballot tokens and print logs, and clear every voter's status.\n"
        "`all`: additionally delete the voter roster."
    ),
    "parameters": [{
        "in": "body",
        "name": "body",
        "required": True,
        "schema": {
            "type": "object",
            "properties": {
                "mode": {"type": "string", "enum": ["votes", "all"]},
                "confirm": {"type": "boolean", "example": True},
            },
            "required": ["mode", "confirm"],
        },
    }],
    "responses": {200: {"description": "Reset done"}, 400: {"description": "Validation error"}, 403: {"description": "Forbidden"}},
})
def reset():
    payload = validate_or_abort(reset_schema)

    roster.reset_system(payload["mode"])
    current_app.logger.warning("System reset mode=%s by user=%s", payload["mode"], get_jwt_identity())

    safe_audit(action="SYSTEM_RESET", entity_type="ADMIN", details={"mode": payload["mode"]})
    return {"success": True, "message": f"Reset ({payload['mode']}) complete"}, 200


@admin_bp.get("/audit-logs")
@jwt_required()
@admin_required
@swag_from({
    "tags": ["Admin"],
    "security": [{"BearerAuth": []}],
    "summary": "Query audit logs (admin only)",
    "parameters": [
        {"in": "query", "name": "action", "type": "string", "required": False},
        {"in": "query", "name": "entity_type", "type": "string", "required": False},
        {"in": "query", "name": "from", "type": "string", "required": False, "description": "ISO date-time"},
        {"in": "query", "name": "to", "type": "string", "required": False, "description": "ISO date-time"},
        {"in": "query", "name": "limit", "type": "integer", "required": False, "default": 50},
        {"in": "query", "name": "offset", "type": "integer", "required": False, "default": 0},
    ],
    "responses": {200: {"description": "Logs"}, 400: {"description": "Bad request"}, 403: {"description": "Forbidden"}}
})
def audit_logs():
    action = request.args.get("action")
    entity_type = request.args.get("entity_type")
    from_dt = request.args.get("from")
    to_dt = request.args.get("to")

    try:
        limit = min(int(request.args.get("limit", 50)), 200)
        offset = int(request.args.get("offset", 0))
    except ValueError:
        abort(400, description={"code": "VALIDATION_ERROR", "message": "Invalid limit/offset"})

    q = AuditLog.query

    if action:
        q = q.filter(AuditLog.action == action)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)

    try:
        if from_dt:
            q = q.filter(AuditLog.created_at >= _parse_iso(from_dt))
        if to_dt:
            q = q.filter(AuditLog.created_at <= _parse_iso(to_dt))
    except ValueError:
        abort(400, description={"code": "VALIDATION_ERROR", "message": "Invalid from/to datetime. Use ISO format."})

    try:
        total = q.count()
        logs = (
            q.order_by(AuditLog.created_at.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
    except SQLAlchemyError:
        current_app.logger.exception("DB error querying audit logs")
        abort(500)

    # Best-effort audit (don't break audit viewing if audit fails)
    safe_audit(
        action="ADMIN_AUDIT_LOGS_VIEWED",
        entity_type="ADMIN",
        details={
            "role": (get_jwt() or {}).get("role"),
            "filters": {
                "action": action,
                "entity_type": entity_type,
                "from": from_dt,
                "to": to_dt,
                "limit": limit,
                "offset": offset,
            },
            "result_count": len(logs),
            "total": total,
        },
    )

    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "logs": [
            {
                "id": str(l.id),
                "created_at": l.created_at.isoformat() + "Z",
                "actor_user_id": str(l.actor_user_id) if l.actor_user_id else None,
                "actor_role": l.actor_role,
                "action": l.action,
                "entity_type": l.entity_type,
                "entity_id": l.entity_id,
                "ip_address": l.ip_address,
                "user_agent": l.user_agent,
                "details": l.details,
            }
            for l in logs
        ],
    }, 200
