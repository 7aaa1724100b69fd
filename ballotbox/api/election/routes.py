from flask import Blueprint, abort
from flasgger import swag_from
from flask_jwt_extended import get_jwt_identity, jwt_required

from ...schemas.election import ElectionStatusUpdateSchema
from ...services.election_gate import ElectionGate, election_timezone, save_schedule
from ...utils.audit import safe_audit
from ...utils.ids import as_uuid
from ...utils.rbac import admin_required
from ...utils.validation import validate_or_abort

election_bp = Blueprint("election", __name__)

status_update_schema = ElectionStatusUpdateSchema()


@election_bp.get("/status")
@swag_from({
    "tags": ["Election"],
    "summary": "Current election status (public)",
    "description": (
        "`status` is the effective open/closed state at server time; `raw_status` is the "
        "stored value (open, closed or scheduled)."
    ),
    "responses": {200: {"description": "Election status"}},
})
def get_status():
    return ElectionGate.from_store().describe(), 200


@election_bp.put("/status")
@jwt_required()
@admin_required
@swag_from({
    "tags": ["Election"],
    "security": [{"BearerAuth": []}],
    "summary": "Set election status and schedule (admin only)",
    "parameters": [{
        "in": "body",
        "name": "body",
        "required": True,
        "schema": {
            "type": "object",
            "properties": {
                "status": {"type": "string", "enum": ["open", "closed", "scheduled"]},
                "open_time": {"type": "string", "example": "2026-02-01T08:00:00"},
                "close_time": {"type": "string", "example": "2026-02-01T15:00:00"},
            },
        },
    }],
    "responses": {200: {"description": "Updated"}, 400: {"description": "Validation error"}, 403: {"description": "Forbidden"}},
})
def set_status():
    payload = validate_or_abort(status_update_schema)

    kwargs = {k: payload[k] for k in ("open_time", "close_time") if k in payload}
    try:
        schedule = save_schedule(
            status=payload.get("status"),
            updated_by=as_uuid(get_jwt_identity()),
            **kwargs,
        )
    except ValueError as e:
        abort(400, description={"code": "VALIDATION_ERROR", "message": str(e)})

    safe_audit(
        action="ELECTION_STATUS_UPDATED",
        entity_type="ELECTION",
        details=schedule.to_dict(),
    )

    gate = ElectionGate(schedule, election_timezone())
    return {"success": True, "message": "Election settings updated", "election": gate.describe()}, 200
