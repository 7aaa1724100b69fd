from flask import Blueprint, abort, request
from flasgger import swag_from
from flask_jwt_extended import get_jwt_identity, jwt_required

from ...services import expiry_sweeper, token_batches, token_lifecycle
from ...services.election_gate import ElectionGate
from ...schemas.token import (
    ActivateTokenSchema,
    BatchCreateSchema,
    BatchPreviewSchema,
    PrintBatchReadSchema,
    ScanTokenSchema,
    SweepSchema,
    TokenReadSchema,
)
from ...utils.audit import safe_audit
from ...utils.rate_limit import operator_identity, rate_limited
from ...utils.rbac import admin_required, operator_required
from ...utils.validation import validate_or_abort

tokens_bp = Blueprint("tokens", __name__)

activate_schema = ActivateTokenSchema()
scan_schema = ScanTokenSchema()
batch_create_schema = BatchCreateSchema()
batch_preview_schema = BatchPreviewSchema()
sweep_schema = SweepSchema()
token_read_schema = TokenReadSchema()
print_batch_many_schema = PrintBatchReadSchema(many=True)


def _batch_count_or_abort(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except ValueError as e:
        abort(400, description={"code": "VALIDATION_ERROR", "message": str(e)})


@tokens_bp.post("/activate")
@jwt_required()
@operator_required
@rate_limited("activate", identifier=operator_identity)
@swag_from({
    "tags": ["Tokens"],
    "security": [{"BearerAuth": []}],
    "summary": "Activate a printed ballot token for a voter (poll worker)",
    "parameters": [{
        "in": "body",
        "name": "body",
        "required": True,
        "schema": {
            "type": "object",
            "properties": {
                "code": {"type": "string", "example": "RSL-AB12-CD345678"},
                "voter_id": {"type": "string", "example": "1001"},
                "station_level": {"type": "string", "example": "L1"},
            },
            "required": ["code", "voter_id"],
        },
    }],
    "responses": {
        200: {"description": "Activated; warning carries the expiry countdown"},
        403: {"description": "Election closed"},
        404: {"description": "Token or voter not found"},
        409: {"description": "Token not inactive / voter already voted, absent or holding a token"},
        429: {"description": "Too many attempts"},
    },
})
def activate():
    payload = validate_or_abort(activate_schema)

    result = token_lifecycle.activate_token(
        code=payload["code"],
        voter_ref=payload["voter_id"],
        operator_id=get_jwt_identity(),
        station_level=payload.get("station_level"),
        gate=ElectionGate.from_store(),
    )

    # Voter only; the token code stays out of the audit trail
    safe_audit(
        action="BALLOT_ISSUED",
        entity_type="VOTER",
        entity_id=result.voter.voter_id,
        details={"station_level": payload.get("station_level")},
    )

    return {
        "success": True,
        "message": "Ballot token activated",
        "warning": result.warning,
        "expires_at": result.expires_at.isoformat() + "Z",
        "voter": {"voter_id": result.voter.voter_id, "name": result.voter.full_name},
    }, 200


@tokens_bp.post("/scan")
@rate_limited("validate")
@swag_from({
    "tags": ["Tokens"],
    "summary": "Scan a ballot token at a voting kiosk (activated -> voting)",
    "parameters": [{
        "in": "body",
        "name": "body",
        "required": True,
        "schema": {
            "type": "object",
            "properties": {
                "code": {"type": "string", "example": "RSL-AB12-CD345678"},
                "station_level": {"type": "string", "example": "L1"},
            },
            "required": ["code"],
        },
    }],
    "responses": {
        200: {"description": "Token accepted; voter may choose"},
        403: {"description": "Election closed / wrong station"},
        404: {"description": "Token not found"},
        409: {"description": "Token not activated, already used or expired"},
        429: {"description": "Too many attempts"},
    },
})
def scan():
    payload = validate_or_abort(scan_schema)

    token = token_lifecycle.scan_token(
        code=payload["code"],
        station_level=payload.get("station_level"),
        gate=ElectionGate.from_store(),
    )
    return {"success": True, "message": "Ballot token accepted", "token": token_read_schema.dump(token)}, 200


@tokens_bp.post("/sweep")
@jwt_required()
@admin_required
@swag_from({
    "tags": ["Tokens"],
    "security": [{"BearerAuth": []}],
    "summary": "Expire tokens activated but never scanned (admin / scheduler)",
    "parameters": [{
        "in": "body",
        "name": "body",
        "required": False,
        "schema": {"type": "object", "properties": {"timeout_minutes": {"type": "integer", "example": 30}}},
    }],
    "responses": {200: {"description": "Sweep summary"}, 403: {"description": "Forbidden"}},
})
def sweep():
    payload = validate_or_abort(sweep_schema)

    result = expiry_sweeper.sweep_expired_tokens(payload.get("timeout_minutes"))

    safe_audit(
        action="TOKENS_EXPIRED",
        entity_type="TOKEN",
        details={"expired_count": result.expired_count, "absent_count": result.absent_count},
    )

    return {
        "success": True,
        "expired_count": result.expired_count,
        "absent_count": result.absent_count,
        "skipped_count": result.skipped_count,
    }, 200


@tokens_bp.post("/batches")
@jwt_required()
@admin_required
@swag_from({
    "tags": ["Tokens"],
    "security": [{"BearerAuth": []}],
    "summary": "Create and store a batch of inactive ballot tokens for printing",
    "responses": {201: {"description": "Batch created"}, 400: {"description": "Validation error"}},
})
def create_batch():
    payload = validate_or_abort(batch_create_schema)

    batch = _batch_count_or_abort(
        token_batches.create_batch,
        payload["count"],
        station_level=payload.get("station_level"),
        printed_by=get_jwt_identity(),
    )

    safe_audit(
        action="TOKEN_BATCH_CREATED",
        entity_type="TOKEN_BATCH",
        entity_id=batch.batch_id,
        details={"count": batch.count, "station_level": batch.station_level},
    )

    return {"batch_id": batch.batch_id, "count": batch.count, "tokens": batch.codes}, 201


@tokens_bp.post("/batches/preview")
@jwt_required()
@admin_required
@swag_from({
    "tags": ["Tokens"],
    "security": [{"BearerAuth": []}],
    "summary": "Generate token codes for a print preview (nothing stored)",
    "responses": {200: {"description": "Preview"}, 400: {"description": "Validation error"}},
})
def preview_batch():
    payload = validate_or_abort(batch_preview_schema)
    batch = _batch_count_or_abort(token_batches.preview_batch, payload["count"])
    return {"batch_id": batch.batch_id, "count": batch.count, "tokens": batch.codes, "preview": True}, 200


@tokens_bp.get("/batches")
@jwt_required()
@admin_required
@swag_from({
    "tags": ["Tokens"],
    "security": [{"BearerAuth": []}],
    "summary": "List print batches",
    "responses": {200: {"description": "Print log"}},
})
def list_batches():
    return {"batches": print_batch_many_schema.dump(token_batches.list_batches())}, 200


@tokens_bp.delete("/batches/<string:batch_id>")
@jwt_required()
@admin_required
@swag_from({
    "tags": ["Tokens"],
    "security": [{"BearerAuth": []}],
    "summary": "Cancel a print batch while all of its tokens are still inactive",
    "responses": {200: {"description": "Cancelled"}, 404: {"description": "Not found"}, 409: {"description": "Tokens already issued"}},
})
def cancel_batch(batch_id):
    deleted = token_batches.cancel_batch(batch_id)

    safe_audit(
        action="TOKEN_BATCH_CANCELLED",
        entity_type="TOKEN_BATCH",
        entity_id=batch_id,
        details={"deleted": deleted, "ip": request.remote_addr},
    )

    return {"message": f"Batch {batch_id} cancelled", "deleted": deleted}, 200
