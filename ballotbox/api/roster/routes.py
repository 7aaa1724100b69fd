from flask import Blueprint, abort
from flasgger import swag_from
from flask_jwt_extended import jwt_required

from ...models.party import Party
from ...schemas.voter import PartyCreateSchema, PartyReadSchema, VoterImportSchema, VoterReadSchema
from ...services import roster
from ...utils.audit import safe_audit
from ...utils.rbac import admin_required, operator_required
from ...utils.validation import validate_or_abort

roster_bp = Blueprint("roster", __name__)

voter_import_schema = VoterImportSchema()
voter_read_schema = VoterReadSchema()
party_create_schema = PartyCreateSchema()
party_read_schema = PartyReadSchema()
party_many_schema = PartyReadSchema(many=True)


@roster_bp.post("/voters/import")
@jwt_required()
@admin_required
@swag_from({
    "tags": ["Roster"],
    "security": [{"BearerAuth": []}],
    "summary": "Insert or update voters by external voter id (admin only)",
    "description": "Roster fields only; a voter's vote status is never changed by an import.",
    "parameters": [{
        "in": "body",
        "name": "body",
        "required": True,
        "schema": {
            "type": "object",
            "properties": {
                "voters": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "voter_id": {"type": "string", "example": "1001"},
                            "prefix": {"type": "string", "example": "Mr."},
                            "first_name": {"type": "string", "example": "Somchai"},
                            "last_name": {"type": "string", "example": "Dee"},
                            "level": {"type": "string", "example": "L1"},
                            "room": {"type": "string", "example": "1/1"},
                        },
                    },
                },
            },
        },
    }],
    "responses": {200: {"description": "Import summary"}, 400: {"description": "Validation error"}},
})
def import_voters():
    payload = validate_or_abort(voter_import_schema)

    summary = roster.import_voters(payload["voters"])

    safe_audit(action="VOTERS_IMPORTED", entity_type="VOTER", details=summary)
    return {"success": True, **summary}, 200


@roster_bp.get("/voters/<string:voter_id>")
@jwt_required()
@operator_required
@swag_from({
    "tags": ["Roster"],
    "security": [{"BearerAuth": []}],
    "summary": "Look up a voter before activating a token",
    "responses": {200: {"description": "Voter"}, 404: {"description": "Voter not found"}},
})
def get_voter(voter_id):
    return {"voter": voter_read_schema.dump(roster.get_voter(voter_id))}, 200


@roster_bp.get("/parties")
@swag_from({
    "tags": ["Roster"],
    "summary": "List parties by ballot number (public)",
    "responses": {200: {"description": "Parties"}},
})
def list_parties():
    parties = Party.query.order_by(Party.number.asc()).all()
    return {"parties": party_many_schema.dump(parties)}, 200


@roster_bp.post("/parties")
@jwt_required()
@admin_required
@swag_from({
    "tags": ["Roster"],
    "security": [{"BearerAuth": []}],
    "summary": "Create a party (admin only)",
    "responses": {201: {"description": "Created"}, 400: {"description": "Validation error / number taken"}},
})
def create_party():
    payload = validate_or_abort(party_create_schema)

    try:
        party = roster.create_party(payload["name"], payload["number"])
    except ValueError as e:
        abort(400, description={"code": "VALIDATION_ERROR", "message": str(e)})

    safe_audit(
        action="PARTY_CREATED",
        entity_type="PARTY",
        entity_id=str(party.id),
        details={"name": party.name, "number": party.number},
    )
    return {"message": "Party created", "party": party_read_schema.dump(party)}, 201
