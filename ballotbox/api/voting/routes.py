from flask import Blueprint, abort
from flasgger import swag_from

from ...schemas.vote import VoteReceiptSchema, VoteSubmitSchema
from ...services.ballot_finalizer import finalize_vote
from ...utils.rate_limit import rate_limited
from ...utils.validation import validate_or_abort

voting_bp = Blueprint("voting", __name__)

vote_submit_schema = VoteSubmitSchema()
vote_receipt_schema = VoteReceiptSchema()


@voting_bp.post("")
@rate_limited("vote")
@swag_from({
    "tags": ["Voting"],
    "summary": "Submit a ballot for a token in the voting state (kiosk)",
    "description": (
        "Marks the token used, records the voter as voted and stores an anonymous vote "
        "in one transaction. The stored vote carries no reference to the voter."
    ),
    "parameters": [{
        "in": "body",
        "name": "body",
        "required": True,
        "schema": {
            "type": "object",
            "properties": {
                "code": {"type": "string", "example": "RSL-AB12-CD345678"},
                "party_id": {"type": "integer", "example": 3},
                "abstain": {"type": "boolean", "example": False},
            },
            "required": ["code"],
        },
    }],
    "responses": {
        201: {"description": "Vote recorded"},
        400: {"description": "Validation error"},
        404: {"description": "Token or party not found"},
        409: {"description": "Token not in the voting state"},
        429: {"description": "Too many attempts"},
    },
})
def submit_vote():
    payload = validate_or_abort(vote_submit_schema)

    try:
        vote = finalize_vote(
            code=payload["code"],
            party_id=payload.get("party_id"),
            abstain=payload.get("abstain", False),
        )
    except ValueError as e:
        abort(400, description={"code": "VALIDATION_ERROR", "message": str(e)})

    receipt = vote_receipt_schema.dump({
        "message": "Vote recorded",
        "station_level": vote.station_level,
        "is_abstain": vote.is_abstain,
    })
    receipt["success"] = True
    return receipt, 201
