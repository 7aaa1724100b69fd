from flask import Blueprint
from flasgger import swag_from
from flask_jwt_extended import jwt_required

from ...extensions import db
from ...models.party import Party
from ...services.ballot_finalizer import vote_results, votes_by_station
from ...services.roster import voter_stats
from ...services.token_lifecycle import token_counts
from ...utils.clock import utcnow
from ...utils.rbac import operator_required

results_bp = Blueprint("results", __name__)


@results_bp.get("/scores")
@swag_from({
    "tags": ["Results"],
    "summary": "Votes per party, abstentions and total (public)",
    "description": "Every party is listed, including those with no votes. Percentages are of all ballots cast.",
    "responses": {200: {"description": "Scores"}},
})
def scores():
    results = vote_results()
    total = results["total"]

    for row in results["parties"]:
        pct = (row["votes"] / total * 100.0) if total > 0 else 0.0
        row["percentage"] = round(pct, 2)

    return {
        "timestamp": utcnow().isoformat() + "Z",
        "total_votes": total,
        "abstain": results["abstain"],
        "parties": results["parties"],
    }, 200


@results_bp.get("/stats")
@jwt_required()
@operator_required
@swag_from({
    "tags": ["Results"],
    "security": [{"BearerAuth": []}],
    "summary": "Token, turnout and station statistics (operators)",
    "responses": {200: {"description": "Statistics"}, 401: {"description": "Unauthorized"}},
})
def stats():
    voters = voter_stats()
    total = voters["total"]
    turnout = (voters["voted"] / total * 100.0) if total > 0 else 0.0

    return {
        "timestamp": utcnow().isoformat() + "Z",
        "tokens": token_counts(),
        "voters": {
            "total": total,
            "voted": voters["voted"],
            "absent": voters["absent"],
            "pending": total - voters["voted"] - voters["absent"],
            "turnout_percentage": round(turnout, 2),
        },
        "by_level": voters["by_level"],
        "votes_by_station": votes_by_station(),
        "parties": db.session.query(db.func.count(Party.id)).scalar() or 0,
    }, 200
