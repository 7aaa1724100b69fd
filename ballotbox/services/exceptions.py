"""
Failure outcomes of the ballot-token services.

Every exception here is an expected, user-facing result rather than a crash.
The API layer renders them through `register_error_handlers` using `code`,
`http_status`, `message` and `details`; none of them carries voter identity.
"""
from datetime import datetime


class BallotError(Exception):
    code = "BALLOT_ERROR"
    http_status = 400
    message = "The request could not be completed"

    def __init__(self, message: str | None = None, details: dict | None = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


class NotFoundError(BallotError):
    code = "NOT_FOUND"
    http_status = 404
    message = "Ballot token not found"


class InvalidStateError(BallotError):
    code = "INVALID_STATE"
    http_status = 409

    MESSAGES = {
        "inactive": "This ballot token has not been activated yet. Please contact a poll worker.",
        "activated": "This ballot token has not been scanned at a voting kiosk yet.",
        "voting": "This ballot token is already in use at a voting kiosk.",
        "used": "This ballot token has already been used.",
        "expired": "This ballot token has expired.",
    }

    def __init__(self, current_state: str, message: str | None = None):
        self.current_state = current_state
        super().__init__(
            message or self.MESSAGES.get(current_state, "This ballot token cannot be used right now."),
            details={"current_state": current_state},
        )


class VoterHasActiveTokenError(InvalidStateError):
    def __init__(self):
        super().__init__(
            "activated",
            message="This voter already holds an active ballot token.",
        )


class StationMismatchError(BallotError):
    code = "WRONG_STATION"
    http_status = 403
    message = "This ballot token was issued for a different polling station."


class ElectionClosedError(BallotError):
    code = "ELECTION_CLOSED"
    http_status = 403

    def __init__(self, reopens_at: datetime | None = None):
        self.reopens_at = reopens_at
        if reopens_at is not None:
            message = f"The election is closed. Voting opens at {reopens_at.strftime('%Y-%m-%d %H:%M')}."
            details = {"reopens_at": reopens_at.isoformat()}
        else:
            message = "The election is closed."
            details = None
        super().__init__(message, details=details)


class AlreadyVotedError(BallotError):
    code = "ALREADY_VOTED"
    http_status = 409
    message = "This voter has already voted."


class AlreadyAbsentError(BallotError):
    code = "ALREADY_ABSENT"
    http_status = 409
    message = "This voter was marked absent after an unused ballot token expired."


class RateLimitedError(BallotError):
    code = "RATE_LIMITED"
    http_status = 429
    message = "Too many attempts. Please try again later."


class StorageFailureError(BallotError):
    code = "STORAGE_FAILURE"
    http_status = 503
    message = "The request could not be saved. Please try again."


class BatchInUseError(BallotError):
    code = "BATCH_IN_USE"
    http_status = 409
    message = "This batch cannot be cancelled because some of its tokens were already issued."
