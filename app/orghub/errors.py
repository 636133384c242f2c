"""
Error taxonomy shared by services and the API layer.

Services raise these; the app-level error handler renders them as
{"error": <kind>, "message": <text>} with the matching status code.
"""
from __future__ import annotations


class ApiError(Exception):
    kind = "error"
    status_code = 500
    default_message = "Request failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class Unauthenticated(ApiError):
    kind = "unauthenticated"
    status_code = 401
    default_message = "Authentication required."


class Forbidden(ApiError):
    kind = "forbidden"
    status_code = 403
    default_message = "You do not have permission to perform this action."


class NotFound(ApiError):
    # Also used for rows outside the caller's organization scope, so tenants
    # cannot discover each other's ids.
    kind = "not_found"
    status_code = 404
    default_message = "Not found."


class BadRequest(ApiError):
    kind = "bad_request"
    status_code = 400
    default_message = "Invalid request."


class Conflict(ApiError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflicts with existing data."


class VotingError(ApiError):
    status_code = 400


class InvalidCandidate(VotingError):
    kind = "invalid_candidate"
    default_message = "Invalid candidate selection."


class SingleChoiceOnly(VotingError):
    kind = "single_choice_only"
    default_message = "This election only allows voting for one candidate."


class TooManyChoices(VotingError):
    kind = "too_many_choices"
    default_message = "Too many candidates selected."


class NotOpen(VotingError):
    kind = "not_open"
    status_code = 409
    default_message = "Election is not open for voting."


class AlreadyVoted(VotingError):
    kind = "already_voted"
    status_code = 409
    default_message = "You have already voted in this election."


class TooManyRequests(ApiError):
    kind = "rate_limited"
    status_code = 429
    default_message = "Too many attempts. Please wait and try again."
