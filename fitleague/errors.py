"""Typed failures raised by the scoring engine.

Every class derives from RuntimeError so request handlers that only know
about ``RuntimeError`` keep working; ``kind`` groups them for callers that
need to map them to a status (400/403/404/409/500).
"""

from __future__ import annotations


class LeagueError(RuntimeError):
    kind = "error"


class ValidationError(LeagueError):
    kind = "validation"


class ConflictError(LeagueError):
    kind = "conflict"


class AuthorizationError(LeagueError):
    kind = "authorization"


class NotFoundError(LeagueError):
    kind = "not_found"


class StorageError(LeagueError):
    """Transient failure of the storage collaborator; safe to retry."""

    kind = "storage"


# ---- validation ----
class InvalidDate(ValidationError):
    pass


class MissingProof(ValidationError):
    pass


class ScoreTooLow(ValidationError):
    def __init__(self, rr_value: float, minimum: float = 1.0) -> None:
        self.rr_value = rr_value
        self.minimum = minimum
        super().__init__(
            f"Workout RR must be at least {minimum:.1f} (got {rr_value:.2f}) based on duration/distance/steps"
        )


class ChallengeNotActive(ValidationError):
    pass


class ChallengeEnded(ValidationError):
    pass


# ---- conflict ----
class AlreadySubmitted(ConflictError):
    pass


# ---- authorization ----
class Unauthorized(AuthorizationError):
    pass


class NotMember(AuthorizationError):
    pass


class TeamRequired(AuthorizationError):
    pass
