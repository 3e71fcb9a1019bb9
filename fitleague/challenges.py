"""Challenge status derivation and submission/review rules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from .errors import (
    AlreadySubmitted,
    ChallengeEnded,
    ChallengeNotActive,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from .models import APPROVED, PENDING, REJECTED, Challenge, ChallengeSubmission

DRAFT = "draft"
SCHEDULED = "scheduled"
ACTIVE = "active"
SUBMISSION_CLOSED = "submission_closed"
CLOSED = "closed"
PUBLISHED = "published"

CLOSED_STATUSES = {SUBMISSION_CLOSED, CLOSED}
STORED_STATUSES = {DRAFT, SCHEDULED, ACTIVE, SUBMISSION_CLOSED, PUBLISHED, CLOSED}


def normalize_stored_status(status: Optional[str]) -> str:
    s = (status or "").strip().lower()
    if not s:
        return DRAFT
    if s == "upcoming":
        return SCHEDULED
    return s if s in STORED_STATUSES else DRAFT


def derive_status(
    stored: Optional[str],
    start: Optional[date],
    end: Optional[date],
    today: date,
    *,
    reviewer: bool = False,
) -> str:
    """Effective status from dates; the stored value is only trusted for drafts."""
    stored_status = normalize_stored_status(stored)
    if stored_status == DRAFT:
        return DRAFT

    closed_label = SUBMISSION_CLOSED if reviewer else CLOSED
    if start and end:
        if start <= today <= end:
            return ACTIVE
        if today < start:
            return SCHEDULED
        return closed_label
    if end and today > end:
        return closed_label
    return stored_status


@dataclass(slots=True)
class ChallengeDecision:
    effective_status: str
    is_resubmission: bool


def check_submission(
    challenge: Challenge,
    existing: Optional[ChallengeSubmission],
    *,
    today: date,
    reviewer: bool = False,
    cutoff_today: Optional[date] = None,
) -> ChallengeDecision:
    """Validate a proof submission against the challenge window and any prior submission.

    ``today`` is the member's local date; ``cutoff_today`` (server UTC date,
    defaults to ``today``) enforces the hard end-date cutoff for fresh proofs.
    """
    status = derive_status(challenge.status, challenge.start_date, challenge.end_date, today, reviewer=reviewer)

    if status == ACTIVE:
        if existing is not None and existing.status != REJECTED:
            raise AlreadySubmitted("You already submitted for this challenge")
        is_resubmission = existing is not None
    elif status in CLOSED_STATUSES:
        if existing is None or existing.status != REJECTED:
            raise ChallengeNotActive("Challenge is not active")
        is_resubmission = True
    else:
        raise ChallengeNotActive("Challenge is not active")

    cutoff = cutoff_today or today
    if not is_resubmission and challenge.end_date and cutoff > challenge.end_date:
        raise ChallengeEnded("Challenge has ended. Submissions are closed.")

    return ChallengeDecision(effective_status=status, is_resubmission=is_resubmission)


def per_member_cap(total_points: float, team_size: int) -> float:
    if team_size <= 0 or total_points <= 0:
        return 0.0
    return round(total_points / team_size * 100) / 100


def resolve_review(
    challenge: Challenge,
    submission: Optional[ChallengeSubmission],
    decision: str,
    *,
    awarded_points: Optional[float],
    today: date,
    team_size: int = 1,
) -> tuple[str, Optional[float]]:
    """Return ``(new_status, awarded_points)`` for a reviewer decision."""
    if submission is None:
        raise NotFoundError("Submission not found")

    new_status = {"approve": APPROVED, "reject": REJECTED}.get((decision or "").strip().lower())
    if new_status is None:
        raise ValidationError("decision must be approve or reject")

    effective = derive_status(challenge.status, challenge.start_date, challenge.end_date, today, reviewer=True)
    if effective != SUBMISSION_CLOSED and normalize_stored_status(challenge.status) != PUBLISHED:
        raise ValidationError("Reviews are allowed only after submissions close or after scores are published.")

    if submission.status != PENDING:
        raise ConflictError(f"Submission is already {submission.status}")

    if new_status == REJECTED:
        return new_status, None

    total = float(challenge.total_points or 0)
    if awarded_points is None:
        return new_status, (total if total > 0 else None)

    pts = float(awarded_points)
    if pts < 0:
        raise ValidationError("awarded_points must be >= 0")
    if pts > total:
        raise ValidationError("awarded_points cannot exceed challenge total points")
    if challenge.challenge_type == "team":
        cap = per_member_cap(total, max(1, team_size))
        if pts > cap:
            raise ValidationError(f"Points exceed per-member limit of {cap}")
    return new_status, pts
