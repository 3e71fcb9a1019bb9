"""Daily effort-entry lifecycle rules.

Pure decisions over rows already read from the store. The store re-checks
the one-non-rejected-entry-per-day invariant when it performs the write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from .errors import (
    AuthorizationError,
    ConflictError,
    InvalidDate,
    MissingProof,
    NotFoundError,
    ValidationError,
)
from .models import APPROVED, PENDING, REJECTED, EffortEntry

INSERT = "insert"        # first entry for the date
REPLACE = "replace"      # overwrite the latest rejected row in place
RESUBMIT = "resubmit"    # new row chained to a rejected original


@dataclass(slots=True)
class SubmissionPlan:
    action: str
    proof_url: Optional[str]
    target_entry_id: Optional[str] = None
    reupload_of: Optional[str] = None


def latest(entries: Iterable[EffortEntry]) -> Optional[EffortEntry]:
    items = list(entries)
    if not items:
        return None
    return max(items, key=lambda e: (e.created_at.timestamp() if e.created_at else 0.0, e.entry_id))


def active_entries(entries: Iterable[EffortEntry]) -> List[EffortEntry]:
    return [e for e in entries if e.status != REJECTED]


def check_resubmission(
    *,
    member_id: str,
    entry_date: date,
    original: Optional[EffortEntry],
    resubmissions: Iterable[EffortEntry],
) -> None:
    if original is None:
        raise NotFoundError("Original entry not found")
    if original.member_id != member_id:
        raise AuthorizationError("You can only resubmit your own entries")
    if original.status != REJECTED:
        raise ConflictError("Only rejected entries can be resubmitted")
    if any(r.status == APPROVED for r in resubmissions):
        raise ConflictError("A resubmission of this entry was already approved")
    if entry_date != original.entry_date:
        raise InvalidDate(f"A resubmission must keep the original date {original.entry_date.isoformat()}")


def plan_submission(
    *,
    member_id: str,
    entry_date: date,
    today: date,
    kind: str,
    proof_url: Optional[str],
    existing_for_date: List[EffortEntry],
    resubmit_of: Optional[str] = None,
    original: Optional[EffortEntry] = None,
    resubmissions: Iterable[EffortEntry] = (),
) -> SubmissionPlan:
    """Decide how a member's submission for ``entry_date`` is persisted."""
    proof = (proof_url or "").strip() or None

    if resubmit_of:
        check_resubmission(
            member_id=member_id,
            entry_date=entry_date,
            original=original,
            resubmissions=resubmissions,
        )
        if active_entries(existing_for_date):
            raise ConflictError(f"An entry for {entry_date.isoformat()} is already pending or approved")
        if kind == "workout" and not proof:
            raise MissingProof("Proof is required for workout entries")
        return SubmissionPlan(action=RESUBMIT, proof_url=proof, reupload_of=original.entry_id)

    if entry_date != today:
        raise InvalidDate(f"You can only submit for today ({today.isoformat()})")

    if not existing_for_date:
        if kind == "workout" and not proof:
            raise MissingProof("Proof is required for workout entries")
        return SubmissionPlan(action=INSERT, proof_url=proof)

    if active_entries(existing_for_date):
        raise ConflictError(f"An entry for {entry_date.isoformat()} already exists")

    previous = latest(existing_for_date)
    if kind == "workout" and not proof:
        proof = previous.proof_url if previous else None
        if not proof:
            raise MissingProof("Proof is required for workout entries")
    return SubmissionPlan(action=REPLACE, proof_url=proof, target_entry_id=previous.entry_id)


def check_review(entry: Optional[EffortEntry], decision: str) -> str:
    """Return the new status for a reviewer decision on a pending entry."""
    if entry is None:
        raise NotFoundError("Entry not found")
    new_status = {"approve": APPROVED, "reject": REJECTED}.get((decision or "").strip().lower())
    if new_status is None:
        raise ValidationError("decision must be approve or reject")
    if entry.status != PENDING:
        raise ConflictError(f"Entry is already {entry.status}")
    return new_status
