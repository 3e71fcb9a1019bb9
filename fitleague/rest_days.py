"""Rest-day allowance ledger and donation approval flow.

final_used = auto_used + donated - received: donating spends allowance,
receiving refunds it. Only approved donations count.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import AuthorizationError, ConflictError, ValidationError
from .models import APPROVED, CAPTAIN_APPROVED, PENDING, REJECTED, RestDayCounts

CAPTAIN = "captain"
GOVERNOR = "governor"
HOST = "host"
REVIEWER_ROLES = {CAPTAIN, GOVERNOR, HOST}


@dataclass(slots=True)
class RestDayStatus:
    total_allowed: int
    used: int
    auto_used: int
    pending: int
    remaining: int
    is_at_limit: bool
    exemptions_pending: int
    received: int
    donated: int

    @property
    def donations(self) -> dict:
        return {"received": self.received, "donated": self.donated}


def compute_status(total_allowed: int, counts: RestDayCounts) -> RestDayStatus:
    used = counts.approved_rest + counts.donated - counts.received
    return RestDayStatus(
        total_allowed=total_allowed,
        used=used,
        auto_used=counts.approved_rest,
        pending=counts.pending_rest,
        remaining=max(0, total_allowed - used),
        is_at_limit=used >= total_allowed,
        exemptions_pending=counts.exemptions_pending,
        received=counts.received,
        donated=counts.donated,
    )


def check_donation_request(donor_id: str, receiver_id: str, days: int, donor_status: RestDayStatus) -> None:
    if isinstance(days, bool) or not isinstance(days, int) or days < 1:
        raise ValidationError("days must be a whole number >= 1")
    if donor_id == receiver_id:
        raise ValidationError("Cannot donate to yourself")
    ensure_can_donate(donor_status, days)


def ensure_can_donate(donor_status: RestDayStatus, days: int) -> None:
    if donor_status.remaining < days:
        raise ConflictError(
            f"Donor only has {donor_status.remaining} rest days remaining, cannot donate {days}"
        )


def next_donation_status(
    current: str,
    action: str,
    role: str,
    *,
    same_team: Optional[bool] = None,
) -> str:
    """Two-stage approval: captain (pending -> captain_approved), then governor/host.

    A governor or host acting on a pending donation performs the captain stage.
    ``same_team`` is False only when the reviewer's team is known and differs
    from the donor's.
    """
    action = (action or "").strip().lower()
    role = (role or "").strip().lower()
    if action not in {"approve", "reject"}:
        raise ValidationError("action must be approve or reject")
    if role not in REVIEWER_ROLES:
        raise AuthorizationError("Only captains, governors or hosts can review donations")

    if role == CAPTAIN:
        if current != PENDING or same_team is False:
            raise AuthorizationError(f"A captain cannot {action} a donation that is {current}")
        return CAPTAIN_APPROVED if action == "approve" else REJECTED

    if current not in {PENDING, CAPTAIN_APPROVED}:
        raise ConflictError(f"Donation is already {current}")
    if action == "reject":
        return REJECTED
    return APPROVED if current == CAPTAIN_APPROVED else CAPTAIN_APPROVED
