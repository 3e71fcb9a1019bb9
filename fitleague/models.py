from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

# Entry / submission lifecycle
PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
REVIEW_STATUSES = {PENDING, APPROVED, REJECTED}

# Donation lifecycle (two-stage approval)
CAPTAIN_APPROVED = "captain_approved"
DONATION_STATUSES = {PENDING, CAPTAIN_APPROVED, APPROVED, REJECTED}

ENTRY_KINDS = {"workout", "rest"}
CHALLENGE_TYPES = {"individual", "team", "sub_team"}
MEASUREMENT_TYPES = {"duration", "distance", "steps", "holes", "none"}


@dataclass(slots=True)
class League:
    league_id: str
    name: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    rest_days: int = 1             # total allowed for the whole league, not per week
    normalize_points: bool = False


@dataclass(slots=True)
class Team:
    team_id: str
    league_id: str
    name: str


@dataclass(slots=True)
class Member:
    member_id: str
    league_id: str
    user_id: str                   # external identity (Discord user id)
    display_name: str = ""
    team_id: Optional[str] = None
    date_of_birth: Optional[date] = None
    timezone: Optional[str] = None
    tz_offset_minutes: Optional[int] = None  # same sign as JS getTimezoneOffset()
    legacy_tz_offset: Optional[int] = None   # older rows: inverted sign (UTC-8 -> -480)


@dataclass(slots=True)
class ActivityType:
    activity_id: str
    measurement_type: str = "duration"   # duration | distance | steps | holes | none
    league_id: str = ""                  # blank = global catalog


@dataclass(slots=True)
class ActivityMetrics:
    duration: Optional[float] = None     # minutes
    distance: Optional[float] = None     # km
    steps: Optional[int] = None
    holes: Optional[int] = None


@dataclass(slots=True)
class EffortEntry:
    entry_id: str
    member_id: str
    entry_date: date
    kind: str                            # workout | rest
    subtype: Optional[str] = None
    metrics: ActivityMetrics = field(default_factory=ActivityMetrics)
    rr_value: float = 0.0
    proof_url: Optional[str] = None
    status: str = PENDING
    reupload_of: Optional[str] = None
    notes: Optional[str] = None
    exemption_request: bool = False
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None


@dataclass(slots=True)
class Challenge:
    challenge_id: str
    league_id: str
    name: str = ""
    challenge_type: str = "individual"   # individual | team | sub_team
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: str = "draft"                # stored status; see challenges.derive_status
    total_points: float = 0.0


@dataclass(slots=True)
class SubTeamMembership:
    challenge_id: str
    sub_team_id: str
    member_id: str


@dataclass(slots=True)
class ChallengeSubmission:
    submission_id: str
    challenge_id: str
    member_id: str
    proof_url: str
    team_id: Optional[str] = None
    sub_team_id: Optional[str] = None
    status: str = PENDING
    awarded_points: Optional[float] = None   # None -> challenge total on approval
    created_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None


@dataclass(slots=True)
class RestDayDonation:
    donation_id: str
    league_id: str
    donor_member_id: str
    receiver_member_id: str
    days_transferred: int
    status: str = PENDING
    notes: Optional[str] = None
    proof_url: Optional[str] = None
    created_at: Optional[datetime] = None
    captain_approved_at: Optional[datetime] = None
    final_approved_at: Optional[datetime] = None


@dataclass(slots=True)
class LeagueSnapshot:
    """Everything one aggregation pass reads, taken in a single store read."""

    league: League
    members: List[Member]
    teams: List[Team]
    entries: List[EffortEntry]
    challenges: Dict[str, Challenge]
    submissions: List[ChallengeSubmission]


@dataclass(slots=True)
class RestDayCounts:
    approved_rest: int = 0
    pending_rest: int = 0
    exemptions_pending: int = 0
    received: int = 0
    donated: int = 0
