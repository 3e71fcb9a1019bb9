"""League storage: queries and invariant-guarded writes over three row primitives.

Subclasses only implement ``_load`` / ``_insert`` / ``_update``. Every write
that protects an invariant re-reads the rows it depends on while holding
``self._lock``, so a check made earlier by the caller is never the only guard.
"""

from __future__ import annotations

import dataclasses
import secrets
import threading
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

import pytz

from .errors import AlreadySubmitted, ConflictError, NotFoundError
from .models import (
    APPROVED,
    PENDING,
    REJECTED,
    ActivityType,
    Challenge,
    ChallengeSubmission,
    EffortEntry,
    League,
    LeagueSnapshot,
    Member,
    RestDayCounts,
    RestDayDonation,
    SubTeamMembership,
    Team,
)

LEAGUES = "leagues"
TEAMS = "teams"
MEMBERS = "members"
ACTIVITIES = "activities"
ENTRIES = "entries"
CHALLENGES = "challenges"
SUB_TEAMS = "sub_teams"
SUBMISSIONS = "submissions"
DONATIONS = "donations"

# Primary key per kind; sub-team rows are keyed by (challenge_id, member_id).
KEY_FIELDS = {
    LEAGUES: "league_id",
    TEAMS: "team_id",
    MEMBERS: "member_id",
    ACTIVITIES: "activity_id",
    ENTRIES: "entry_id",
    CHALLENGES: "challenge_id",
    SUBMISSIONS: "submission_id",
    DONATIONS: "donation_id",
}

ID_PREFIXES = {
    TEAMS: "t_",
    MEMBERS: "m_",
    ENTRIES: "e_",
    CHALLENGES: "c_",
    SUBMISSIONS: "s_",
    DONATIONS: "d_",
}


def _now_utc() -> datetime:
    return datetime.now(tz=pytz.UTC)


def row_key(kind: str, row) -> str:
    return str(getattr(row, KEY_FIELDS[kind]))


class LeagueStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()

    # ---------------- primitives ----------------
    def _load(self, kind: str) -> list:
        raise NotImplementedError

    def _insert(self, kind: str, row) -> None:
        raise NotImplementedError

    def _update(self, kind: str, row) -> None:
        raise NotImplementedError

    def new_id(self, kind: str) -> str:
        return ID_PREFIXES.get(kind, "") + secrets.token_hex(4)

    def _find(self, kind: str, key: str):
        key = str(key or "").strip()
        for row in self._load(kind):
            if row_key(kind, row) == key:
                return row
        return None

    # ---------------- leagues / teams / members ----------------
    def add_league(self, league: League) -> League:
        with self._lock:
            if self._find(LEAGUES, league.league_id) is not None:
                raise ConflictError(f"League {league.league_id} already exists")
            self._insert(LEAGUES, league)
        return league

    def get_league(self, league_id: str) -> Optional[League]:
        return self._find(LEAGUES, league_id)

    def add_team(self, team: Team) -> Team:
        with self._lock:
            self._insert(TEAMS, team)
        return team

    def get_team(self, team_id: Optional[str]) -> Optional[Team]:
        if not team_id:
            return None
        return self._find(TEAMS, team_id)

    def teams_for(self, league_id: str) -> List[Team]:
        return [t for t in self._load(TEAMS) if t.league_id == league_id]

    def get_member(self, member_id: str) -> Optional[Member]:
        return self._find(MEMBERS, member_id)

    def find_member(self, league_id: str, user_id: str) -> Optional[Member]:
        uid = str(user_id or "").strip()
        for m in self._load(MEMBERS):
            if m.league_id == league_id and m.user_id == uid:
                return m
        return None

    def members_for(self, league_id: str) -> List[Member]:
        return [m for m in self._load(MEMBERS) if m.league_id == league_id]

    def add_member(self, member: Member) -> Member:
        """Insert a membership; a user belongs to a league at most once."""
        with self._lock:
            if self.find_member(member.league_id, member.user_id) is not None:
                raise ConflictError("User is already a member of this league")
            self._insert(MEMBERS, member)
        return member

    def update_member(self, member: Member) -> Member:
        with self._lock:
            if self._find(MEMBERS, member.member_id) is None:
                raise NotFoundError("Member not found")
            self._update(MEMBERS, member)
        return member

    def team_size(self, team_id: str) -> int:
        return sum(1 for m in self._load(MEMBERS) if m.team_id == team_id)

    # ---------------- activity catalog ----------------
    def add_activity(self, activity: ActivityType) -> ActivityType:
        with self._lock:
            self._insert(ACTIVITIES, activity)
        return activity

    def get_activity(self, activity_id: Optional[str], league_id: str) -> Optional[ActivityType]:
        """League-specific definition first, then the global catalog."""
        aid = str(activity_id or "").strip().lower()
        if not aid:
            return None
        fallback = None
        for a in self._load(ACTIVITIES):
            if a.activity_id.lower() != aid:
                continue
            if a.league_id == league_id:
                return a
            if not a.league_id:
                fallback = a
        return fallback

    # ---------------- daily entries ----------------
    def get_entry(self, entry_id: str) -> Optional[EffortEntry]:
        return self._find(ENTRIES, entry_id)

    def entries_for(self, member_id: str, entry_date: Optional[date] = None) -> List[EffortEntry]:
        rows = [e for e in self._load(ENTRIES) if e.member_id == member_id]
        if entry_date is not None:
            rows = [e for e in rows if e.entry_date == entry_date]
        return sorted(rows, key=lambda e: (e.entry_date, e.created_at or datetime.min.replace(tzinfo=pytz.UTC), e.entry_id))

    def resubmissions_of(self, entry_id: str) -> List[EffortEntry]:
        return [e for e in self._load(ENTRIES) if e.reupload_of == entry_id]

    def _ensure_day_open(self, member_id: str, entry_date: date) -> None:
        for e in self.entries_for(member_id, entry_date):
            if e.status != REJECTED:
                raise ConflictError(f"An entry for {entry_date.isoformat()} is already {e.status}")

    def insert_entry(self, entry: EffortEntry) -> EffortEntry:
        """Append a row; refused if the member already has a live entry that day."""
        with self._lock:
            self._ensure_day_open(entry.member_id, entry.entry_date)
            if entry.reupload_of:
                for r in self.resubmissions_of(entry.reupload_of):
                    if r.status == APPROVED:
                        raise ConflictError("A resubmission of this entry was already approved")
            entry.created_at = entry.created_at or _now_utc()
            self._insert(ENTRIES, entry)
        return entry

    def replace_entry(self, target_entry_id: str, entry: EffortEntry) -> EffortEntry:
        """Overwrite a rejected row in place, keeping its id and creation time."""
        with self._lock:
            target = self.get_entry(target_entry_id)
            if target is None:
                raise NotFoundError("Entry not found")
            self._ensure_day_open(target.member_id, target.entry_date)
            entry.entry_id = target.entry_id
            entry.created_at = target.created_at
            entry.modified_at = _now_utc()
            self._update(ENTRIES, entry)
        return entry

    def write_manual_entry(self, entry: EffortEntry, *, overwrite: bool = False) -> EffortEntry:
        with self._lock:
            live = [e for e in self.entries_for(entry.member_id, entry.entry_date) if e.status != REJECTED]
            if not live:
                entry.created_at = entry.created_at or _now_utc()
                self._insert(ENTRIES, entry)
                return entry
            if not overwrite:
                raise ConflictError(f"An entry for {entry.entry_date.isoformat()} already exists")
            target = live[-1]
            entry.entry_id = target.entry_id
            entry.created_at = target.created_at
            entry.modified_at = _now_utc()
            self._update(ENTRIES, entry)
            return entry

    def set_entry_status(self, entry_id: str, *, expected: str, status: str) -> EffortEntry:
        with self._lock:
            entry = self.get_entry(entry_id)
            if entry is None:
                raise NotFoundError("Entry not found")
            if entry.status != expected:
                raise ConflictError(f"Entry is already {entry.status}")
            entry = dataclasses.replace(entry, status=status, modified_at=_now_utc())
            self._update(ENTRIES, entry)
        return entry

    # ---------------- challenges ----------------
    def add_challenge(self, challenge: Challenge) -> Challenge:
        with self._lock:
            self._insert(CHALLENGES, challenge)
        return challenge

    def get_challenge(self, challenge_id: str) -> Optional[Challenge]:
        return self._find(CHALLENGES, challenge_id)

    def add_sub_team_membership(self, membership: SubTeamMembership) -> SubTeamMembership:
        with self._lock:
            self._insert(SUB_TEAMS, membership)
        return membership

    def sub_team_for(self, challenge_id: str, member_id: str) -> Optional[str]:
        for row in self._load(SUB_TEAMS):
            if row.challenge_id == challenge_id and row.member_id == member_id:
                return row.sub_team_id
        return None

    def get_submission(self, submission_id: str) -> Optional[ChallengeSubmission]:
        return self._find(SUBMISSIONS, submission_id)

    def submission_for(self, challenge_id: str, member_id: str) -> Optional[ChallengeSubmission]:
        for s in self._load(SUBMISSIONS):
            if s.challenge_id == challenge_id and s.member_id == member_id:
                return s
        return None

    def submissions_for(self, challenge_id: str) -> List[ChallengeSubmission]:
        return [s for s in self._load(SUBMISSIONS) if s.challenge_id == challenge_id]

    def upsert_submission(self, submission: ChallengeSubmission) -> ChallengeSubmission:
        """One row per (challenge, member); only a rejected row may be overwritten."""
        with self._lock:
            existing = self.submission_for(submission.challenge_id, submission.member_id)
            if existing is None:
                submission.created_at = submission.created_at or _now_utc()
                self._insert(SUBMISSIONS, submission)
                return submission
            if existing.status != REJECTED:
                raise AlreadySubmitted("You already submitted for this challenge")
            submission.submission_id = existing.submission_id
            submission.created_at = _now_utc()
            submission.awarded_points = None
            submission.reviewed_at = None
            self._update(SUBMISSIONS, submission)
            return submission

    def review_submission(
        self,
        submission_id: str,
        *,
        expected: str,
        status: str,
        awarded_points: Optional[float],
    ) -> ChallengeSubmission:
        with self._lock:
            sub = self.get_submission(submission_id)
            if sub is None:
                raise NotFoundError("Submission not found")
            if sub.status != expected:
                raise ConflictError(f"Submission is already {sub.status}")
            sub = dataclasses.replace(sub, status=status, awarded_points=awarded_points, reviewed_at=_now_utc())
            self._update(SUBMISSIONS, sub)
        return sub

    # ---------------- snapshots ----------------
    def league_snapshot(self, league_id: str) -> LeagueSnapshot:
        with self._lock:
            league = self.get_league(league_id)
            if league is None:
                raise NotFoundError(f"League {league_id} not found")
            members = self.members_for(league_id)
            member_ids = {m.member_id for m in members}
            challenges: Dict[str, Challenge] = {
                c.challenge_id: c for c in self._load(CHALLENGES) if c.league_id == league_id
            }
            return LeagueSnapshot(
                league=league,
                members=members,
                teams=self.teams_for(league_id),
                entries=[e for e in self._load(ENTRIES) if e.member_id in member_ids],
                challenges=challenges,
                submissions=[s for s in self._load(SUBMISSIONS) if s.challenge_id in challenges],
            )

    # ---------------- rest days ----------------
    def _rest_day_counts(self, league_id: str, member_id: str) -> RestDayCounts:
        counts = RestDayCounts()
        for e in self._load(ENTRIES):
            if e.member_id != member_id or e.kind != "rest":
                continue
            if e.status == APPROVED:
                counts.approved_rest += 1
            elif e.status == PENDING:
                counts.pending_rest += 1
                if e.exemption_request:
                    counts.exemptions_pending += 1
        for d in self._load(DONATIONS):
            if d.league_id != league_id or d.status != APPROVED:
                continue
            if d.receiver_member_id == member_id:
                counts.received += d.days_transferred
            if d.donor_member_id == member_id:
                counts.donated += d.days_transferred
        return counts

    def rest_day_counts(self, league_id: str, member_id: str) -> RestDayCounts:
        with self._lock:
            return self._rest_day_counts(league_id, member_id)

    def get_donation(self, donation_id: str) -> Optional[RestDayDonation]:
        return self._find(DONATIONS, donation_id)

    def donations_for(self, league_id: str) -> List[RestDayDonation]:
        rows = [d for d in self._load(DONATIONS) if d.league_id == league_id]
        return sorted(rows, key=lambda d: d.created_at or datetime.min.replace(tzinfo=pytz.UTC), reverse=True)

    def insert_donation(
        self,
        donation: RestDayDonation,
        guard: Optional[Callable[[RestDayCounts], None]] = None,
    ) -> RestDayDonation:
        """``guard`` sees the donor's counts inside the write and may raise."""
        with self._lock:
            if guard is not None:
                guard(self._rest_day_counts(donation.league_id, donation.donor_member_id))
            donation.created_at = donation.created_at or _now_utc()
            self._insert(DONATIONS, donation)
        return donation

    def transition_donation(
        self,
        donation_id: str,
        *,
        expected: str,
        status: str,
        guard: Optional[Callable[[RestDayCounts], None]] = None,
    ) -> RestDayDonation:
        with self._lock:
            donation = self.get_donation(donation_id)
            if donation is None:
                raise NotFoundError("Donation not found")
            if donation.status != expected:
                raise ConflictError(f"Donation is already {donation.status}")
            if guard is not None:
                guard(self._rest_day_counts(donation.league_id, donation.donor_member_id))
            now = _now_utc()
            changes = {"status": status}
            if status == "captain_approved":
                changes["captain_approved_at"] = now
            elif status == APPROVED:
                changes["final_approved_at"] = now
            donation = dataclasses.replace(donation, **changes)
            self._update(DONATIONS, donation)
        return donation


class MemoryStore(LeagueStore):
    """In-process store. Rows are copied on the way in and out."""

    def __init__(self) -> None:
        super().__init__()
        self._rows: Dict[str, list] = {kind: [] for kind in (*KEY_FIELDS, SUB_TEAMS)}

    def _load(self, kind: str) -> list:
        with self._lock:
            return [dataclasses.replace(r) for r in self._rows[kind]]

    def _insert(self, kind: str, row) -> None:
        with self._lock:
            self._rows[kind].append(dataclasses.replace(row))

    def _update(self, kind: str, row) -> None:
        with self._lock:
            rows = self._rows[kind]
            key = row_key(kind, row)
            for i, existing in enumerate(rows):
                if row_key(kind, existing) == key:
                    rows[i] = dataclasses.replace(row)
                    return
            raise NotFoundError(f"{kind} row {key} not found")
