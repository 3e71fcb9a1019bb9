from __future__ import annotations

from datetime import date, datetime
from typing import Callable, List, Optional
import logging

from . import challenges, entries, rest_days, scoring
from .config import EngineConfig
from .errors import MissingProof, NotFoundError, NotMember, TeamRequired, Unauthorized, ValidationError
from .leaderboard import Leaderboard, build_leaderboard
from .models import (
    APPROVED,
    ENTRY_KINDS,
    PENDING,
    ActivityMetrics,
    ChallengeSubmission,
    EffortEntry,
    League,
    Member,
    RestDayDonation,
)
from .store import DONATIONS, ENTRIES, MEMBERS, SUBMISSIONS, LeagueStore
from .timezones import local_today, normalize_timezone, utc_now

LOGGER = logging.getLogger(__name__)


class LeagueManager:
    """Orchestrates daily entries, challenge proofs, leaderboards, and the rest-day ledger.

    Rules live in the pure modules; this class loads what they need, resolves
    "today" for the member, and hands the result to the store's guarded writes.
    """

    def __init__(
        self,
        *,
        store: LeagueStore,
        engine: Optional[EngineConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.engine = engine or EngineConfig()
        self.clock = clock

    # ---------------- helpers ----------------
    def today_for(self, member: Member) -> date:
        tz = normalize_timezone(member.timezone, default=None)
        if tz is None and member.tz_offset_minutes is None and member.legacy_tz_offset is None:
            tz = self.engine.default_timezone
        return local_today(
            self.clock(),
            iana_timezone=tz,
            tz_offset_minutes=member.tz_offset_minutes,
            legacy_offset=member.legacy_tz_offset,
        )

    def server_today(self) -> date:
        return local_today(self.clock(), iana_timezone=self.engine.default_timezone)

    def _league(self, league_id: str) -> League:
        league = self.store.get_league(league_id)
        if league is None:
            raise NotFoundError(f"League {league_id} not found")
        return league

    def _member(self, member_id: Optional[str], *, league_id: Optional[str] = None) -> Member:
        if not member_id:
            raise Unauthorized("Caller identity is required")
        member = self.store.get_member(member_id)
        if member is None or (league_id and member.league_id != league_id):
            raise NotMember("You are not a member of this league")
        return member

    def _score(self, member: Member, kind: str, subtype: Optional[str], metrics: Optional[ActivityMetrics], on: date) -> float:
        activity = self.store.get_activity(subtype, member.league_id)
        return scoring.compute_rr(
            kind,
            subtype,
            metrics,
            age=scoring.age_on(member.date_of_birth, on),
            unmeasured=bool(activity and activity.measurement_type == "none"),
        )

    @staticmethod
    def _kind(kind: str) -> str:
        k = (kind or "").strip().lower()
        if k not in ENTRY_KINDS:
            raise ValidationError("type must be 'workout' or 'rest'")
        return k

    # ---------------- leagues / members ----------------
    def ensure_league(self, league_id: str, name: Optional[str] = None) -> League:
        league = self.store.get_league(league_id)
        if league is not None:
            return league
        league = League(league_id=league_id, name=name or league_id, rest_days=self.engine.default_rest_days)
        LOGGER.info("Creating league %s", league_id)
        return self.store.add_league(league)

    def join_league(
        self,
        *,
        league_id: str,
        user_id: str,
        display_name: str,
        team_id: Optional[str] = None,
        timezone: Optional[str] = None,
        tz_offset_minutes: Optional[int] = None,
        date_of_birth: Optional[date] = None,
    ) -> Member:
        self._league(league_id)
        uid = str(user_id or "").strip()
        if not uid:
            raise Unauthorized("Caller identity is required")

        if team_id:
            team = self.store.get_team(team_id)
            if team is None or team.league_id != league_id:
                raise NotFoundError("Team not found in this league")

        tz_name = None
        if timezone:
            tz_name = normalize_timezone(timezone, default=None)
            if tz_name is None:
                raise ValidationError(f"Unknown timezone '{timezone}'")

        member = Member(
            member_id=self.store.new_id(MEMBERS),
            league_id=league_id,
            user_id=uid,
            display_name=(display_name or "").strip() or uid,
            team_id=team_id or None,
            date_of_birth=date_of_birth,
            timezone=tz_name,
            tz_offset_minutes=tz_offset_minutes,
        )
        self.store.add_member(member)
        LOGGER.info("Member %s joined league %s", member.member_id, league_id)
        return member

    def find_member(self, league_id: str, user_id: str) -> Optional[Member]:
        return self.store.find_member(league_id, str(user_id))

    # ---------------- daily entries ----------------
    def preview_score(
        self,
        *,
        kind: str,
        subtype: Optional[str] = None,
        metrics: Optional[ActivityMetrics] = None,
        member_id: Optional[str] = None,
        league_id: Optional[str] = None,
    ) -> dict:
        age = None
        unmeasured = False
        if member_id:
            member = self._member(member_id)
            age = scoring.age_on(member.date_of_birth, self.today_for(member))
            league_id = league_id or member.league_id
        if league_id:
            activity = self.store.get_activity(subtype, league_id)
            unmeasured = bool(activity and activity.measurement_type == "none")
        return scoring.preview_rr(self._kind(kind), subtype, metrics, age=age, unmeasured=unmeasured)

    def submit_daily_entry(
        self,
        *,
        member_id: str,
        kind: str,
        entry_date: Optional[date] = None,
        subtype: Optional[str] = None,
        metrics: Optional[ActivityMetrics] = None,
        proof_url: Optional[str] = None,
        resubmit_of: Optional[str] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None,
    ) -> EffortEntry:
        """Persist a pending entry. ``entry_date`` defaults to the original's date
        for resubmissions and to the member's local today otherwise."""
        member = self._member(member_id)
        league = self._league(member.league_id)
        kind = self._kind(kind)
        today = today or self.today_for(member)

        original = self.store.get_entry(resubmit_of) if resubmit_of else None
        if entry_date is None:
            entry_date = original.entry_date if original else today
        plan = entries.plan_submission(
            member_id=member.member_id,
            entry_date=entry_date,
            today=today,
            kind=kind,
            proof_url=proof_url,
            existing_for_date=self.store.entries_for(member.member_id, entry_date),
            resubmit_of=resubmit_of,
            original=original,
            resubmissions=self.store.resubmissions_of(resubmit_of) if resubmit_of else (),
        )

        rr = self._score(member, kind, subtype, metrics, entry_date)
        scoring.ensure_submittable(kind, rr)

        exemption = False
        if kind == "rest":
            status = rest_days.compute_status(league.rest_days, self.store.rest_day_counts(league.league_id, member.member_id))
            exemption = status.is_at_limit

        entry = EffortEntry(
            entry_id=self.store.new_id(ENTRIES),
            member_id=member.member_id,
            entry_date=entry_date,
            kind=kind,
            subtype=(subtype or "").strip().lower() or None,
            metrics=metrics or ActivityMetrics(),
            rr_value=rr,
            proof_url=plan.proof_url,
            status=PENDING,
            reupload_of=plan.reupload_of,
            notes=notes,
            exemption_request=exemption,
        )

        if plan.action == entries.REPLACE:
            entry = self.store.replace_entry(plan.target_entry_id, entry)
        else:
            entry = self.store.insert_entry(entry)

        LOGGER.info(
            "Entry %s (%s) for %s on %s: rr=%.2f action=%s%s",
            entry.entry_id,
            kind,
            member.member_id,
            entry_date.isoformat(),
            rr,
            plan.action,
            " exemption requested" if exemption else "",
        )
        return entry

    def review_daily_entry(self, entry_id: str, decision: str) -> EffortEntry:
        entry = self.store.get_entry(entry_id)
        new_status = entries.check_review(entry, decision)
        entry = self.store.set_entry_status(entry_id, expected=PENDING, status=new_status)
        LOGGER.info("Entry %s %s", entry_id, new_status)
        return entry

    def record_manual_entry(
        self,
        *,
        member_id: str,
        entry_date: date,
        kind: str,
        subtype: Optional[str] = None,
        metrics: Optional[ActivityMetrics] = None,
        proof_url: Optional[str] = None,
        notes: Optional[str] = None,
        overwrite: bool = False,
    ) -> EffortEntry:
        """Host-side entry for any date, stored approved."""
        member = self._member(member_id)
        kind = self._kind(kind)
        rr = self._score(member, kind, subtype, metrics, entry_date)
        scoring.ensure_submittable(kind, rr)

        entry = EffortEntry(
            entry_id=self.store.new_id(ENTRIES),
            member_id=member.member_id,
            entry_date=entry_date,
            kind=kind,
            subtype=(subtype or "").strip().lower() or None,
            metrics=metrics or ActivityMetrics(),
            rr_value=rr,
            proof_url=(proof_url or "").strip() or None,
            status=APPROVED,
            notes=notes,
        )
        entry = self.store.write_manual_entry(entry, overwrite=overwrite)
        LOGGER.info("Manual entry %s for %s on %s", entry.entry_id, member.member_id, entry_date.isoformat())
        return entry

    def list_member_entries(
        self,
        member_id: str,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[EffortEntry]:
        member = self._member(member_id)
        rows = self.store.entries_for(member.member_id)
        return [e for e in rows if (start is None or e.entry_date >= start) and (end is None or e.entry_date <= end)]

    # ---------------- challenges ----------------
    def submit_challenge_proof(
        self,
        *,
        challenge_id: str,
        member_id: str,
        proof_url: str,
        reviewer: bool = False,
        today: Optional[date] = None,
    ) -> ChallengeSubmission:
        member = self._member(member_id)
        challenge = self.store.get_challenge(challenge_id)
        if challenge is None or challenge.league_id != member.league_id:
            raise NotFoundError("Challenge not found")

        proof = (proof_url or "").strip()
        if not proof:
            raise MissingProof("Proof is required for challenge submissions")

        existing = self.store.submission_for(challenge.challenge_id, member.member_id)
        decision = challenges.check_submission(
            challenge,
            existing,
            today=today or self.today_for(member),
            reviewer=reviewer,
            cutoff_today=today or local_today(self.clock()),
        )

        team_id = member.team_id
        sub_team_id = None
        if challenge.challenge_type == "team":
            team = self.store.get_team(member.team_id) if member.team_id else None
            if team is None or team.league_id != challenge.league_id:
                raise TeamRequired("You must be on a team in this league to submit")
        elif challenge.challenge_type == "sub_team":
            sub_team_id = self.store.sub_team_for(challenge.challenge_id, member.member_id)

        submission = ChallengeSubmission(
            submission_id=self.store.new_id(SUBMISSIONS),
            challenge_id=challenge.challenge_id,
            member_id=member.member_id,
            proof_url=proof,
            team_id=team_id,
            sub_team_id=sub_team_id,
        )
        submission = self.store.upsert_submission(submission)
        LOGGER.info(
            "Challenge %s proof from %s (%s, %s)",
            challenge.challenge_id,
            member.member_id,
            decision.effective_status,
            "resubmission" if decision.is_resubmission else "new",
        )
        return submission

    def review_challenge_submission(
        self,
        submission_id: str,
        decision: str,
        *,
        awarded_points: Optional[float] = None,
        today: Optional[date] = None,
    ) -> ChallengeSubmission:
        submission = self.store.get_submission(submission_id)
        if submission is None:
            raise NotFoundError("Submission not found")
        challenge = self.store.get_challenge(submission.challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge not found")

        team_size = self.store.team_size(submission.team_id) if submission.team_id else 1
        try:
            status, points = challenges.resolve_review(
                challenge,
                submission,
                decision,
                awarded_points=awarded_points,
                today=today or self.server_today(),
                team_size=team_size,
            )
        except ValidationError as e:
            LOGGER.warning("Refused review of submission %s: %s", submission_id, e)
            raise

        submission = self.store.review_submission(
            submission_id, expected=PENDING, status=status, awarded_points=points
        )
        LOGGER.info("Submission %s %s (points=%s)", submission_id, status, points)
        return submission

    # ---------------- leaderboard ----------------
    def get_leaderboard(
        self,
        league_id: str,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        today: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> Leaderboard:
        snapshot = self.store.league_snapshot(league_id)
        today = today or self.server_today()
        start = start or snapshot.league.start_date
        end = end or today
        if start and end and start > end:
            raise ValidationError("start date must be on or before end date")
        return build_leaderboard(
            snapshot,
            start=start,
            end=end,
            today=today,
            limit=limit or self.engine.leaderboard_limit,
        )

    # ---------------- rest days ----------------
    def get_rest_day_status(self, league_id: str, member_id: str) -> rest_days.RestDayStatus:
        league = self._league(league_id)
        member = self._member(member_id, league_id=league_id)
        counts = self.store.rest_day_counts(league.league_id, member.member_id)
        return rest_days.compute_status(league.rest_days, counts)

    def request_rest_day_donation(
        self,
        *,
        league_id: str,
        donor_member_id: str,
        receiver_member_id: str,
        days: int,
        notes: Optional[str] = None,
        proof_url: Optional[str] = None,
    ) -> RestDayDonation:
        league = self._league(league_id)
        donor = self._member(donor_member_id, league_id=league_id)
        receiver = self.store.get_member(receiver_member_id)
        if receiver is None or receiver.league_id != league_id:
            raise NotFoundError("Receiver is not a member of this league")

        status = self.get_rest_day_status(league_id, donor.member_id)
        rest_days.check_donation_request(donor.member_id, receiver.member_id, days, status)

        def guard(counts) -> None:
            rest_days.ensure_can_donate(rest_days.compute_status(league.rest_days, counts), days)

        donation = RestDayDonation(
            donation_id=self.store.new_id(DONATIONS),
            league_id=league_id,
            donor_member_id=donor.member_id,
            receiver_member_id=receiver.member_id,
            days_transferred=days,
            notes=notes,
            proof_url=(proof_url or "").strip() or None,
        )
        donation = self.store.insert_donation(donation, guard)
        LOGGER.info(
            "Donation %s: %s -> %s (%d days) requested",
            donation.donation_id,
            donor.member_id,
            receiver.member_id,
            days,
        )
        return donation

    def review_rest_day_donation(
        self,
        donation_id: str,
        decision: str,
        *,
        reviewer_role: str,
        reviewer_team_id: Optional[str] = None,
    ) -> RestDayDonation:
        donation = self.store.get_donation(donation_id)
        if donation is None:
            raise NotFoundError("Donation not found")
        league = self._league(donation.league_id)
        donor = self.store.get_member(donation.donor_member_id)

        same_team = None
        if reviewer_team_id is not None:
            same_team = bool(donor and donor.team_id == reviewer_team_id)
        new_status = rest_days.next_donation_status(
            donation.status, decision, reviewer_role, same_team=same_team
        )

        guard = None
        if new_status == APPROVED:
            def guard(counts) -> None:
                rest_days.ensure_can_donate(
                    rest_days.compute_status(league.rest_days, counts), donation.days_transferred
                )

        donation = self.store.transition_donation(
            donation_id, expected=donation.status, status=new_status, guard=guard
        )
        LOGGER.info("Donation %s %s by %s", donation_id, new_status, reviewer_role)
        return donation

    def list_rest_day_donations(self, league_id: str) -> List[RestDayDonation]:
        self._league(league_id)
        return self.store.donations_for(league_id)
