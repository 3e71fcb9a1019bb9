"""Point aggregation over one league snapshot.

One approved daily entry is worth one point whatever its RR. An approved
challenge submission is worth its awarded points, or the challenge total when
no explicit award was recorded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from .models import APPROVED, PENDING, REJECTED, Challenge, ChallengeSubmission, LeagueSnapshot


@dataclass(slots=True)
class MemberPoints:
    member_id: str
    display_name: str
    team_id: Optional[str]
    entry_points: int = 0
    challenge_points: float = 0.0
    submission_count: int = 0
    rr_total: float = 0.0
    rr_count: int = 0
    current_streak: int = 0
    best_streak: int = 0

    @property
    def total_points(self) -> float:
        return self.entry_points + self.challenge_points

    @property
    def avg_rr(self) -> float:
        return round_rr(self.rr_total, self.rr_count)


@dataclass(slots=True)
class TeamPoints:
    team_id: str
    name: str
    member_ids: List[str] = field(default_factory=list)
    entry_points: int = 0
    challenge_points: float = 0.0
    challenge_bonus: float = 0.0   # share of challenge_points from team / sub_team challenges
    submission_count: int = 0
    rr_total: float = 0.0
    rr_count: int = 0

    @property
    def member_count(self) -> int:
        return len(self.member_ids)

    @property
    def total_points(self) -> float:
        return self.entry_points + self.challenge_points

    @property
    def avg_rr(self) -> float:
        return round_rr(self.rr_total, self.rr_count)


def round_rr(total: float, count: int) -> float:
    return round(total / count, 2) if count else 0.0


def in_window(day: Optional[date], start: Optional[date], end: Optional[date]) -> bool:
    if day is None:
        return True
    if start and day < start:
        return False
    if end and day > end:
        return False
    return True


def submission_points(submission: ChallengeSubmission, challenge: Optional[Challenge]) -> float:
    if submission.status != APPROVED:
        return 0.0
    if submission.awarded_points is not None:
        return float(submission.awarded_points)
    return float(challenge.total_points) if challenge else 0.0


def streaks(days: Iterable[date], today: Optional[date] = None) -> Tuple[int, int]:
    """``(current, best)`` runs of consecutive days.

    The current run must end today or yesterday (today may still be open).
    """
    ordered = sorted(set(days))
    if not ordered:
        return 0, 0

    best = run = 1
    for prev, cur in zip(ordered, ordered[1:]):
        run = run + 1 if cur - prev == timedelta(days=1) else 1
        best = max(best, run)

    last = ordered[-1]
    if today is not None and (today - last).days > 1:
        return 0, best
    current = 1
    for prev, cur in zip(reversed(ordered[:-1]), reversed(ordered)):
        if cur - prev != timedelta(days=1):
            break
        current += 1
    return current, best


def aggregate_members(
    snapshot: LeagueSnapshot,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
    today: Optional[date] = None,
) -> Dict[str, MemberPoints]:
    result: Dict[str, MemberPoints] = {
        m.member_id: MemberPoints(member_id=m.member_id, display_name=m.display_name, team_id=m.team_id)
        for m in snapshot.members
    }

    approved_days: Dict[str, List[date]] = {}
    for entry in snapshot.entries:
        mp = result.get(entry.member_id)
        if mp is None or not in_window(entry.entry_date, start, end):
            continue
        mp.submission_count += 1
        if entry.status != APPROVED:
            continue
        mp.entry_points += 1
        approved_days.setdefault(entry.member_id, []).append(entry.entry_date)
        if entry.rr_value and entry.rr_value > 0:
            mp.rr_total += entry.rr_value
            mp.rr_count += 1

    for sub in snapshot.submissions:
        mp = result.get(sub.member_id)
        challenge = snapshot.challenges.get(sub.challenge_id)
        if mp is None or challenge is None:
            continue
        if not in_window(challenge.end_date, start, end):
            continue
        mp.challenge_points += submission_points(sub, challenge)

    for member_id, days in approved_days.items():
        current, best = streaks(days, today)
        result[member_id].current_streak = current
        result[member_id].best_streak = best

    return result


def aggregate_teams(
    snapshot: LeagueSnapshot,
    member_points: Dict[str, MemberPoints],
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Dict[str, TeamPoints]:
    """Team totals from current membership (not historical)."""
    teams: Dict[str, TeamPoints] = {t.team_id: TeamPoints(team_id=t.team_id, name=t.name) for t in snapshot.teams}

    for mp in member_points.values():
        tp = teams.get(mp.team_id or "")
        if tp is None:
            continue
        tp.member_ids.append(mp.member_id)
        tp.entry_points += mp.entry_points
        tp.challenge_points += mp.challenge_points
        tp.submission_count += mp.submission_count
        tp.rr_total += mp.rr_total
        tp.rr_count += mp.rr_count

    for sub in snapshot.submissions:
        challenge = snapshot.challenges.get(sub.challenge_id)
        if challenge is None or challenge.challenge_type not in {"team", "sub_team"}:
            continue
        if not in_window(challenge.end_date, start, end):
            continue
        mp = member_points.get(sub.member_id)
        tp = teams.get((mp.team_id if mp else None) or "")
        if tp is not None:
            tp.challenge_bonus += submission_points(sub, challenge)

    return teams


def entry_stats(
    snapshot: LeagueSnapshot,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> dict:
    member_ids = {m.member_id for m in snapshot.members}
    rows = [e for e in snapshot.entries if e.member_id in member_ids and in_window(e.entry_date, start, end)]
    return {
        "total_submissions": len(rows),
        "approved": sum(1 for e in rows if e.status == APPROVED),
        "pending": sum(1 for e in rows if e.status == PENDING),
        "rejected": sum(1 for e in rows if e.status == REJECTED),
        "total_rr": round(sum(e.rr_value or 0.0 for e in rows if e.status == APPROVED), 2),
    }
