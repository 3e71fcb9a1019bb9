"""Rankings for individuals and teams, with optional team-size normalization."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional

from .models import LeagueSnapshot
from .points import MemberPoints, TeamPoints, aggregate_members, aggregate_teams, entry_stats


@dataclass(slots=True)
class IndividualRanking:
    rank: int
    member_id: str
    display_name: str
    team_id: Optional[str]
    team_name: Optional[str]
    points: float
    entry_points: int
    challenge_points: float
    avg_rr: float
    submission_count: int
    current_streak: int = 0
    best_streak: int = 0


@dataclass(slots=True)
class TeamRanking:
    rank: int
    team_id: str
    team_name: str
    points: int
    challenge_bonus: float
    total_points: float
    normalized_points: float
    avg_rr: float
    member_count: int
    submission_count: int


@dataclass(slots=True)
class Leaderboard:
    league_id: str
    start_date: Optional[date]
    end_date: Optional[date]
    normalized: bool
    individuals: List[IndividualRanking] = field(default_factory=list)
    teams: List[TeamRanking] = field(default_factory=list)
    stats: dict = field(default_factory=dict)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def team_size_stats(sizes: Iterable[int]) -> dict:
    sizes = list(sizes)
    if not sizes:
        return {"min_size": 0, "max_size": 0, "avg_size": 0.0, "has_variance": False}
    return {
        "min_size": min(sizes),
        "max_size": max(sizes),
        "avg_size": sum(sizes) / len(sizes),
        "has_variance": min(sizes) != max(sizes),
    }


def has_size_variance(sizes: Iterable[int]) -> bool:
    return team_size_stats(sizes)["has_variance"]


def normalize_points(points: float, team_size: int, max_team_size: int) -> int:
    """Scale a team total to the largest team: ``round(points * max / size)``."""
    if team_size <= 0 or max_team_size <= 0:
        return round_half_up(points)
    return round_half_up(points * max_team_size / team_size)


def rank_individuals(
    member_points: Iterable[MemberPoints],
    team_names: Dict[str, str],
    *,
    limit: Optional[int] = None,
) -> List[IndividualRanking]:
    ordered = sorted(
        member_points,
        key=lambda mp: (-mp.total_points, -mp.avg_rr, mp.display_name.lower(), mp.member_id),
    )
    if limit:
        ordered = ordered[:limit]
    return [
        IndividualRanking(
            rank=idx,
            member_id=mp.member_id,
            display_name=mp.display_name,
            team_id=mp.team_id,
            team_name=team_names.get(mp.team_id or ""),
            points=mp.total_points,
            entry_points=mp.entry_points,
            challenge_points=mp.challenge_points,
            avg_rr=mp.avg_rr,
            submission_count=mp.submission_count,
            current_streak=mp.current_streak,
            best_streak=mp.best_streak,
        )
        for idx, mp in enumerate(ordered, start=1)
    ]


def rank_teams(team_points: Iterable[TeamPoints], *, normalize: bool = False) -> List[TeamRanking]:
    teams = list(team_points)
    sizes = [t.member_count for t in teams]
    apply = normalize and has_size_variance(sizes)
    max_size = max(sizes) if sizes else 0

    rows = []
    for t in teams:
        score = normalize_points(t.total_points, t.member_count, max_size) if apply else t.total_points
        rows.append((t, score))

    rows.sort(key=lambda pair: (-pair[1], -pair[0].avg_rr, pair[0].name.lower(), pair[0].team_id))
    return [
        TeamRanking(
            rank=idx,
            team_id=t.team_id,
            team_name=t.name,
            points=t.entry_points,
            challenge_bonus=t.challenge_bonus,
            total_points=t.total_points,
            normalized_points=score,
            avg_rr=t.avg_rr,
            member_count=t.member_count,
            submission_count=t.submission_count,
        )
        for idx, (t, score) in enumerate(rows, start=1)
    ]


def build_leaderboard(
    snapshot: LeagueSnapshot,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
    today: Optional[date] = None,
    limit: Optional[int] = 50,
) -> Leaderboard:
    """One consistent pass over ``snapshot``; nothing is re-read from storage."""
    member_points = aggregate_members(snapshot, start=start, end=end, today=today)
    team_points = aggregate_teams(snapshot, member_points, start=start, end=end)
    team_names = {t.team_id: t.name for t in snapshot.teams}

    normalize = bool(snapshot.league.normalize_points)
    return Leaderboard(
        league_id=snapshot.league.league_id,
        start_date=start,
        end_date=end,
        normalized=normalize and has_size_variance(t.member_count for t in team_points.values()),
        individuals=rank_individuals(member_points.values(), team_names, limit=limit),
        teams=rank_teams(team_points.values(), normalize=normalize),
        stats=entry_stats(snapshot, start=start, end=end),
    )
