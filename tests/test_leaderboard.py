from datetime import date

import pytest

from fitleague.errors import ValidationError
from fitleague.leaderboard import normalize_points, rank_teams, round_half_up, team_size_stats
from fitleague.models import ActivityMetrics, ChallengeSubmission
from fitleague.points import TeamPoints, streaks

from conftest import TODAY

RUN = ActivityMetrics(duration=50)


def _team(team_id, size, points, *, rr_total=0.0, rr_count=0):
    return TeamPoints(
        team_id=team_id,
        name=team_id.title(),
        member_ids=[f"{team_id}_{i}" for i in range(size)],
        entry_points=points,
        rr_total=rr_total,
        rr_count=rr_count,
    )


def test_normalization_lifts_smaller_team():
    ranked = rank_teams([_team("big", 8, 600), _team("small", 4, 400)], normalize=True)
    assert [(t.team_id, t.normalized_points) for t in ranked] == [("small", 800), ("big", 600)]
    assert ranked[0].total_points == 400


def test_raw_ranking_without_normalization():
    ranked = rank_teams([_team("big", 8, 600), _team("small", 4, 400)], normalize=False)
    assert [t.team_id for t in ranked] == ["big", "small"]


def test_normalization_is_noop_for_equal_sizes():
    ranked = rank_teams([_team("a", 5, 37), _team("b", 5, 41)], normalize=True)
    assert all(t.normalized_points == t.total_points for t in ranked)


def test_normalize_points_edge_cases():
    assert normalize_points(10, 0, 8) == 10
    assert normalize_points(5, 2, 3) == 8          # 7.5 rounds half up
    assert round_half_up(2.5) == 3
    assert team_size_stats([4, 8]) == {"min_size": 4, "max_size": 8, "avg_size": 6.0, "has_variance": True}
    assert team_size_stats([])["has_variance"] is False


def test_team_ties_break_on_rr_then_name():
    ranked = rank_teams(
        [_team("zeta", 3, 10, rr_total=3.0, rr_count=3), _team("alpha", 3, 10, rr_total=3.0, rr_count=3), _team("mid", 3, 10, rr_total=4.5, rr_count=3)],
    )
    assert [t.team_id for t in ranked] == ["mid", "alpha", "zeta"]
    assert [t.rank for t in ranked] == [1, 2, 3]


def test_streaks():
    days = [date(2024, 3, d) for d in (1, 2, 3, 5, 6)]
    assert streaks(days, date(2024, 3, 6)) == (2, 3)
    assert streaks(days, date(2024, 3, 7)) == (2, 3)
    assert streaks(days, date(2024, 3, 8)) == (0, 3)
    assert streaks([], TODAY) == (0, 0)


@pytest.fixture
def league_with_activity(manager, store, alice, bob, carol, add_challenge):
    for d in (13, 14):
        manager.record_manual_entry(member_id=alice.member_id, entry_date=date(2024, 3, d), kind="workout", subtype="run", metrics=RUN)
    manager.record_manual_entry(member_id=alice.member_id, entry_date=TODAY, kind="rest")
    manager.record_manual_entry(member_id=alice.member_id, entry_date=date(2024, 2, 28), kind="rest")   # before league start
    manager.record_manual_entry(member_id=bob.member_id, entry_date=date(2024, 3, 14), kind="workout", subtype="run", metrics=RUN)
    manager.submit_daily_entry(member_id=carol.member_id, kind="rest")

    add_challenge(start=date(2024, 3, 1), end=date(2024, 3, 10), total=10.0)
    store.upsert_submission(
        ChallengeSubmission(submission_id="s_a", challenge_id="c_plank", member_id=alice.member_id, proof_url="p", team_id="t_red")
    )
    manager.review_challenge_submission("s_a", "approve")
    return manager


def test_leaderboard_totals_and_order(league_with_activity):
    board = league_with_activity.get_leaderboard("lg")
    assert (board.start_date, board.end_date) == (date(2024, 3, 1), TODAY)

    top = board.individuals[0]
    assert (top.display_name, top.points, top.entry_points, top.challenge_points) == ("Alice", 13.0, 3, 10.0)
    assert top.avg_rr == round((50 / 45 * 2 + 1.0) / 3, 2)
    assert (top.current_streak, top.best_streak) == (3, 3)
    assert [r.display_name for r in board.individuals] == ["Alice", "Bob", "Carol"]
    assert board.individuals[2].submission_count == 1

    red, blue = board.teams
    assert (red.team_name, red.points, red.challenge_bonus, red.total_points, red.member_count) == ("Red", 3, 0.0, 13.0, 2)
    assert (blue.team_name, blue.total_points) == ("Blue", 1)
    assert board.normalized is False

    assert board.stats == {"total_submissions": 5, "approved": 4, "pending": 1, "rejected": 0, "total_rr": round(50 / 45 * 3 + 1.0, 2)}


def test_leaderboard_window(league_with_activity):
    board = league_with_activity.get_leaderboard("lg", start=date(2024, 3, 14), end=date(2024, 3, 14))
    alice = next(r for r in board.individuals if r.display_name == "Alice")
    assert (alice.entry_points, alice.challenge_points) == (1, 0.0)

    with pytest.raises(ValidationError):
        league_with_activity.get_leaderboard("lg", start=date(2024, 3, 14), end=date(2024, 3, 1))


def test_leaderboard_is_stable(league_with_activity):
    first = league_with_activity.get_leaderboard("lg")
    second = league_with_activity.get_leaderboard("lg")
    assert [r.member_id for r in first.individuals] == [r.member_id for r in second.individuals]
    assert [t.team_id for t in first.teams] == [t.team_id for t in second.teams]


def test_leaderboard_limit(league_with_activity):
    board = league_with_activity.get_leaderboard("lg", limit=2)
    assert len(board.individuals) == 2
