from __future__ import annotations

from datetime import date, datetime

import pytest
import pytz

from fitleague.config import EngineConfig
from fitleague.league_manager import LeagueManager
from fitleague.models import ActivityType, Challenge, League, Team
from fitleague.store import MemoryStore

TODAY = date(2024, 3, 15)
NOW = datetime(2024, 3, 15, 18, 0, tzinfo=pytz.UTC)


@pytest.fixture
def store() -> MemoryStore:
    s = MemoryStore()
    s.add_league(
        League(
            league_id="lg",
            name="Spring League",
            start_date=date(2024, 3, 1),
            end_date=date(2024, 4, 30),
            rest_days=5,
        )
    )
    s.add_team(Team(team_id="t_red", league_id="lg", name="Red"))
    s.add_team(Team(team_id="t_blue", league_id="lg", name="Blue"))
    s.add_activity(ActivityType(activity_id="meditation", measurement_type="none"))
    return s


@pytest.fixture
def manager(store) -> LeagueManager:
    return LeagueManager(store=store, engine=EngineConfig(storage_backend="memory"), clock=lambda: NOW)


@pytest.fixture
def alice(manager):
    return manager.join_league(
        league_id="lg",
        user_id="1001",
        display_name="Alice",
        team_id="t_red",
        date_of_birth=date(1994, 1, 1),
    )


@pytest.fixture
def bob(manager):
    return manager.join_league(league_id="lg", user_id="1002", display_name="Bob", team_id="t_blue")


@pytest.fixture
def carol(manager):
    return manager.join_league(league_id="lg", user_id="1003", display_name="Carol", team_id="t_red")


@pytest.fixture
def add_challenge(store):
    def _add(challenge_id="c_plank", *, challenge_type="individual", start=date(2024, 3, 10), end=date(2024, 3, 20), status="active", total=10.0):
        return store.add_challenge(
            Challenge(
                challenge_id=challenge_id,
                league_id="lg",
                name=challenge_id,
                challenge_type=challenge_type,
                start_date=start,
                end_date=end,
                status=status,
                total_points=total,
            )
        )

    return _add
