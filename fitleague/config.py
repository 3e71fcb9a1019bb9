from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(slots=True)
class BotConfig:
    token: str
    guild_id: Optional[int] = None

    # League hosted by this guild
    league_id: str = "default"


@dataclass(slots=True)
class SheetsConfig:
    spreadsheet_id: str
    credentials_path: Path


@dataclass(slots=True)
class EngineConfig:
    storage_backend: str = "sheets"        # sheets | memory

    # Used when a member has neither a timezone nor an offset; None -> UTC date
    default_timezone: Optional[str] = None

    # Rest-day allowance for leagues created by the bot
    default_rest_days: int = 1

    leaderboard_limit: int = 50


@dataclass(slots=True)
class AppConfig:
    bot: BotConfig
    sheets: Optional[SheetsConfig]
    engine: EngineConfig


def _int(name: str, default: int) -> int:
    v = os.getenv(name, "").strip()
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _opt_int(name: str) -> Optional[int]:
    v = os.getenv(name, "").strip()
    if not v:
        return None
    try:
        return int(v)
    except ValueError:
        return None


def load_config() -> AppConfig:
    """Load config from environment variables (.env is fine)."""
    token = os.getenv("DISCORD_TOKEN", "").strip()
    if not token:
        raise RuntimeError("Missing DISCORD_TOKEN")

    backend = os.getenv("STORAGE_BACKEND", "sheets").strip().lower() or "sheets"
    if backend not in {"sheets", "memory"}:
        raise RuntimeError("STORAGE_BACKEND must be sheets | memory")

    sheets: Optional[SheetsConfig] = None
    if backend == "sheets":
        spreadsheet_id = os.getenv("SHEET_ID", "").strip() or os.getenv("SPREADSHEET_ID", "").strip()
        if not spreadsheet_id:
            raise RuntimeError("Missing SHEET_ID (or SPREADSHEET_ID)")

        creds_path = (
            os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "").strip()
            or os.getenv("CREDENTIALS_PATH", "").strip()
            or "/tmp/google-sa.json"  # Default for Docker deployment
        )
        sheets = SheetsConfig(spreadsheet_id=spreadsheet_id, credentials_path=Path(creds_path))

    leaderboard_limit = _int("LEADERBOARD_LIMIT", 50)
    if leaderboard_limit <= 0:
        leaderboard_limit = 50

    engine = EngineConfig(
        storage_backend=backend,
        default_timezone=os.getenv("DEFAULT_TIMEZONE", "").strip() or None,
        default_rest_days=max(0, _int("DEFAULT_REST_DAYS", 1)),
        leaderboard_limit=leaderboard_limit,
    )

    return AppConfig(
        bot=BotConfig(
            token=token,
            guild_id=_opt_int("GUILD_ID"),
            league_id=os.getenv("LEAGUE_ID", "").strip() or "default",
        ),
        sheets=sheets,
        engine=engine,
    )
