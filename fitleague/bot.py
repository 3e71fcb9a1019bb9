"""Entry point and top-level wiring for the league scoring Discord bot."""

from __future__ import annotations

import logging

import discord

from .commands import register_command_groups
from .config import AppConfig, load_config
from .league_manager import LeagueManager
from .sheets import GoogleSheetsStore
from .store import LeagueStore, MemoryStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
LOGGER = logging.getLogger(__name__)


def build_store(app_config: AppConfig) -> LeagueStore:
    if app_config.engine.storage_backend == "memory":
        LOGGER.warning("Using in-memory storage; data is lost on restart")
        return MemoryStore()
    return GoogleSheetsStore(app_config.sheets)


class LeagueBot(discord.Client):
    def __init__(self) -> None:
        intents = discord.Intents.default()
        intents.members = True
        super().__init__(intents=intents)
        self.tree = discord.app_commands.CommandTree(self)

        self.app_config = load_config()
        self.store = build_store(self.app_config)
        self.manager = LeagueManager(store=self.store, engine=self.app_config.engine)
        self.manager.ensure_league(self.app_config.bot.league_id)

    async def setup_hook(self) -> None:
        register_command_groups(self, self.manager, self.app_config)
        # Sync commands globally (or to one guild if you set GUILD_ID)
        try:
            if self.app_config.bot.guild_id:
                guild = discord.Object(id=int(self.app_config.bot.guild_id))
                self.tree.copy_global_to(guild=guild)
                await self.tree.sync(guild=guild)
                LOGGER.info("Synced commands to guild %s", self.app_config.bot.guild_id)
            else:
                await self.tree.sync()
                LOGGER.info("Synced commands globally")
        except discord.DiscordException as e:
            LOGGER.warning("Command sync failed: %s", e)

    async def on_ready(self) -> None:
        LOGGER.info("Logged in as %s (league %s)", self.user, self.app_config.bot.league_id)


def run() -> None:
    bot = LeagueBot()
    bot.run(bot.app_config.bot.token)


if __name__ == "__main__":
    run()
