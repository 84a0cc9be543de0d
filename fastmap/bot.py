"""Entry point for the fast travel map Discord bot."""

from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands

from .config import MapConfig
from .imagegen import MapImageGenerator
from .storage import DataStore

log = logging.getLogger(__name__)


class FastTravelBot(commands.Bot):
    def __init__(self, config: MapConfig):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(command_prefix="!", intents=intents)
        self.config = config
        self.store = DataStore()
        self.image_generator: MapImageGenerator | None = None
        if config.image_api_url:
            self.image_generator = MapImageGenerator(config.image_api_url)
        self._synced = False

    async def setup_hook(self) -> None:
        await self.load_extension("fastmap.cogs.atlas")

    async def on_ready(self) -> None:
        if not self._synced:
            await self.tree.sync()
            self._synced = True
            log.info("Application commands synced")
        if self.user:
            log.info("Connected as %s (%s)", self.user, self.user.id)

    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self.tree.sync(guild=guild)
        log.info("Synced application commands for guild %s (%s)", guild.name, guild.id)

    async def close(self) -> None:
        cog = self.get_cog("AtlasCog")
        if cog is not None:
            await cog.close_sessions()  # type: ignore[attr-defined]
        if self.image_generator is not None:
            await self.image_generator.close()
        await super().close()


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    config = MapConfig.from_env()
    bot = FastTravelBot(config)
    async with bot:
        await bot.start(config.token)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
