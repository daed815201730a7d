"""
harvester.bot.core — Bot Instance & Cog Loader
===============================================

Defines :class:`HarvesterBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``) and DB engine (``bot.engine``).
2. Builds the :class:`~harvester.services.role_sync_service.SyncContext`
   used by every cog.  Its Discord provider *borrows* the bot's own live
   connection, so role updates never open a second client and the
   synchronizer never closes the bot.
3. Loads the cogs listed in :data:`EXTENSIONS` and syncs the slash-command
   tree on startup (guild-scoped when ``DEV_GUILD_ID`` is set).
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from harvester.config import HarvesterConfig
from harvester.services.discord_client import DiscordClientProvider
from harvester.services.role_sync_service import SyncContext

logger = logging.getLogger(__name__)

EXTENSIONS: list[str] = [
    "harvester.bot.cogs.holdings",
    "harvester.bot.cogs.tasks",
]


class HarvesterBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state."""

    def __init__(self, cfg: HarvesterConfig, engine: Engine) -> None:
        # Members intent (privileged) is needed to read member roles.
        intents = discord.Intents.default()
        intents.members = True
        intents.presences = False

        super().__init__(
            command_prefix="!",
            intents=intents,
            description=f"{cfg.community_name} holdings & roles",
        )

        self.cfg = cfg
        self.engine = engine
        self.sync_ctx = SyncContext.from_config(
            cfg,
            engine,
            DiscordClientProvider.borrowed(self, timeout=cfg.discord_timeout),
        )

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all Cog extensions.  A broken cog is logged, not fatal."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))
